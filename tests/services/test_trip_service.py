import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from tripsplit.core.exceptions import PermissionDeniedError, RecordNotFoundError
from tripsplit.models.trip import Trip
from tripsplit.services.cache import result_cache, user_tag
from tripsplit.services.trip_service import TripService


@pytest.fixture
def repo():
    repo = MagicMock()
    repo.get_trip = AsyncMock(return_value=Trip(id="trip-1", trip_name="Krabi", created_by="owner"))
    repo.member_ids = AsyncMock(return_value=["owner", "member"])
    repo.delete_cascade = AsyncMock(return_value={"trip": 1, "bill": 2})
    with patch("tripsplit.services.trip_service.get_database", return_value=MagicMock()), \
            patch("tripsplit.services.trip_service.TripRepository", return_value=repo):
        yield repo


@pytest.mark.asyncio
async def test_delete_trip_by_creator(repo):
    result_cache.set("overview:member:all", {}, tags=[user_tag("member")])

    with patch("tripsplit.services.trip_service.NotificationService.notify", new_callable=AsyncMock) as notify:
        counts = await TripService.delete_trip("trip-1", "owner")

    assert counts == {"trip": 1, "bill": 2}
    repo.delete_cascade.assert_awaited_once_with("trip-1")
    assert notify.call_args[0][0] == ["member"]
    assert result_cache.get("overview:member:all") is None


@pytest.mark.asyncio
async def test_delete_trip_by_member_forbidden(repo):
    with pytest.raises(PermissionDeniedError):
        await TripService.delete_trip("trip-1", "member")
    repo.delete_cascade.assert_not_called()


@pytest.mark.asyncio
async def test_delete_missing_trip(repo):
    repo.get_trip.return_value = None
    with pytest.raises(RecordNotFoundError):
        await TripService.delete_trip("trip-9", "owner")
