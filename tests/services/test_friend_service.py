import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from tripsplit.core.exceptions import (
    PermissionDeniedError,
    SettlementConflictError,
    SettlementValidationError,
)
from tripsplit.models.trip import FriendRequest, FriendRequestStatus
from tripsplit.services.friend_service import FriendService


@pytest.fixture
def repo():
    repo = MagicMock()
    repo.are_friends = AsyncMock(return_value=False)
    repo.open_request_between = AsyncMock(return_value=None)
    repo.create_request = AsyncMock(side_effect=lambda request: request)
    repo.get_request = AsyncMock(
        return_value=FriendRequest(id="fr1", sender_id="alice", receiver_id="bob")
    )
    repo.resolve_request = AsyncMock(
        side_effect=lambda request_id, status: FriendRequest(
            id=request_id, sender_id="alice", receiver_id="bob", status=status
        )
    )
    repo.add_friendship = AsyncMock()
    with patch("tripsplit.services.friend_service.get_database", return_value=MagicMock()), \
            patch("tripsplit.services.friend_service.FriendRepository", return_value=repo), \
            patch("tripsplit.services.friend_service.NotificationService.notify", new_callable=AsyncMock):
        yield repo


@pytest.mark.asyncio
async def test_send_request(repo):
    response = await FriendService.send_request("alice", "bob")

    assert response.sender_id == "alice"
    assert response.status == FriendRequestStatus.PENDING
    repo.create_request.assert_awaited_once()


@pytest.mark.asyncio
async def test_send_request_to_self(repo):
    with pytest.raises(SettlementValidationError):
        await FriendService.send_request("alice", "alice")


@pytest.mark.asyncio
async def test_send_duplicate_request(repo):
    repo.open_request_between.return_value = FriendRequest(sender_id="bob", receiver_id="alice")
    with pytest.raises(SettlementConflictError):
        await FriendService.send_request("alice", "bob")


@pytest.mark.asyncio
async def test_accept_adds_friendship(repo):
    response = await FriendService.respond("fr1", "bob", accept=True)

    assert response.status == FriendRequestStatus.ACCEPTED
    repo.add_friendship.assert_awaited_once_with("alice", "bob")


@pytest.mark.asyncio
async def test_reject_adds_nothing(repo):
    response = await FriendService.respond("fr1", "bob", accept=False)

    assert response.status == FriendRequestStatus.REJECTED
    repo.add_friendship.assert_not_called()


@pytest.mark.asyncio
async def test_only_receiver_can_answer(repo):
    with pytest.raises(PermissionDeniedError):
        await FriendService.respond("fr1", "alice", accept=True)


@pytest.mark.asyncio
async def test_answer_twice_conflicts(repo):
    repo.resolve_request.side_effect = None
    repo.resolve_request.return_value = None
    with pytest.raises(SettlementConflictError):
        await FriendService.respond("fr1", "bob", accept=True)
