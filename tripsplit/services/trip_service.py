import logging
from typing import Dict

from tripsplit.core.exceptions import PermissionDeniedError, RecordNotFoundError
from tripsplit.db.mongo import get_database
from tripsplit.repositories.trip_repo import TripRepository
from tripsplit.services.cache import cache_hooks
from tripsplit.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class TripService:
    @staticmethod
    async def delete_trip(trip_id: str, actor_id: str) -> Dict[str, int]:
        """Delete a trip and its ledger. Only the trip creator may do this."""
        db = await get_database()
        repo = TripRepository(db)

        trip = await repo.get_trip(trip_id)
        if not trip:
            raise RecordNotFoundError(f"Trip {trip_id} not found")
        if trip.created_by != actor_id:
            raise PermissionDeniedError("Only the trip creator can delete it")

        member_ids = await repo.member_ids(trip_id)
        counts = await repo.delete_cascade(trip_id)
        logger.info("Trip %s deleted by %s: %s", trip_id, actor_id, counts)

        others = [m for m in member_ids if m != actor_id]
        await NotificationService.notify(
            others,
            "Trip deleted",
            f"The trip {trip.trip_name} was deleted",
            kind="trip_deleted",
        )
        cache_hooks.on_write([actor_id, *member_ids], [trip_id])
        return counts
