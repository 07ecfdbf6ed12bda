import logging
from typing import Iterable, Optional

from tripsplit.db.mongo import get_database
from tripsplit.models.trip import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Fire-and-forget notification records; never fails the caller."""

    @staticmethod
    async def notify(
        user_ids: Iterable[str],
        title: str,
        message: str,
        kind: str = "general",
        trip_id: Optional[str] = None,
    ) -> int:
        recipients = [u for u in dict.fromkeys(user_ids) if u]
        if not recipients:
            return 0

        docs = [
            Notification(
                user_id=user_id, title=title, message=message, kind=kind, trip_id=trip_id
            ).to_document()
            for user_id in recipients
        ]
        try:
            db = await get_database()
            await db.notification.insert_many(docs)
        except Exception as e:
            logger.warning("Notify %s failed (%s): %s", ", ".join(recipients), kind, e)
            return 0
        return len(docs)
