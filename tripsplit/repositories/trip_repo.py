import logging
from typing import Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from tripsplit.core.exceptions import DataUnavailableError
from tripsplit.models.trip import Trip

logger = logging.getLogger(__name__)


class TripRepository:
    """Trip and trip membership operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["trip"]
        self.members = db["trip_member"]

    async def get_trip(self, trip_id: str) -> Optional[Trip]:
        try:
            doc = await self.collection.find_one({"_id": trip_id})
        except PyMongoError as e:
            raise DataUnavailableError("Could not read trip") from e
        return Trip.model_validate(doc) if doc else None

    async def member_ids(self, trip_id: str) -> List[str]:
        """Active members of a trip."""
        try:
            docs = await self.members.find({"trip_id": trip_id, "is_active": True}).to_list(None)
        except PyMongoError as e:
            raise DataUnavailableError("Could not read trip_member") from e
        return [doc["user_id"] for doc in docs]

    async def delete_cascade(self, trip_id: str) -> Dict[str, int]:
        """Remove a trip with its members, bills and everything hanging off them."""
        counts: Dict[str, int] = {}
        try:
            bill_ids = [
                doc["_id"] for doc in
                await self.db["bill"].find({"trip_id": trip_id}, {"_id": 1}).to_list(None)
            ]
            if bill_ids:
                share_ids = [
                    doc["_id"] for doc in
                    await self.db["bill_share"].find(
                        {"bill_id": {"$in": bill_ids}}, {"_id": 1}
                    ).to_list(None)
                ]
                if share_ids:
                    result = await self.db["payment"].delete_many({"bill_share_id": {"$in": share_ids}})
                    counts["payment"] = result.deleted_count
                result = await self.db["payment_proof"].delete_many({"bill_id": {"$in": bill_ids}})
                counts["payment_proof"] = result.deleted_count
                result = await self.db["bill_share"].delete_many({"bill_id": {"$in": bill_ids}})
                counts["bill_share"] = result.deleted_count
                result = await self.db["bill"].delete_many({"_id": {"$in": bill_ids}})
                counts["bill"] = result.deleted_count

            result = await self.db["debt_summary"].delete_many({"trip_id": trip_id})
            counts["debt_summary"] = result.deleted_count
            result = await self.members.delete_many({"trip_id": trip_id})
            counts["trip_member"] = result.deleted_count
            result = await self.collection.delete_one({"_id": trip_id})
            counts["trip"] = result.deleted_count
        except PyMongoError as e:
            logger.error("Deleting trip %s stopped part way: %s (done: %s)", trip_id, e, counts)
            raise DataUnavailableError("Could not delete trip") from e
        return counts
