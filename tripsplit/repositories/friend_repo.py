from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from tripsplit.core.exceptions import DataUnavailableError
from tripsplit.models.trip import Friend, FriendRequest, FriendRequestStatus


class FriendRepository:
    """Friend requests and the friendship rows they produce."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.requests = db["friend_requests"]
        self.friends = db["friends"]

    async def open_request_between(self, user_a: str, user_b: str) -> Optional[FriendRequest]:
        try:
            doc = await self.requests.find_one({
                "$or": [
                    {"sender_id": user_a, "receiver_id": user_b},
                    {"sender_id": user_b, "receiver_id": user_a},
                ],
                "status": FriendRequestStatus.PENDING.value,
            })
        except PyMongoError as e:
            raise DataUnavailableError("Could not read friend_requests") from e
        return FriendRequest.model_validate(doc) if doc else None

    async def are_friends(self, user_a: str, user_b: str) -> bool:
        try:
            doc = await self.friends.find_one({"user_id": user_a, "friend_id": user_b})
        except PyMongoError as e:
            raise DataUnavailableError("Could not read friends") from e
        return doc is not None

    async def create_request(self, request: FriendRequest) -> FriendRequest:
        try:
            await self.requests.insert_one(request.to_document())
        except PyMongoError as e:
            raise DataUnavailableError("Could not create friend request") from e
        return request

    async def get_request(self, request_id: str) -> Optional[FriendRequest]:
        try:
            doc = await self.requests.find_one({"_id": request_id})
        except PyMongoError as e:
            raise DataUnavailableError("Could not read friend_requests") from e
        return FriendRequest.model_validate(doc) if doc else None

    async def resolve_request(self, request_id: str, status: FriendRequestStatus) -> Optional[FriendRequest]:
        """Pending -> accepted/rejected; None if it was already answered."""
        try:
            doc = await self.requests.find_one_and_update(
                {"_id": request_id, "status": FriendRequestStatus.PENDING.value},
                {"$set": {"status": status.value}},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise DataUnavailableError("Could not update friend request") from e
        return FriendRequest.model_validate(doc) if doc else None

    async def add_friendship(self, user_a: str, user_b: str) -> None:
        """Friendship is stored once per direction."""
        try:
            await self.friends.insert_many([
                Friend(user_id=user_a, friend_id=user_b).to_document(),
                Friend(user_id=user_b, friend_id=user_a).to_document(),
            ])
        except PyMongoError as e:
            raise DataUnavailableError("Could not add friendship") from e
