import logging

from tripsplit.core.exceptions import (
    PermissionDeniedError,
    RecordNotFoundError,
    SettlementConflictError,
    SettlementValidationError,
)
from tripsplit.db.mongo import get_database
from tripsplit.models.trip import FriendRequest, FriendRequestStatus
from tripsplit.repositories.friend_repo import FriendRepository
from tripsplit.schemas.friend import FriendRequestResponse
from tripsplit.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def _response(request: FriendRequest) -> FriendRequestResponse:
    return FriendRequestResponse(
        id=request.id,
        sender_id=request.sender_id,
        receiver_id=request.receiver_id,
        status=request.status,
        created_at=request.created_at,
    )


class FriendService:
    @staticmethod
    async def send_request(sender_id: str, receiver_id: str) -> FriendRequestResponse:
        if sender_id == receiver_id:
            raise SettlementValidationError("Cannot send a friend request to yourself")

        db = await get_database()
        repo = FriendRepository(db)

        if await repo.are_friends(sender_id, receiver_id):
            raise SettlementConflictError("Already friends")
        if await repo.open_request_between(sender_id, receiver_id):
            raise SettlementConflictError("A friend request is already pending")

        request = await repo.create_request(FriendRequest(sender_id=sender_id, receiver_id=receiver_id))
        logger.info("Friend request %s: %s -> %s", request.id, sender_id, receiver_id)

        await NotificationService.notify(
            [receiver_id],
            "Friend request",
            "You have a new friend request",
            kind="friend_request",
        )
        return _response(request)

    @staticmethod
    async def respond(request_id: str, actor_id: str, accept: bool) -> FriendRequestResponse:
        db = await get_database()
        repo = FriendRepository(db)

        request = await repo.get_request(request_id)
        if not request:
            raise RecordNotFoundError(f"Friend request {request_id} not found")
        if request.receiver_id != actor_id:
            raise PermissionDeniedError("Only the receiver can answer a friend request")

        status = FriendRequestStatus.ACCEPTED if accept else FriendRequestStatus.REJECTED
        resolved = await repo.resolve_request(request_id, status)
        if resolved is None:
            raise SettlementConflictError("Friend request was already answered")

        if accept:
            await repo.add_friendship(request.sender_id, request.receiver_id)
            await NotificationService.notify(
                [request.sender_id],
                "Friend request accepted",
                "Your friend request was accepted",
                kind="friend_accepted",
            )
        logger.info("Friend request %s %s", request_id, status.value)
        return _response(resolved)
