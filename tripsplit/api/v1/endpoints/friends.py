from fastapi import APIRouter, Depends

from tripsplit.core.auth import CurrentUser, get_current_user
from tripsplit.schemas.friend import FriendRequestAnswer, FriendRequestCreate, FriendRequestResponse
from tripsplit.services.friend_service import FriendService

router = APIRouter()


@router.post("/requests", response_model=FriendRequestResponse, status_code=201)
async def send_friend_request(
    request_in: FriendRequestCreate,
    current_user: CurrentUser = Depends(get_current_user)
):
    """Send a friend request"""
    return await FriendService.send_request(current_user.id, request_in.receiver_id)


@router.post("/requests/{request_id}/respond", response_model=FriendRequestResponse)
async def respond_friend_request(
    request_id: str,
    answer: FriendRequestAnswer,
    current_user: CurrentUser = Depends(get_current_user)
):
    """Accept or reject a friend request sent to the current user"""
    return await FriendService.respond(request_id, current_user.id, answer.accept)
