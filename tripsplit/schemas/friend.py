from datetime import datetime

from pydantic import BaseModel, Field

from tripsplit.models.trip import FriendRequestStatus


class FriendRequestCreate(BaseModel):
    receiver_id: str = Field(..., min_length=1)


class FriendRequestAnswer(BaseModel):
    accept: bool


class FriendRequestResponse(BaseModel):
    id: str
    sender_id: str
    receiver_id: str
    status: FriendRequestStatus
    created_at: datetime
