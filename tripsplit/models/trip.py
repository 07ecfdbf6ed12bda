from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from tripsplit.models.base import MongoModel, utcnow


class Trip(MongoModel):
    trip_name: str
    description: Optional[str] = None
    created_by: str
    created_at: datetime = Field(default_factory=utcnow)


class TripMember(MongoModel):
    trip_id: str
    user_id: str
    role: str = "member"  # "owner" or "member"
    is_active: bool = True


class Notification(MongoModel):
    user_id: str
    title: str
    message: str
    kind: str = "general"
    trip_id: Optional[str] = None
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class FriendRequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class FriendRequest(MongoModel):
    sender_id: str
    receiver_id: str
    status: FriendRequestStatus = FriendRequestStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)


class Friend(MongoModel):
    user_id: str
    friend_id: str
    created_at: datetime = Field(default_factory=utcnow)
