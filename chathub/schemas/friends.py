from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

class SendFriendRequest(BaseModel):
    from_user: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None

    class Config:
        populate_by_name = True

class RespondToFriendRequest(BaseModel):
    requestId: Optional[int] = None
    response: Optional[str] = None

class CancelFriendRequest(BaseModel):
    to: Optional[str] = None

class RemoveFriend(BaseModel):
    username1: Optional[str] = None
    username2: Optional[str] = None

class UsernamePayload(BaseModel):
    username: Optional[str] = None

class UpdateUserStatus(BaseModel):
    status: str = ""

class UserCandidate(BaseModel):
    username: str
    name: Optional[str] = None
    avatar: Optional[str] = None
    online_status: bool
    created_at: datetime
    
    class Config:
        from_attributes = True

class FriendsStats(BaseModel):
    friendsCount: int
    pendingIncoming: int
    pendingOutgoing: int
