from .base import Base
from .user import User
from .file import StoredFile
from .message import Message
from .friend_request import FriendRequest
from .friendship import Friendship

__all__ = [
    "Base",
    "User",
    "StoredFile",
    "Message",
    "FriendRequest",
    "Friendship"
]
