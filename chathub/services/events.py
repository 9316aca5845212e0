import logging
from typing import Iterable, List

from chathub.models.friend_request import FriendRequest
from chathub.websocket_manager import ConnectionManager

logger = logging.getLogger(__name__)

class EventDispatcher:
    """Routes friend-system outcomes to whoever is online right now.

    Offline recipients are skipped: there is no queue, they see the new state
    on their next getPendingRequests/getFriendsList.
    """

    def __init__(self, manager: ConnectionManager):
        self.manager = manager

    async def deliver(self, username: str, event: str, data) -> bool:
        delivered = await self.manager.send_personal_message(event, data, username)
        if not delivered:
            logger.debug("%s for %s dropped: user offline", event, username)
        return delivered

    async def friend_request_sent(self, request: FriendRequest) -> bool:
        return await self.deliver(request.to_user, "newFriendRequest", {
            "from": request.from_user,
            "requestId": request.id,
            "createdAt": request.created_at.isoformat(),
        })

    async def friend_request_responded(self, request: FriendRequest) -> bool:
        return await self.deliver(request.from_user, "friendRequestUpdate", {
            "requestId": request.id,
            "response": request.status,
            "from": request.to_user,
        })

    async def friend_request_cancelled(self, from_user: str, to_user: str) -> bool:
        return await self.deliver(to_user, "friendRequestCancelled", {"from": from_user})

    async def friends_list_changed(self, username: str, friends: List[dict]) -> bool:
        return await self.deliver(username, "friendsListUpdate", {
            "friends": self.with_presence(friends),
        })

    async def friend_removed(self, username: str, removed_by: str) -> bool:
        return await self.deliver(username, "friendRemoved", {"username": removed_by})

    async def presence_changed(self, username: str, online: bool, status, friends: Iterable[str]) -> int:
        payload = {"username": username, "online": online, "status": status or ""}
        delivered = 0
        for friend in friends:
            if await self.deliver(friend, "friendStatusUpdate", payload):
                delivered += 1
        return delivered

    def with_presence(self, friends: List[dict]) -> List[dict]:
        """Replace the cached online flag with what the registry knows."""
        return [
            {**friend, "friend_online": self.manager.is_user_online(friend["friend_username"])}
            for friend in friends
        ]
