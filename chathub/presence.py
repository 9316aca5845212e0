import logging
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

class PresenceRegistry:
    """username -> authoritative connection.

    One handle per username: a second registration replaces the first, so
    friend and presence events are never delivered twice. The registry lives
    in process memory only; after a restart every user is offline until they
    reconnect.
    """

    def __init__(self):
        self._connections: Dict[str, "Connection"] = {}

    def register(self, username: str, connection) -> Optional["Connection"]:
        previous = self._connections.get(username)
        self._connections[username] = connection
        if previous is not None and previous is not connection:
            logger.info("Connection %s replaces %s for %s", connection.id, previous.id, username)
            return previous
        return None

    def unregister(self, connection) -> bool:
        username = connection.username
        if username is None:
            return False
        if self._connections.get(username) is connection:
            del self._connections[username]
            return True
        return False

    def find(self, username: str) -> Optional["Connection"]:
        return self._connections.get(username)

    def is_online(self, username: str) -> bool:
        return username in self._connections

    def online_usernames(self) -> List[str]:
        return list(self._connections.keys())

    def clear(self):
        self._connections.clear()

    def __len__(self) -> int:
        return len(self._connections)
