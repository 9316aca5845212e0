import json
import logging
import itertools
from typing import Dict, List, Optional, Set

from chathub.presence import PresenceRegistry

logger = logging.getLogger(__name__)

_connection_ids = itertools.count(1)

class Connection:
    """Live socket plus the session state the server tracks for it."""

    def __init__(self, websocket, username: Optional[str] = None):
        self.id = next(_connection_ids)
        self.websocket = websocket
        self.username = username
        self.current_room: Optional[str] = None
        self.closed = False

    async def send(self, event: str, data) -> bool:
        if self.closed:
            return False
        try:
            await self.websocket.send_text(json.dumps({"type": event, "data": data}, default=str))
            return True
        except Exception as exc:
            # сокет уже закрыт клиентом
            logger.debug("Send of %s to connection %s failed: %s", event, self.id, exc)
            self.closed = True
            return False

    def __repr__(self):
        return f"<Connection {self.id} user={self.username} room={self.current_room}>"

class ConnectionManager:
    def __init__(self):
        self.connections: Set[Connection] = set()
        self.rooms: Dict[str, Set[Connection]] = {}
        self.presence = PresenceRegistry()

    async def connect(self, websocket, username: Optional[str] = None) -> Connection:
        await websocket.accept()
        connection = Connection(websocket, username)
        self.connections.add(connection)
        if username:
            self.presence.register(username, connection)
        logger.info("New connection %s (%s)", connection.id, username or "anonymous")
        return connection

    def add_to_room(self, connection: Connection, room: str):
        self.rooms.setdefault(room, set()).add(connection)
        connection.current_room = room

    def remove_from_room(self, connection: Connection, room: str) -> bool:
        members = self.rooms.get(room)
        if not members or connection not in members:
            return False
        members.discard(connection)
        if not members:
            del self.rooms[room]
        if connection.current_room == room:
            connection.current_room = None
        return True

    def forget(self, connection: Connection) -> bool:
        """Drop the connection from every map; True if it was the user's authoritative handle."""
        connection.closed = True
        self.connections.discard(connection)
        if connection.current_room:
            self.remove_from_room(connection, connection.current_room)
        return self.presence.unregister(connection)

    def room_members(self, room: str) -> List[Connection]:
        return list(self.rooms.get(room, ()))

    def occupancy_count(self, room: str) -> int:
        return len(self.rooms.get(room, ()))

    async def send_personal_message(self, event: str, data, username: str) -> bool:
        connection = self.presence.find(username)
        if connection is None:
            return False
        return await connection.send(event, data)

    async def broadcast_to_room(self, event: str, data, room: str, exclude: Optional[Connection] = None) -> int:
        delivered = 0
        for connection in self.room_members(room):
            if connection is exclude:
                continue
            if await connection.send(event, data):
                delivered += 1
        return delivered

    def get_connected_users(self) -> List[str]:
        return self.presence.online_usernames()

    def is_user_online(self, username: str) -> bool:
        return self.presence.is_online(username)

    def reset(self):
        self.connections.clear()
        self.rooms.clear()
        self.presence.clear()

manager = ConnectionManager()
