import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chathub.config import settings
from chathub.exceptions import ChatError, InvalidArgument
from chathub.repositories.user_repository import UserRepository
from chathub.services.events import EventDispatcher
from chathub.services.friendship import FriendshipService
from chathub.services.relay import MessageRelay
from chathub.websocket_manager import Connection, ConnectionManager

logger = logging.getLogger(__name__)

def system_notice(text: str, room: str) -> dict:
    return {
        "username": "System",
        "text": text,
        "timestamp": datetime.utcnow().isoformat(),
        "room": room,
    }

class RoomCoordinator:
    def __init__(self, db: AsyncSession, manager: ConnectionManager):
        self.db = db
        self.manager = manager
        self.relay = MessageRelay(db, manager)
        self.dispatcher = EventDispatcher(manager)

    async def join(self, connection: Connection, username: str, room: str):
        if not username or not room:
            raise InvalidArgument("Username and room are required")

        if connection.current_room and connection.current_room != room:
            await self.leave(connection, connection.current_room)

        await self.bind_identity(connection, username)
        self.manager.add_to_room(connection, room)
        logger.info("%s joined room: %s", username, room)

        try:
            history = await self.relay.get_history(room, settings.HISTORY_LIMIT)
        except ChatError as exc:
            logger.error("Error fetching previous messages for %s: %s", room, exc)
            history = []
        await connection.send("previousMessages", history)

        await self.manager.broadcast_to_room(
            "message", system_notice(f"{username} has joined the room", room), room, exclude=connection
        )
        await self.broadcast_user_count(room)
        await self.announce_presence(username, True)

    async def leave(self, connection: Connection, room: Optional[str] = None) -> bool:
        room = room or connection.current_room
        if not room or connection.current_room != room:
            return False
        if not self.manager.remove_from_room(connection, room):
            return False

        if connection.username:
            await self.manager.broadcast_to_room(
                "message", system_notice(f"{connection.username} has left the room", room), room
            )
        await self.broadcast_user_count(room)
        return True

    async def disconnect(self, connection: Connection):
        logger.info("Connection %s disconnected (%s)", connection.id, connection.username)
        room = connection.current_room
        was_authoritative = self.manager.forget(connection)

        if connection.username and room:
            await self.manager.broadcast_to_room(
                "message", system_notice(f"{connection.username} has disconnected", room), room
            )
            await self.broadcast_user_count(room)

        if connection.username and was_authoritative:
            await self.announce_presence(connection.username, False)

    async def bind_identity(self, connection: Connection, username: str):
        """Привязка имени к соединению; прежнее имя снимается из присутствия."""
        previous = connection.username
        if previous and previous != username:
            if self.manager.presence.unregister(connection):
                logger.info("Connection %s switches from %s to %s", connection.id, previous, username)
                await self.announce_presence(previous, False)
        connection.username = username
        self.manager.presence.register(username, connection)

    def occupancy_count(self, room: str) -> int:
        return self.manager.occupancy_count(room)

    async def broadcast_user_count(self, room: str):
        await self.manager.broadcast_to_room(
            "roomUserCount", {"room": room, "count": self.occupancy_count(room)}, room
        )

    async def announce_presence(self, username: str, online: bool, status: Optional[str] = None) -> int:
        """Refresh the cached online flag and tell online friends. Never raises."""
        try:
            users = UserRepository(self.db)
            await users.set_online_status(username, online, status)
            user = await users.get_by_username(username)
            friends = await FriendshipService(self.db).get_friend_usernames(username)
        except (SQLAlchemyError, ChatError) as exc:
            logger.error("Error updating online status for %s: %s", username, exc)
            try:
                await self.db.rollback()
            except SQLAlchemyError:
                logger.exception("Rollback failed")
            return 0

        current_status = status if status is not None else (user.status if user else None)
        delivered = await self.dispatcher.presence_changed(username, online, current_status, friends)
        logger.info("Updated online status for %s: %s (%d friends notified)", username, online, delivered)
        return delivered
