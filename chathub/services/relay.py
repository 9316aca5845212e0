import json
import logging
import time
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chathub.config import settings
from chathub.exceptions import InvalidArgument, StoreError
from chathub.models.message import Message
from chathub.repositories.file_repository import FileRepository, file_to_dict
from chathub.repositories.message_repository import MessageRepository
from chathub.schemas.message import ChatMessageIn
from chathub.websocket_manager import ConnectionManager

logger = logging.getLogger(__name__)

DELIVERY_MODES = ("best_effort", "durable")

def parse_reply(reply_to) -> Optional[dict]:
    if reply_to is None or reply_to == "":
        return None
    if isinstance(reply_to, str):
        try:
            reply_to = json.loads(reply_to)
        except ValueError:
            logger.warning("Dropping unparsable replyTo: %r", reply_to)
            return None
    if not isinstance(reply_to, dict):
        logger.warning("Dropping replyTo of type %s", type(reply_to).__name__)
        return None
    return reply_to

def message_to_dict(message: Message) -> dict:
    return {
        "id": message.id,
        "username": message.username,
        "room": message.room,
        "text": message.text,
        "type": message.type,
        "file_id": message.file_id,
        "file": file_to_dict(message.file) if message.file is not None else None,
        "replyTo": message.reply_to,
        "timestamp": message.timestamp.isoformat(),
        "mediaUrl": message.media_url,
        "mediaType": message.media_type,
    }

class MessageRelay:
    def __init__(self, db: AsyncSession, manager: ConnectionManager, delivery_mode: Optional[str] = None):
        self.db = db
        self.manager = manager
        self.messages = MessageRepository(db)
        self.files = FileRepository(db)
        self.delivery_mode = delivery_mode or settings.MESSAGE_DELIVERY_MODE
        if self.delivery_mode not in DELIVERY_MODES:
            raise ValueError(f"Unknown delivery mode: {self.delivery_mode}")

    def validate(self, data: ChatMessageIn):
        if not data.room or not data.username:
            raise InvalidArgument("Missing required fields")
        if data.type == "file" and data.file is None:
            raise InvalidArgument("File data is required for file messages")
        if data.type != "file" and not data.text:
            raise InvalidArgument("Text is required for text messages")

    async def resolve_file(self, data: ChatMessageIn):
        """(metadata, stored file id); unknown ids keep the client metadata and no FK."""
        if data.type != "file" or data.file is None:
            return None, None
        try:
            stored = await self.files.get_by_id(data.file.id)
        except SQLAlchemyError as exc:
            logger.error("Could not load file %s: %s", data.file.id, exc)
            await self.db.rollback()
            stored = None
        if stored is None:
            logger.warning("File %s not found, using client metadata", data.file.id)
            return data.file.model_dump(), None
        return file_to_dict(stored), stored.id

    async def post_message(self, data: ChatMessageIn) -> dict:
        self.validate(data)
        reply = parse_reply(data.replyTo)
        file_data, file_id = await self.resolve_file(data)
        timestamp = datetime.utcnow()

        message_id = int(time.time() * 1000)
        try:
            message = await self.messages.create(
                username=data.username,
                room=data.room,
                text=data.text or None,
                type=data.type,
                file_id=file_id,
                reply_to=reply,
                timestamp=timestamp,
                media_url=data.mediaUrl,
                media_type=data.mediaType,
            )
            message_id = message.id
        except SQLAlchemyError as exc:
            await self.db.rollback()
            if self.delivery_mode == "durable":
                logger.error("Message from %s in %s not saved, not broadcasting: %s", data.username, data.room, exc)
                raise StoreError("Failed to save message") from exc
            logger.error("Error saving message from %s in %s: %s", data.username, data.room, exc)

        outgoing = {
            "id": message_id,
            "text": data.text,
            "username": data.username,
            "room": data.room,
            "type": data.type,
            "file": file_data,
            "replyTo": reply,
            "timestamp": timestamp.isoformat(),
            "mediaUrl": data.mediaUrl,
            "mediaType": data.mediaType,
        }
        await self.manager.broadcast_to_room("message", outgoing, data.room)
        return outgoing

    async def get_history(self, room: str, limit: Optional[int] = None) -> List[dict]:
        if not room:
            raise InvalidArgument("room is required")
        limit = settings.HISTORY_LIMIT if limit is None else limit
        if limit <= 0:
            raise InvalidArgument("limit must be positive")
        try:
            messages = await self.messages.get_room_messages(room, limit)
        except SQLAlchemyError as exc:
            logger.error("Error getting messages for room %s: %s", room, exc)
            raise StoreError("Failed to load messages") from exc
        return [message_to_dict(message) for message in messages]
