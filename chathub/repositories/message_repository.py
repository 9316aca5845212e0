from typing import Optional, List
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from chathub.models.message import Message

class MessageRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        username: str,
        room: str,
        text: Optional[str],
        type: str = "text",
        file_id: Optional[int] = None,
        reply_to: Optional[dict] = None,
        timestamp: Optional[datetime] = None,
        media_url: Optional[str] = None,
        media_type: Optional[str] = None,
    ) -> Message:
        """Создание нового сообщения"""
        message = Message(
            username=username,
            room=room,
            text=text,
            type=type,
            file_id=file_id,
            reply_to=reply_to,
            timestamp=timestamp or datetime.utcnow(),
            media_url=media_url,
            media_type=media_type,
        )
        self.db.add(message)
        await self.db.commit()
        await self.db.refresh(message)
        return message

    async def get_room_messages(self, room: str, limit: int = 50) -> List[Message]:
        """Последние limit сообщений комнаты, отсортированные по времени по возрастанию"""
        result = await self.db.execute(
            select(Message)
            .where(Message.room == room)
            .order_by(Message.timestamp.desc(), Message.id.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        messages = list(result.scalars().unique().all())
        messages.reverse()
        return messages
