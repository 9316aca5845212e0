from sqlalchemy import Column, Integer, ForeignKey, Text, DateTime, String, JSON, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from .base import BaseModel

class Message(BaseModel):
    __tablename__ = "messages"
    
    username = Column(String(50), nullable=False, index=True)
    room = Column(String(100), nullable=False)
    text = Column(Text, nullable=True)
    type = Column(String(16), nullable=False, default="text")
    file_id = Column(Integer, ForeignKey("files.id"), nullable=True)
    reply_to = Column(JSON, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    media_url = Column(String(500), nullable=True)
    media_type = Column(String(100), nullable=True)
    
    file = relationship("StoredFile", lazy="joined")

    # История комнаты читается по (room, timestamp)
    __table_args__ = (
        Index("ix_messages_room_timestamp", "room", "timestamp"),
    )
