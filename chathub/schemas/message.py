from pydantic import BaseModel
from typing import Optional, Union, Literal

class FileReference(BaseModel):
    id: int
    name: Optional[str] = None
    url: Optional[str] = None
    size: Optional[int] = None
    type: Optional[str] = None
    mimeType: Optional[str] = None

class ChatMessageIn(BaseModel):
    username: Optional[str] = None
    room: Optional[str] = None
    text: Optional[str] = None
    type: Literal["text", "file"] = "text"
    file: Optional[FileReference] = None
    # Клиенты шлют replyTo либо объектом, либо JSON-строкой
    replyTo: Optional[Union[dict, str]] = None
    mediaUrl: Optional[str] = None
    mediaType: Optional[str] = None

class JoinRoom(BaseModel):
    username: Optional[str] = None
    room: Optional[str] = None

class LeaveRoom(BaseModel):
    room: Optional[str] = None
