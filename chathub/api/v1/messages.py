from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from chathub.config import settings
from chathub.database import get_db
from chathub.repositories.file_repository import FileRepository, file_to_dict
from chathub.services.relay import MessageRelay
from chathub.websocket_manager import manager

router = APIRouter()

@router.get("/history/{room}")
async def get_room_history(
    room: str,
    limit: int = Query(50, ge=1, le=settings.HISTORY_LIMIT),
    db: AsyncSession = Depends(get_db)
):
    messages = await MessageRelay(db, manager).get_history(room, limit)
    return {"room": room, "messages": messages, "count": len(messages)}

@router.get("/files/{room}")
async def get_room_files(room: str, db: AsyncSession = Depends(get_db)):
    """Файлы, загруженные в комнату, от новых к старым"""
    files = await FileRepository(db).get_room_files(room)
    return {"room": room, "files": [file_to_dict(stored) for stored in files]}

@router.get("/rooms/{room}/count")
async def get_room_user_count(room: str):
    return {"room": room, "count": manager.occupancy_count(room)}
