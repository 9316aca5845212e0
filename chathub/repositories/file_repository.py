import os
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from chathub.config import settings
from chathub.models.file import StoredFile

ALLOWED_FILE_TYPES = {
    "images": ["jpg", "jpeg", "png", "gif", "bmp", "webp", "svg"],
    "videos": ["mp4", "avi", "mov", "wmv", "flv", "webm", "mkv"],
    "documents": ["pdf", "doc", "docx", "txt", "rtf", "odt"],
    "audio": ["mp3", "wav", "ogg", "aac", "flac", "m4a"],
    "archives": ["zip", "rar", "7z", "tar", "gz"],
    "spreadsheets": ["xls", "xlsx", "csv", "ods"],
    "presentations": ["ppt", "pptx", "odp"],
    "code": ["js", "html", "css", "py", "java", "cpp", "c", "php", "rb", "go", "rs", "ts", "json", "xml", "yml", "yaml"],
}

def get_file_extension(filename: str) -> str:
    return os.path.splitext(filename)[1].lower().lstrip(".")

def get_file_type(filename: str) -> str:
    extension = get_file_extension(filename)
    for file_type, extensions in ALLOWED_FILE_TYPES.items():
        if extension in extensions:
            return file_type
    return "other"

def file_to_dict(stored: StoredFile) -> dict:
    """Метаданные файла в том виде, в котором их видит клиент"""
    return {
        "id": stored.id,
        "name": stored.original_name,
        "url": f"{settings.UPLOAD_URL_PREFIX}/{stored.filename}",
        "size": stored.file_size,
        "type": stored.file_type,
        "mimeType": stored.mime_type,
    }

class FileRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        filename: str,
        original_name: str,
        file_path: str,
        file_size: int,
        mime_type: Optional[str],
        username: str,
        room: str,
        file_type: Optional[str] = None,
    ) -> StoredFile:
        """Сохранение метаданных файла, загруженного внешним сервисом"""
        stored = StoredFile(
            filename=filename,
            original_name=original_name,
            file_path=file_path,
            file_size=file_size,
            file_type=file_type or get_file_type(original_name),
            mime_type=mime_type,
            username=username,
            room=room,
        )
        self.db.add(stored)
        await self.db.commit()
        await self.db.refresh(stored)
        return stored

    async def get_by_id(self, file_id: int) -> Optional[StoredFile]:
        result = await self.db.execute(select(StoredFile).where(StoredFile.id == file_id))
        return result.scalar_one_or_none()

    async def get_room_files(self, room: str) -> List[StoredFile]:
        result = await self.db.execute(
            select(StoredFile).where(StoredFile.room == room).order_by(StoredFile.created_at.desc())
        )
        return list(result.scalars().all())
