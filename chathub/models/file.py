from sqlalchemy import Column, String, BigInteger
from .base import BaseModel

class StoredFile(BaseModel):
    __tablename__ = "files"

    filename = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size = Column(BigInteger, nullable=False, default=0)
    file_type = Column(String(32), nullable=False, default="other")
    mime_type = Column(String(100), nullable=True)
    username = Column(String(50), nullable=False, index=True)
    room = Column(String(100), nullable=False, index=True)
