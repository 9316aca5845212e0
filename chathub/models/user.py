from sqlalchemy import Column, String, Boolean
from .base import BaseModel

class User(BaseModel):
    __tablename__ = "users"
    
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=True)
    name = Column(String(100), nullable=True)  # Отображаемое имя
    avatar = Column(String(255), nullable=True)
    # Кэш присутствия; источник истины - PresenceRegistry
    online_status = Column(Boolean, default=False, nullable=False)
    status = Column(String(255), nullable=True)
