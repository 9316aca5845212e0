from sqlalchemy import Column, String, UniqueConstraint
from .base import BaseModel

def canonical_pair(user_a: str, user_b: str) -> tuple:
    """Дружба хранится одной строкой с user1 < user2 в порядке Python.

    Порядок задается только здесь: collation базы может сравнивать строки иначе.
    """
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)

class Friendship(BaseModel):
    __tablename__ = "friends"
    
    user1 = Column(String(50), nullable=False, index=True)
    user2 = Column(String(50), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("user1", "user2", name="unique_friend_pair"),
    )

    def other(self, username: str) -> str:
        return self.user2 if self.user1 == username else self.user1
