from sqlalchemy import Column, String, Index, CheckConstraint, text
from .base import BaseModel

FRIEND_REQUEST_STATUSES = ("pending", "accepted", "declined", "expired")

class FriendRequest(BaseModel):
    __tablename__ = "friend_requests"
    
    from_user = Column(String(50), nullable=False, index=True)
    to_user = Column(String(50), nullable=False, index=True)
    status = Column(String(16), nullable=False, default="pending", index=True)

    # Отсортированная пара; нужна для уникальности в обе стороны
    pair_low = Column(String(50), nullable=False)
    pair_high = Column(String(50), nullable=False)

    # Не более одного pending-запроса на неупорядоченную пару
    __table_args__ = (
        Index(
            "uq_friend_requests_pending_pair",
            "pair_low",
            "pair_high",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        CheckConstraint(
            "status IN (" + ", ".join(f"'{status}'" for status in FRIEND_REQUEST_STATUSES) + ")",
            name="friend_request_status",
        ),
    )

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"
