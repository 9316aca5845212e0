from typing import Optional, List
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, and_, or_, func, case

from chathub.models.friend_request import FriendRequest
from chathub.models.friendship import Friendship, canonical_pair
from chathub.models.user import User

class FriendRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    # --- friend_requests ---

    async def get_request(self, request_id: int) -> Optional[FriendRequest]:
        result = await self.db.execute(
            select(FriendRequest)
            .where(FriendRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_pending_between(self, user_a: str, user_b: str) -> Optional[FriendRequest]:
        """Pending-запрос между двумя пользователями в любом направлении"""
        low, high = canonical_pair(user_a, user_b)
        result = await self.db.execute(
            select(FriendRequest).where(
                and_(
                    FriendRequest.pair_low == low,
                    FriendRequest.pair_high == high,
                    FriendRequest.status == "pending",
                )
            )
        )
        return result.scalars().first()

    async def add_request(self, from_user: str, to_user: str) -> FriendRequest:
        """Вставка pending-запроса без коммита; уникальность пары проверяет индекс"""
        low, high = canonical_pair(from_user, to_user)
        now = datetime.utcnow()
        request = FriendRequest(
            from_user=from_user,
            to_user=to_user,
            status="pending",
            pair_low=low,
            pair_high=high,
            created_at=now,
            updated_at=now,
        )
        self.db.add(request)
        await self.db.flush()
        return request

    async def transition_pending(self, request_id: int, status: str) -> bool:
        """Перевод запроса из pending; False, если запрос уже не pending"""
        result = await self.db.execute(
            update(FriendRequest)
            .where(and_(FriendRequest.id == request_id, FriendRequest.status == "pending"))
            .values(status=status, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def delete_pending(self, from_user: str, to_user: str) -> int:
        result = await self.db.execute(
            delete(FriendRequest).where(
                and_(
                    FriendRequest.from_user == from_user,
                    FriendRequest.to_user == to_user,
                    FriendRequest.status == "pending",
                )
            )
        )
        return result.rowcount

    async def expire_pending_before(self, cutoff: datetime) -> int:
        result = await self.db.execute(
            update(FriendRequest)
            .where(and_(FriendRequest.status == "pending", FriendRequest.created_at < cutoff))
            .values(status="expired", updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete_finished_before(self, cutoff: datetime) -> int:
        result = await self.db.execute(
            delete(FriendRequest).where(
                and_(
                    FriendRequest.status.in_(("declined", "expired")),
                    FriendRequest.created_at < cutoff,
                )
            )
        )
        return result.rowcount

    async def get_incoming(self, username: str) -> List[dict]:
        """Входящие pending-запросы с данными отправителя"""
        result = await self.db.execute(
            select(FriendRequest, User.name, User.avatar)
            .outerjoin(User, User.username == FriendRequest.from_user)
            .where(and_(FriendRequest.to_user == username, FriendRequest.status == "pending"))
            .order_by(FriendRequest.created_at.desc(), FriendRequest.id.desc())
        )
        return [
            {
                **request_to_dict(request),
                "from_user_name": name,
                "from_user_avatar": avatar,
            }
            for request, name, avatar in result.all()
        ]

    async def get_outgoing(self, username: str) -> List[dict]:
        """Исходящие pending-запросы с данными получателя"""
        result = await self.db.execute(
            select(FriendRequest, User.name, User.avatar)
            .outerjoin(User, User.username == FriendRequest.to_user)
            .where(and_(FriendRequest.from_user == username, FriendRequest.status == "pending"))
            .order_by(FriendRequest.created_at.desc(), FriendRequest.id.desc())
        )
        return [
            {
                **request_to_dict(request),
                "to_user_name": name,
                "to_user_avatar": avatar,
            }
            for request, name, avatar in result.all()
        ]

    async def count_incoming(self, username: str) -> int:
        result = await self.db.execute(
            select(func.count(FriendRequest.id)).where(
                and_(FriendRequest.to_user == username, FriendRequest.status == "pending")
            )
        )
        return result.scalar() or 0

    async def count_outgoing(self, username: str) -> int:
        result = await self.db.execute(
            select(func.count(FriendRequest.id)).where(
                and_(FriendRequest.from_user == username, FriendRequest.status == "pending")
            )
        )
        return result.scalar() or 0

    def pending_targets_subquery(self, username: str):
        return select(FriendRequest.to_user).where(
            and_(FriendRequest.from_user == username, FriendRequest.status == "pending")
        )

    # --- friends ---

    async def add_friendship(self, user_a: str, user_b: str) -> Friendship:
        user1, user2 = canonical_pair(user_a, user_b)
        friendship = Friendship(user1=user1, user2=user2)
        self.db.add(friendship)
        await self.db.flush()
        return friendship

    async def get_friendship(self, user_a: str, user_b: str) -> Optional[Friendship]:
        user1, user2 = canonical_pair(user_a, user_b)
        result = await self.db.execute(
            select(Friendship).where(and_(Friendship.user1 == user1, Friendship.user2 == user2))
        )
        return result.scalar_one_or_none()

    async def delete_friendship(self, user_a: str, user_b: str) -> int:
        user1, user2 = canonical_pair(user_a, user_b)
        result = await self.db.execute(
            delete(Friendship).where(and_(Friendship.user1 == user1, Friendship.user2 == user2))
        )
        return result.rowcount

    async def count_friends(self, username: str) -> int:
        result = await self.db.execute(
            select(func.count(Friendship.id)).where(
                or_(Friendship.user1 == username, Friendship.user2 == username)
            )
        )
        return result.scalar() or 0

    def friend_usernames_subquery(self, username: str):
        other = case((Friendship.user1 == username, Friendship.user2), else_=Friendship.user1)
        return select(other).where(or_(Friendship.user1 == username, Friendship.user2 == username))

    async def get_friend_usernames(self, username: str) -> List[str]:
        result = await self.db.execute(self.friend_usernames_subquery(username))
        return list(result.scalars().all())

    async def get_friends(self, username: str) -> List[dict]:
        """Список друзей с профилем и кэшированным статусом"""
        other = case((Friendship.user1 == username, Friendship.user2), else_=Friendship.user1)
        result = await self.db.execute(
            select(Friendship, User)
            .outerjoin(User, User.username == other)
            .where(or_(Friendship.user1 == username, Friendship.user2 == username))
            .order_by(Friendship.created_at.desc(), Friendship.id.desc())
        )
        friends = []
        for friendship, user in result.all():
            friends.append({
                "friend_username": friendship.other(username),
                "friend_name": user.name if user else None,
                "friend_avatar": user.avatar if user else None,
                "friend_online": bool(user.online_status) if user else False,
                "friend_status": user.status if user else None,
                "created_at": friendship.created_at.isoformat(),
            })
        return friends

def request_to_dict(request: FriendRequest) -> dict:
    return {
        "id": request.id,
        "from_user": request.from_user,
        "to_user": request.to_user,
        "status": request.status,
        "created_at": request.created_at.isoformat() if request.created_at else None,
        "updated_at": request.updated_at.isoformat() if request.updated_at else None,
    }
