from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, or_, func

from chathub.models.user import User

class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, username: str, email: Optional[str] = None, name: Optional[str] = None,
                     avatar: Optional[str] = None) -> User:
        db_user = User(username=username, email=email, name=name, avatar=avatar)
        self.db.add(db_user)
        await self.db.commit()
        await self.db.refresh(db_user)
        return db_user

    async def get_by_username(self, username: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def exists(self, username: str) -> bool:
        result = await self.db.execute(
            select(func.count(User.id)).where(User.username == username)
        )
        return (result.scalar() or 0) > 0

    async def set_online_status(self, username: str, online: bool, status: Optional[str] = None) -> bool:
        """Обновление кэшированного флага присутствия (и текстового статуса, если передан)"""
        values = {"online_status": online}
        if status is not None:
            values["status"] = status
        result = await self.db.execute(
            update(User).where(User.username == username).values(**values)
        )
        await self.db.commit()
        return result.rowcount > 0

    async def search(self, term: str, exclude_subqueries: list, limit: int) -> List[User]:
        """Поиск по подстроке username/name без учета регистра"""
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        query = select(User).where(
            or_(
                User.username.ilike(pattern, escape="\\"),
                User.name.ilike(pattern, escape="\\"),
            )
        )
        for subquery in exclude_subqueries:
            query = query.where(User.username.not_in(subquery))
        result = await self.db.execute(query.order_by(User.username.asc()).limit(limit))
        return list(result.scalars().all())
