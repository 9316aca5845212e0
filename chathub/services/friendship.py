"""Friend-request lifecycle and friends graph.

Requests move ``pending -> accepted | declined | expired`` and never leave a
terminal state. Uniqueness is enforced by the store:

* ``friend_requests`` has a partial unique index on the sorted pair for
  ``status = 'pending'``, so two concurrent sends for the same pair (in either
  direction) cannot both insert;
* ``friends`` stores one row per pair with ``user1 < user2``;
* responses use a conditional ``UPDATE ... WHERE status = 'pending'``.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chathub.exceptions import Conflict, InvalidArgument, InvalidState, NotFound, StoreError
from chathub.models.friend_request import FriendRequest
from chathub.models.user import User
from chathub.repositories.friend_repository import FriendRepository
from chathub.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

RESPONSES = ("accepted", "declined")


def _require(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidArgument(f"{field} is required")
    return str(value).strip()


class FriendshipService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.friends = FriendRepository(db)
        self.users = UserRepository(db)

    async def _rollback(self):
        try:
            await self.db.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback failed")

    async def _store_failure(self, operation: str, exc: SQLAlchemyError) -> StoreError:
        logger.error("Store failure in %s: %s", operation, exc)
        await self._rollback()
        return StoreError(f"{operation} failed")

    async def send_request(self, from_user: str, to_user: str) -> FriendRequest:
        from_user = _require(from_user, "from")
        to_user = _require(to_user, "to")
        if from_user == to_user:
            raise InvalidArgument("You cannot send a friend request to yourself")

        try:
            if not await self.users.exists(to_user):
                raise NotFound(f"User {to_user} does not exist")
            if not await self.users.exists(from_user):
                raise NotFound(f"User {from_user} does not exist")
            if await self.friends.get_pending_between(from_user, to_user):
                raise Conflict("A pending friend request already exists")
            if await self.friends.get_friendship(from_user, to_user):
                raise Conflict("You are already friends")

            request = await self.friends.add_request(from_user, to_user)
            await self.db.commit()
        except IntegrityError:
            # проигравший в гонке за одну и ту же пару
            await self._rollback()
            logger.info("Duplicate pending request %s -> %s rejected by the store", from_user, to_user)
            raise Conflict("A pending friend request already exists")
        except SQLAlchemyError as exc:
            raise await self._store_failure("sendRequest", exc) from exc

        logger.info("Friend request %s sent: %s -> %s", request.id, from_user, to_user)
        return request

    async def respond_to_request(self, request_id: int, decision: str,
                                 responder: Optional[str] = None) -> FriendRequest:
        if decision not in RESPONSES:
            raise InvalidArgument('Response must be "accepted" or "declined"')
        if request_id is None:
            raise InvalidArgument("requestId is required")

        try:
            request = await self.friends.get_request(request_id)
            if request is None:
                raise NotFound(f"Friend request {request_id} not found")
            if responder is not None and responder != request.to_user:
                raise InvalidArgument("Only the recipient can respond to a friend request")
            if not request.is_pending:
                raise InvalidState(f"Friend request {request_id} is already {request.status}")

            if not await self.friends.transition_pending(request_id, decision):
                await self._rollback()
                raise InvalidState(f"Friend request {request_id} is no longer pending")

            if decision == "accepted":
                try:
                    async with self.db.begin_nested():
                        await self.friends.add_friendship(request.from_user, request.to_user)
                except IntegrityError as exc:
                    if await self.friends.get_friendship(request.from_user, request.to_user) is None:
                        # вставка отклонена не из-за дубля; запрос остается pending
                        logger.error("Friendship %s <-> %s rejected by the store: %s",
                                     request.from_user, request.to_user, exc)
                        await self._rollback()
                        raise StoreError("respondToRequest failed") from exc
                    logger.info("Friendship %s <-> %s already exists", request.from_user, request.to_user)

            await self.db.commit()
            await self.db.refresh(request)
        except SQLAlchemyError as exc:
            raise await self._store_failure("respondToRequest", exc) from exc

        logger.info("Friend request %s %s by %s", request.id, decision, request.to_user)
        return request

    async def remove_friend(self, user_a: str, user_b: str) -> bool:
        user_a = _require(user_a, "username1")
        user_b = _require(user_b, "username2")
        try:
            removed = await self.friends.delete_friendship(user_a, user_b)
            await self.db.commit()
        except SQLAlchemyError as exc:
            raise await self._store_failure("removeFriend", exc) from exc
        if removed:
            logger.info("Friendship %s <-> %s removed", user_a, user_b)
        return removed > 0

    async def cancel_request(self, from_user: str, to_user: str) -> bool:
        from_user = _require(from_user, "from")
        to_user = _require(to_user, "to")
        try:
            removed = await self.friends.delete_pending(from_user, to_user)
            await self.db.commit()
        except SQLAlchemyError as exc:
            raise await self._store_failure("cancelRequest", exc) from exc
        return removed > 0

    async def expire_stale(self, max_age_days: int) -> int:
        if max_age_days is None or max_age_days < 0:
            raise InvalidArgument("max_age_days must be a non-negative number")
        cutoff = datetime.utcnow() - timedelta(days=max_age_days)
        try:
            count = await self.friends.expire_pending_before(cutoff)
            await self.db.commit()
        except SQLAlchemyError as exc:
            raise await self._store_failure("expireStale", exc) from exc
        logger.info("Expired %d pending friend requests older than %d days", count, max_age_days)
        return count

    async def cleanup_old_requests(self, days_old: int = 30) -> int:
        """Delete declined/expired requests created more than ``days_old`` days ago."""
        if days_old is None or days_old < 0:
            raise InvalidArgument("days_old must be a non-negative number")
        cutoff = datetime.utcnow() - timedelta(days=days_old)
        try:
            count = await self.friends.delete_finished_before(cutoff)
            await self.db.commit()
        except SQLAlchemyError as exc:
            raise await self._store_failure("cleanupOldRequests", exc) from exc
        logger.info("Removed %d finished friend requests older than %d days", count, days_old)
        return count

    async def search_candidates(self, term: str, excluding_user: str, limit: int = 10) -> List[User]:
        excluding_user = _require(excluding_user, "username")
        if limit is None or limit <= 0:
            raise InvalidArgument("limit must be positive")
        try:
            return await self.users.search(
                (term or "").strip(),
                [
                    [excluding_user],
                    self.friends.friend_usernames_subquery(excluding_user),
                    self.friends.pending_targets_subquery(excluding_user),
                ],
                limit,
            )
        except SQLAlchemyError as exc:
            raise await self._store_failure("searchCandidates", exc) from exc

    async def get_stats(self, username: str) -> dict:
        username = _require(username, "username")
        try:
            return {
                "friendsCount": await self.friends.count_friends(username),
                "pendingIncoming": await self.friends.count_incoming(username),
                "pendingOutgoing": await self.friends.count_outgoing(username),
            }
        except SQLAlchemyError as exc:
            raise await self._store_failure("getStats", exc) from exc

    async def get_request(self, request_id: int) -> Optional[FriendRequest]:
        try:
            return await self.friends.get_request(request_id)
        except SQLAlchemyError as exc:
            raise await self._store_failure("getRequest", exc) from exc

    async def are_friends(self, user_a: str, user_b: str) -> bool:
        try:
            return await self.friends.get_friendship(user_a, user_b) is not None
        except SQLAlchemyError as exc:
            raise await self._store_failure("areFriends", exc) from exc

    async def get_incoming_requests(self, username: str) -> List[dict]:
        username = _require(username, "username")
        try:
            return await self.friends.get_incoming(username)
        except SQLAlchemyError as exc:
            raise await self._store_failure("getPendingRequests", exc) from exc

    async def get_outgoing_requests(self, username: str) -> List[dict]:
        username = _require(username, "username")
        try:
            return await self.friends.get_outgoing(username)
        except SQLAlchemyError as exc:
            raise await self._store_failure("getOutgoingRequests", exc) from exc

    async def get_friends_list(self, username: str) -> List[dict]:
        username = _require(username, "username")
        try:
            return await self.friends.get_friends(username)
        except SQLAlchemyError as exc:
            raise await self._store_failure("getFriendsList", exc) from exc

    async def get_friend_usernames(self, username: str) -> List[str]:
        try:
            return await self.friends.get_friend_usernames(username)
        except SQLAlchemyError as exc:
            raise await self._store_failure("getFriendUsernames", exc) from exc
