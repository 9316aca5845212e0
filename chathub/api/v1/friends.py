from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from chathub.config import settings
from chathub.database import get_db
from chathub.schemas.friends import UserCandidate, FriendsStats
from chathub.services.friendship import FriendshipService

router = APIRouter()

@router.get("/search", response_model=List[UserCandidate])
async def search_candidates(
    term: str = Query("", description="Part of a username or display name"),
    username: str = Query(..., description="Who is searching"),
    limit: int = Query(settings.SEARCH_LIMIT, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """Candidates for a friend request: not the user, not friends, no pending request from the user"""
    return await FriendshipService(db).search_candidates(term, username, limit)

@router.get("/stats/{username}", response_model=FriendsStats)
async def get_friends_stats(username: str, db: AsyncSession = Depends(get_db)):
    return await FriendshipService(db).get_stats(username)

@router.get("/requests/incoming/{username}")
async def get_incoming_requests(username: str, db: AsyncSession = Depends(get_db)):
    requests = await FriendshipService(db).get_incoming_requests(username)
    return {"requests": requests, "count": len(requests)}

@router.get("/requests/outgoing/{username}")
async def get_outgoing_requests(username: str, db: AsyncSession = Depends(get_db)):
    requests = await FriendshipService(db).get_outgoing_requests(username)
    return {"requests": requests, "count": len(requests)}

@router.post("/maintenance/expire")
async def expire_stale_requests(
    max_age_days: int = Query(settings.FRIEND_REQUEST_MAX_AGE_DAYS, ge=0),
    db: AsyncSession = Depends(get_db)
):
    """Pending requests older than max_age_days become expired. Meant for an external scheduler."""
    expired = await FriendshipService(db).expire_stale(max_age_days)
    return {"expired": expired}

@router.post("/maintenance/cleanup")
async def cleanup_old_requests(
    days_old: int = Query(settings.FRIEND_REQUEST_CLEANUP_DAYS, ge=0),
    db: AsyncSession = Depends(get_db)
):
    deleted = await FriendshipService(db).cleanup_old_requests(days_old)
    return {"deleted": deleted}
