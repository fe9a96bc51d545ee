"""Achievement endpoints: member unlocks, progress, claims, catalog."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from readingstats.api.deps import Caller, ensure_member_access, get_caller
from readingstats.core.cache import CacheBackend, get_cache
from readingstats.core.database import get_db
from readingstats.services.achievements import AchievementEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["achievements"])


# =============================================================================
# SCHEMAS
# =============================================================================

class AchievementInfo(BaseModel):
    name: str
    title: str | None
    icon: str | None


class AchievementResponse(BaseModel):
    """An unlocked achievement level."""
    id: int
    member_id: int
    achievement_type: str
    level: int
    points_awarded: int
    achieved_at: str | None
    is_claimed: bool
    claimed_at: str | None
    achievement_info: AchievementInfo


class RecentAchievementResponse(AchievementResponse):
    member_name: str


class AchievementProgressResponse(BaseModel):
    """Progress towards the next level of one achievement line."""
    achievement_type: str
    name: str
    description: str
    icon: str
    current_level: int
    next_level: int | None
    next_level_info: dict[str, Any] | None
    current_progress: int | str | None
    progress_percentage: int
    is_max_level: bool


class ClaimRequest(BaseModel):
    achievement_id: int


class ClaimResponse(BaseModel):
    achievement_id: int
    points_awarded: int
    claimed_at: str


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/members/{member_id}/achievements", response_model=list[AchievementResponse])
async def get_member_achievements(
    member_id: int,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
) -> list[dict[str, Any]]:
    """Achievements a member has unlocked, newest first."""
    ensure_member_access(caller, member_id)
    engine = AchievementEngine(db, cache)
    return await engine.member_achievements(member_id)


@router.get(
    "/members/{member_id}/achievements/progress",
    response_model=dict[str, AchievementProgressResponse],
)
async def get_achievement_progress(
    member_id: int,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
) -> dict[str, Any]:
    """Progress towards the next level of every achievement line."""
    ensure_member_access(caller, member_id)
    engine = AchievementEngine(db, cache)
    return await engine.progress(member_id)


@router.post("/achievements/claim", response_model=ClaimResponse)
async def claim_achievement(
    request: ClaimRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
) -> dict[str, Any]:
    """Claim the reward of an unlocked achievement. Only once."""
    engine = AchievementEngine(db, cache)
    return await engine.claim(request.achievement_id, caller.member_id, is_admin=caller.is_admin)


@router.get("/achievements/catalog")
async def get_achievement_catalog(
    db: AsyncSession = Depends(get_db),
) -> list[dict[str, Any]]:
    """Every achievement line with its five levels."""
    return AchievementEngine(db).available_achievements()


@router.get("/achievements/recent", response_model=list[RecentAchievementResponse])
async def get_recent_achievements(
    limit: int = Query(default=20, ge=1, le=100),
    member_id: int | None = Query(default=None),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> list[dict[str, Any]]:
    """Most recent unlocks across the platform or for one member."""
    if member_id is not None:
        ensure_member_access(caller, member_id)
    engine = AchievementEngine(db)
    return await engine.recent_achievements(limit, member_id)
