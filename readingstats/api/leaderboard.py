"""Leaderboard and member rank endpoints."""

import logging
from typing import Any, Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from readingstats.api.deps import Caller, ensure_member_access, get_caller
from readingstats.core.cache import CacheBackend, get_cache
from readingstats.core.config import settings
from readingstats.core.database import get_db
from readingstats.services.ranking import RankingEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["leaderboards"])

Metric = Literal["words", "stories", "current_streak", "longest_streak", "achievements"]
Period = Literal["day", "week", "month", "quarter", "year", "all"]
LevelFilter = Literal["beginner", "elementary", "intermediate", "advanced", "expert", "master"]


# =============================================================================
# SCHEMAS
# =============================================================================

class LeaderboardEntryResponse(BaseModel):
    """Single leaderboard entry."""
    rank: int
    score: int
    member_id: int
    member_name: str
    reading_level: str
    member_since: str | None = None
    total_words: int
    total_stories: int
    reading_days: int
    current_streak: int
    longest_streak: int
    total_points: int
    total_achievements: int


class LeaderboardResponse(BaseModel):
    """One page of a leaderboard."""
    metric: str
    period: str
    reading_level: str | None
    limit: int
    offset: int
    total_entries: int
    entries: list[LeaderboardEntryResponse]


class RankResponse(BaseModel):
    metric: str
    rank: int
    total_participants: int
    percentile: int
    score: int


class MemberRankResponse(BaseModel):
    member_id: int
    period: str
    rankings: dict[str, RankResponse]


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/leaderboards/overview")
async def get_global_overview(
    period: Period = Query(default="month"),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
) -> dict[str, Any]:
    """Platform-wide totals, top performers and level distribution."""
    engine = RankingEngine(db, cache)
    return await engine.global_overview(period)


@router.get("/leaderboards/{metric}", response_model=LeaderboardResponse)
async def get_leaderboard(
    metric: Metric,
    period: Period = Query(default="month"),
    reading_level: LevelFilter | None = Query(default=None),
    limit: int = Query(default=settings.leaderboard_default_limit, ge=1, le=settings.leaderboard_max_limit),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
) -> dict[str, Any]:
    """Members ordered by a metric, paginated."""
    engine = RankingEngine(db, cache)
    return await engine.leaderboard(metric, period, reading_level, limit, offset)


@router.get("/members/{member_id}/rank", response_model=MemberRankResponse)
async def get_member_rank(
    member_id: int,
    period: Period = Query(default="month"),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
) -> dict[str, Any]:
    """Rank and percentile of a member on every metric."""
    ensure_member_access(caller, member_id)
    engine = RankingEngine(db, cache)
    return await engine.member_rank(member_id, period)
