"""Reading session and statistics endpoints."""

import logging
from datetime import date, datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from readingstats.api.deps import Caller, ensure_member_access, get_caller
from readingstats.core.cache import CacheBackend, get_cache
from readingstats.core.database import get_db
from readingstats.services.analytics import MemberComparisonService, ReadingTrendAnalyzer
from readingstats.services.daily_stats import DailyStatsAggregator, ReadingSessionEvent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reading"])

Period = Literal["day", "week", "month", "quarter", "year", "all"]


# =============================================================================
# SCHEMAS
# =============================================================================

class SessionRequest(BaseModel):
    """A finished reading session."""
    member_id: int
    story_id: int
    words_read: int = Field(ge=0)
    reading_time: int = Field(ge=0, description="Seconds spent reading")
    reading_progress: float = Field(ge=0, le=100, description="Percent of the story read")
    session_start: datetime
    session_end: datetime
    completed: bool = False


class AggregateResponse(BaseModel):
    """Daily aggregate after recording a session."""
    member_id: int
    date: str
    words_read: int
    stories_completed: int
    reading_time_minutes: int
    reading_streak_days: int
    streak_start_date: str | None
    longest_streak_days: int
    reading_level: str
    current_streak: int
    efficiency_score: float
    new_achievements: list[dict[str, Any]]


class MemberStatisticsResponse(BaseModel):
    """Member reading statistics for a period."""
    member_id: int
    period: str
    total_words: int
    total_stories: int
    total_time_minutes: int
    reading_days: int
    current_streak: int
    longest_streak: int
    daily_average: int
    completion_rate: float
    reading_level: str
    achievements_earned: int


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/sessions", response_model=AggregateResponse, status_code=status.HTTP_201_CREATED)
async def record_session(
    request: SessionRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
) -> dict[str, Any]:
    """Record a reading session and return the updated daily aggregate."""
    ensure_member_access(caller, request.member_id)

    event = ReadingSessionEvent(
        member_id=request.member_id,
        story_id=request.story_id,
        words_read=request.words_read,
        time_spent_seconds=request.reading_time,
        reading_progress=request.reading_progress,
        session_start=request.session_start,
        session_end=request.session_end,
        completed=request.completed,
    )
    aggregator = DailyStatsAggregator(db, cache)
    return await aggregator.record_session(event)


@router.get("/members/{member_id}/statistics", response_model=MemberStatisticsResponse)
async def get_member_statistics(
    member_id: int,
    period: Period = Query(default="month"),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
) -> dict[str, Any]:
    """Totals, streaks and level for a member over a period."""
    ensure_member_access(caller, member_id)
    aggregator = DailyStatsAggregator(db, cache)
    return await aggregator.member_statistics(member_id, period)


@router.get("/members/{member_id}/daily")
async def get_daily_snapshot(
    member_id: int,
    day: date | None = Query(default=None, alias="date"),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
) -> dict[str, Any]:
    """One day's aggregate with goal progress, efficiency and daily ranking."""
    ensure_member_access(caller, member_id)
    aggregator = DailyStatsAggregator(db, cache)
    return await aggregator.daily_snapshot(member_id, day)


@router.get("/members/{member_id}/trends")
async def get_member_trends(
    member_id: int,
    period: Period = Query(default="month"),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Daily series, slopes and a next-day prediction."""
    ensure_member_access(caller, member_id)
    analyzer = ReadingTrendAnalyzer(db)
    return await analyzer.member_trends(member_id, period)


@router.get("/members/{member_id}/comparisons")
async def get_member_comparisons(
    member_id: int,
    period: Period = Query(default="month"),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Member vs platform average, percentile, peer group and level standing."""
    ensure_member_access(caller, member_id)
    service = MemberComparisonService(db)
    return await service.member_comparisons(member_id, period)
