"""Ranking engine - member ranks, paginated leaderboards, platform overview."""

import logging
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Any, Callable

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from readingstats.core.cache import CacheBackend
from readingstats.core.config import settings
from readingstats.core.exceptions import NotFoundError, ValidationError
from readingstats.models.achievement import AchievementUnlock
from readingstats.models.member import Member
from readingstats.models.reading import DailyReadingStat
from readingstats.services.achievement_catalog import ORDINAL_LEVELS
from readingstats.services.periods import (
    Clock,
    as_utc,
    day_start,
    period_start,
    utc_now,
    validate_period,
)
from readingstats.services.streaks import current_streak

logger = logging.getLogger(__name__)

METRICS = ("words", "stories", "current_streak", "longest_streak", "achievements")

TOP_PERFORMER_METRICS = {
    "words_leader": "words",
    "stories_leader": "stories",
    "streak_leader": "current_streak",
    "achievements_leader": "achievements",
}

# Recent milestones shown on the platform overview
MILESTONE_WINDOW_DAYS = 7
MILESTONE_MIN_LEVEL = 3
MILESTONE_DAILY_WORDS = 1000
MILESTONE_STREAK_DAYS = 30
RECENT_MILESTONES_LIMIT = 10


# =============================================================================
# PURE RANKING HELPERS
# =============================================================================

def competition_rank(score: float, population: list[float]) -> int:
    """1 + number of scores strictly greater. Ties share a rank (1, 2, 2, 4)."""
    return 1 + sum(1 for other in population if other > score)


def percentile(rank: int, total: int) -> int:
    """Share of the population at or below ``rank``, 0-100."""
    if total <= 0:
        return 0
    return max(0, round((total - rank + 1) / total * 100))


@dataclass
class Standing:
    """A member's aggregated values for one period."""

    member_id: int
    member_name: str
    reading_level: str
    member_since: str | None = None
    total_words: int = 0
    total_stories: int = 0
    reading_days: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    total_points: int = 0
    total_achievements: int = 0


SCORE_FIELDS = {
    "words": "total_words",
    "stories": "total_stories",
    "current_streak": "current_streak",
    "longest_streak": "longest_streak",
    "achievements": "total_points",
}

# Leaderboard order per metric; member_id closes every order
SORT_KEYS: dict[str, Callable[[Standing], tuple]] = {
    "words": lambda s: (-s.total_words, s.member_id),
    "stories": lambda s: (-s.total_stories, -s.total_words, s.member_id),
    "current_streak": lambda s: (-s.current_streak, -s.total_words, s.member_id),
    "longest_streak": lambda s: (-s.longest_streak, -s.total_words, s.member_id),
    "achievements": lambda s: (-s.total_points, -s.total_achievements, s.member_id),
}


def score_of(standing: Standing, metric: str) -> int:
    return getattr(standing, SCORE_FIELDS[metric])


def validate_metric(metric: str) -> str:
    if metric not in METRICS:
        raise ValidationError(
            f"Unknown leaderboard metric '{metric}'",
            details={"allowed": list(METRICS)},
        )
    return metric


def validate_level(reading_level: str | None) -> str | None:
    if reading_level is not None and reading_level not in ORDINAL_LEVELS:
        raise ValidationError(
            f"Unknown reading level '{reading_level}'",
            details={"allowed": list(ORDINAL_LEVELS)},
        )
    return reading_level


def sorted_standings(standings: list[Standing], metric: str) -> list[Standing]:
    return sorted(standings, key=SORT_KEYS[metric])


def leaderboard_page(
    standings: list[Standing], metric: str, limit: int, offset: int
) -> list[dict[str, Any]]:
    """Slice the sorted population; rank is the position in the listing."""
    page = sorted_standings(standings, metric)[offset:offset + limit]
    entries = []
    for index, standing in enumerate(page):
        entry = {"rank": offset + index + 1, "score": score_of(standing, metric)}
        entry.update(asdict(standing))
        entries.append(entry)
    return entries


# =============================================================================
# RANKING ENGINE
# =============================================================================

class RankingEngine:
    """Computes ranks and leaderboards on demand; results are cache candidates."""

    def __init__(
        self,
        db: AsyncSession,
        cache: CacheBackend | None = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.cache = cache
        self.clock = clock

    async def _cached(self, key: str, ttl: int, factory: Callable) -> Any:
        if self.cache is None:
            return await factory()
        return await self.cache.remember(key, ttl, factory)

    # -------------------------------------------------------------------------
    # Population
    # -------------------------------------------------------------------------

    async def standings(
        self, metric: str, period: str, reading_level: str | None = None
    ) -> list[Standing]:
        """Every member in the period's population with their aggregates."""
        today = self.clock().date()
        start = period_start(period, today)
        if metric == "achievements":
            return await self._achievement_standings(start, reading_level)
        return await self._reading_standings(start, today, reading_level)

    async def _reading_standings(
        self, start: date | None, today: date, reading_level: str | None
    ) -> list[Standing]:
        query = (
            select(
                DailyReadingStat.member_id,
                Member.name,
                Member.reading_level,
                Member.created_at,
                func.sum(DailyReadingStat.words_read),
                func.sum(DailyReadingStat.stories_completed),
                func.count(DailyReadingStat.id),
                func.max(DailyReadingStat.longest_streak_days),
            )
            .join(Member, Member.id == DailyReadingStat.member_id)
            .where(DailyReadingStat.words_read > 0, DailyReadingStat.date <= today)
            .group_by(
                DailyReadingStat.member_id, Member.name, Member.reading_level, Member.created_at
            )
        )
        if start is not None:
            query = query.where(DailyReadingStat.date >= start)
        if reading_level is not None:
            query = query.where(Member.reading_level == reading_level)

        result = await self.db.execute(query)
        standings = {
            row[0]: Standing(
                member_id=row[0],
                member_name=row[1],
                reading_level=row[2],
                member_since=row[3].date().isoformat() if row[3] else None,
                total_words=int(row[4] or 0),
                total_stories=int(row[5] or 0),
                reading_days=int(row[6] or 0),
                longest_streak=int(row[7] or 0),
            )
            for row in result.all()
        }
        if not standings:
            return []

        for member_id, streak in (await self._current_streaks(list(standings), today)).items():
            standings[member_id].current_streak = streak
        return list(standings.values())

    async def _current_streaks(self, member_ids: list[int], today: date) -> dict[int, int]:
        """Freshness-gated current streak for each member."""
        latest_dates = (
            select(
                DailyReadingStat.member_id.label("member_id"),
                func.max(DailyReadingStat.date).label("latest"),
            )
            .where(DailyReadingStat.member_id.in_(member_ids), DailyReadingStat.date <= today)
            .group_by(DailyReadingStat.member_id)
            .subquery()
        )
        result = await self.db.execute(
            select(DailyReadingStat).join(
                latest_dates,
                (DailyReadingStat.member_id == latest_dates.c.member_id)
                & (DailyReadingStat.date == latest_dates.c.latest),
            )
        )
        return {row.member_id: current_streak(row, today) for row in result.scalars().all()}

    async def _achievement_standings(
        self, start: date | None, reading_level: str | None
    ) -> list[Standing]:
        query = (
            select(
                AchievementUnlock.member_id,
                Member.name,
                Member.reading_level,
                Member.created_at,
                func.sum(AchievementUnlock.points_awarded),
                func.count(AchievementUnlock.id),
            )
            .join(Member, Member.id == AchievementUnlock.member_id)
            .group_by(
                AchievementUnlock.member_id, Member.name, Member.reading_level, Member.created_at
            )
        )
        if start is not None:
            query = query.where(AchievementUnlock.achieved_at >= day_start(start))
        if reading_level is not None:
            query = query.where(Member.reading_level == reading_level)

        result = await self.db.execute(query)
        return [
            Standing(
                member_id=row[0],
                member_name=row[1],
                reading_level=row[2],
                member_since=row[3].date().isoformat() if row[3] else None,
                total_points=int(row[4] or 0),
                total_achievements=int(row[5] or 0),
            )
            for row in result.all()
        ]

    # -------------------------------------------------------------------------
    # Single-member rank
    # -------------------------------------------------------------------------

    async def rank(self, member_id: int, metric: str, period: str = "month") -> dict[str, Any]:
        """Competition rank of one member against the whole population."""
        validate_metric(metric)
        validate_period(period)
        if await self.db.get(Member, member_id) is None:
            raise NotFoundError(f"Member {member_id} not found", details={"member_id": member_id})

        standings = await self.standings(metric, period)
        scores = [score_of(s, metric) for s in standings]
        own = next((s for s in standings if s.member_id == member_id), None)
        score = score_of(own, metric) if own else 0
        rank = competition_rank(score, scores)
        total = len(standings)

        return {
            "metric": metric,
            "rank": rank,
            "total_participants": total,
            "percentile": percentile(rank, total),
            "score": score,
        }

    async def member_rank(self, member_id: int, period: str = "month") -> dict[str, Any]:
        """Rank of one member on every metric."""
        validate_period(period)

        async def compute() -> dict[str, Any]:
            rankings = {}
            for metric in METRICS:
                rankings[metric] = await self.rank(member_id, metric, period)
            return {"member_id": member_id, "period": period, "rankings": rankings}

        return await self._cached(
            f"member_rank:{member_id}:{period}", settings.member_rank_ttl, compute
        )

    # -------------------------------------------------------------------------
    # Leaderboards
    # -------------------------------------------------------------------------

    async def leaderboard(
        self,
        metric: str,
        period: str = "month",
        reading_level: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> dict[str, Any]:
        validate_metric(metric)
        validate_period(period)
        validate_level(reading_level)
        limit = settings.leaderboard_default_limit if limit is None else limit
        if not 1 <= limit <= settings.leaderboard_max_limit:
            raise ValidationError(
                f"limit must be between 1 and {settings.leaderboard_max_limit}",
                details={"limit": limit},
            )
        if offset < 0:
            raise ValidationError("offset must be >= 0", details={"offset": offset})

        async def compute() -> dict[str, Any]:
            standings = await self.standings(metric, period, reading_level)
            logger.debug(
                "Built %s leaderboard for %s (%d members)", metric, period, len(standings)
            )
            return {
                "metric": metric,
                "period": period,
                "reading_level": reading_level,
                "limit": limit,
                "offset": offset,
                "total_entries": len(standings),
                "entries": leaderboard_page(standings, metric, limit, offset),
            }

        key = f"leaderboard:{metric}:{period}:{reading_level or 'any'}:{limit}:{offset}"
        return await self._cached(key, settings.leaderboard_ttl, compute)

    # -------------------------------------------------------------------------
    # Platform overview
    # -------------------------------------------------------------------------

    async def global_overview(self, period: str = "month") -> dict[str, Any]:
        validate_period(period)

        async def compute() -> dict[str, Any]:
            reading = await self.standings("words", period)
            achievements = await self.standings("achievements", period)
            population = {"words": reading, "stories": reading,
                          "current_streak": reading, "achievements": achievements}

            top_performers = {}
            for label, metric in TOP_PERFORMER_METRICS.items():
                ranked = sorted_standings(population[metric], metric)
                leader = ranked[0] if ranked else None
                top_performers[label] = None if leader is None else {
                    "member_id": leader.member_id,
                    "member_name": leader.member_name,
                    "reading_level": leader.reading_level,
                    "score": score_of(leader, metric),
                }

            level_distribution: dict[str, int] = {}
            for standing in reading:
                level_distribution[standing.reading_level] = (
                    level_distribution.get(standing.reading_level, 0) + 1
                )

            streaks = [s.current_streak for s in reading]
            return {
                "period": period,
                "total_participants": len(reading),
                "top_performers": top_performers,
                "platform_stats": {
                    "total_words_read": sum(s.total_words for s in reading),
                    "total_stories_completed": sum(s.total_stories for s in reading),
                    "total_achievements_earned": sum(s.total_achievements for s in achievements),
                    "average_reading_streak": round(sum(streaks) / len(streaks), 1) if streaks else 0.0,
                },
                "level_distribution": level_distribution,
                "recent_milestones": await self.recent_milestones(),
            }

        return await self._cached(
            f"global_overview:{period}", settings.global_overview_ttl, compute
        )

    async def recent_milestones(self, limit: int = RECENT_MILESTONES_LIMIT) -> list[dict[str, Any]]:
        """High-level unlocks and big reading days from the last week, newest first."""
        today = self.clock().date()
        since = today - timedelta(days=MILESTONE_WINDOW_DAYS)
        milestones = []

        result = await self.db.execute(
            select(AchievementUnlock, Member.name)
            .join(Member, Member.id == AchievementUnlock.member_id)
            .where(
                AchievementUnlock.achieved_at >= day_start(since),
                AchievementUnlock.level >= MILESTONE_MIN_LEVEL,
            )
            .order_by(AchievementUnlock.achieved_at.desc(), AchievementUnlock.id.desc())
            .limit(limit)
        )
        for unlock, member_name in result.all():
            milestones.append((as_utc(unlock.achieved_at), {
                "type": "achievement",
                "member_id": unlock.member_id,
                "member_name": member_name,
                "description": f"Achieved {unlock.achievement_type} Level {unlock.level}",
            }))

        result = await self.db.execute(
            select(DailyReadingStat, Member.name)
            .join(Member, Member.id == DailyReadingStat.member_id)
            .where(
                DailyReadingStat.date.between(since, today),
                or_(
                    DailyReadingStat.words_read >= MILESTONE_DAILY_WORDS,
                    DailyReadingStat.reading_streak_days >= MILESTONE_STREAK_DAYS,
                ),
            )
            .order_by(DailyReadingStat.date.desc(), DailyReadingStat.id.desc())
            .limit(limit)
        )
        for stat, member_name in result.all():
            parts = []
            if stat.words_read >= MILESTONE_DAILY_WORDS:
                parts.append(f"Read {stat.words_read} words")
            if stat.reading_streak_days >= MILESTONE_STREAK_DAYS:
                parts.append(f"Reached {stat.reading_streak_days} day streak")
            milestones.append((day_start(stat.date), {
                "type": "milestone",
                "member_id": stat.member_id,
                "member_name": member_name,
                "description": " and ".join(parts),
            }))

        milestones.sort(key=lambda item: item[0], reverse=True)
        return [
            dict(entry, timestamp=moment.isoformat())
            for moment, entry in milestones[:limit]
        ]
