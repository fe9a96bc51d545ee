"""Reading trend analytics and peer comparisons over daily aggregates."""

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from readingstats.core.exceptions import NotFoundError
from readingstats.models.member import Member
from readingstats.models.reading import DailyReadingStat
from readingstats.services.achievement_catalog import ordinal_rank
from readingstats.services.efficiency import DEFAULT_SCORING, ScoringConfig
from readingstats.services.periods import Clock, period_start, utc_now, validate_period
from readingstats.services.ranking import RankingEngine

logger = logging.getLogger(__name__)

# Slope magnitude below which a series counts as flat
STABLE_SLOPE = 0.5


def linear_trend(values: list[float]) -> float:
    """Least-squares slope of ``values`` against their index."""
    n = len(values)
    if n < 2:
        return 0.0

    sum_x = sum(range(n))
    sum_y = sum(values)
    sum_xy = sum(x * y for x, y in enumerate(values))
    sum_x2 = sum(x * x for x in range(n))

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return round((n * sum_xy - sum_x * sum_y) / denominator, 2)


def trend_direction(slope: float) -> str:
    if slope > STABLE_SLOPE:
        return "increasing"
    if slope < -STABLE_SLOPE:
        return "decreasing"
    return "stable"


def prediction_confidence(points: int) -> str:
    if points >= 14:
        return "high"
    if points >= 7:
        return "medium"
    return "low"


class ReadingTrendAnalyzer:
    """Daily series, slopes and a next-day prediction for one member."""

    def __init__(
        self,
        db: AsyncSession,
        scoring: ScoringConfig = DEFAULT_SCORING,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.scoring = scoring
        self.clock = clock

    async def member_trends(self, member_id: int, period: str = "month") -> dict[str, Any]:
        validate_period(period)
        member = await self.db.get(Member, member_id)
        if member is None:
            raise NotFoundError(f"Member {member_id} not found", details={"member_id": member_id})

        today = self.clock().date()
        start = period_start(period, today)

        query = select(DailyReadingStat).where(
            DailyReadingStat.member_id == member_id,
            DailyReadingStat.date <= today,
        )
        if start is not None:
            query = query.where(DailyReadingStat.date >= start)
        result = await self.db.execute(query.order_by(DailyReadingStat.date))
        rows = result.scalars().all()

        # Days without a row count as zero so gaps pull the trend down
        by_date = {row.date: row for row in rows}
        series = []
        if rows:
            day = start or rows[0].date
            while day <= today:
                row = by_date.get(day)
                series.append({
                    "date": day.isoformat(),
                    "words_read": row.words_read if row else 0,
                    "reading_time_minutes": row.reading_time_minutes if row else 0,
                    "stories_completed": row.stories_completed if row else 0,
                })
                day += timedelta(days=1)

        words = [point["words_read"] for point in series]
        minutes = [point["reading_time_minutes"] for point in series]
        word_slope = linear_trend(words)
        time_slope = linear_trend(minutes)

        predicted = max(0.0, (words[-1] if words else 0) + word_slope)
        goal = self.scoring.daily_goal(member.reading_level)

        return {
            "member_id": member_id,
            "period": period,
            "daily": series,
            "word_count_trend": {"slope": word_slope, "direction": trend_direction(word_slope)},
            "reading_time_trend": {"slope": time_slope, "direction": trend_direction(time_slope)},
            "prediction": {
                "predicted_words": round(predicted),
                "confidence_level": prediction_confidence(len(series)),
                "recommended_goal": max(goal, round(predicted * 1.1)),
            },
        }


def versus_average(value: int, average: float) -> dict[str, int]:
    """A member's value next to the population average, as a percentage of it."""
    return {
        "member": value,
        "average": round(average),
        "percentage": round(value / average * 100) if average > 0 else 0,
    }


def level_percentile(level: str, distribution: dict[str, int]) -> float:
    """Share of members on a strictly lower reading level, 0-100."""
    total = sum(distribution.values())
    if total == 0:
        return 0.0
    lower = sum(
        count for name, count in distribution.items() if ordinal_rank(name) < ordinal_rank(level)
    )
    return round(lower / total * 100, 1)


class MemberComparisonService:
    """How one member's reading compares with everyone else's over a period."""

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    async def member_comparisons(self, member_id: int, period: str = "month") -> dict[str, Any]:
        validate_period(period)
        member = await self.db.get(Member, member_id)
        if member is None:
            raise NotFoundError(f"Member {member_id} not found", details={"member_id": member_id})

        today = self.clock().date()
        start = period_start(period, today)
        window = [DailyReadingStat.date <= today]
        if start is not None:
            window.append(DailyReadingStat.date >= start)

        result = await self.db.execute(
            select(
                DailyReadingStat.member_id,
                func.sum(DailyReadingStat.words_read),
                func.sum(DailyReadingStat.stories_completed),
            )
            .where(DailyReadingStat.words_read > 0, *window)
            .group_by(DailyReadingStat.member_id)
        )
        totals = {row[0]: (int(row[1] or 0), int(row[2] or 0)) for row in result.all()}
        own_words, own_stories = totals.get(member_id, (0, 0))
        readers = len(totals)
        average_words = sum(words for words, _ in totals.values()) / readers if readers else 0.0
        average_stories = sum(stories for _, stories in totals.values()) / readers if readers else 0.0

        rank = await RankingEngine(self.db, clock=self.clock).rank(member_id, "words", period)

        level = member.reading_level or "beginner"
        result = await self.db.execute(
            select(
                func.avg(DailyReadingStat.words_read),
                func.avg(DailyReadingStat.reading_streak_days),
            ).where(
                DailyReadingStat.reading_level == level,
                DailyReadingStat.member_id != member_id,
                *window,
            )
        )
        peer_words, peer_streak = result.one()

        result = await self.db.execute(
            select(Member.reading_level, func.count(Member.id)).group_by(Member.reading_level)
        )
        distribution = {name or "beginner": int(count) for name, count in result.all()}

        return {
            "member_id": member_id,
            "period": period,
            "vs_average": {
                "words_read": versus_average(own_words, average_words),
                "stories_completed": versus_average(own_stories, average_stories),
            },
            "percentile_rank": {
                "percentile": rank["percentile"],
                "rank": rank["rank"],
                "total_members": rank["total_participants"],
            },
            "peer_group": {
                "reading_level": level,
                "peer_average_words": round(float(peer_words or 0)),
                "peer_average_streak": round(float(peer_streak or 0)),
            },
            "reading_level_comparison": {
                "member_level": level,
                "level_distribution": distribution,
                "member_percentile": level_percentile(level, distribution),
            },
        }
