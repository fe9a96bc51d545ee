"""Daily reading aggregates - session recording, streaks, levels, statistics."""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from readingstats.core.cache import CacheBackend
from readingstats.core.config import settings
from readingstats.core.exceptions import NotFoundError, ValidationError
from readingstats.models.achievement import AchievementUnlock
from readingstats.models.member import Member
from readingstats.models.reading import DailyReadingStat, ReadingSession
from readingstats.models.story import Story
from readingstats.services.achievement_catalog import DEFAULT_CATALOG, AchievementCatalog
from readingstats.services.achievements import AchievementEngine
from readingstats.services.efficiency import (
    DEFAULT_SCORING,
    EfficiencyScorer,
    ScoringConfig,
    goal_progress,
    level_from_average,
    reading_equivalent,
    words_per_minute,
)
from readingstats.services.periods import (
    Clock,
    as_utc,
    completion_window_days,
    day_start,
    period_start,
    utc_now,
    validate_period,
)
from readingstats.services.ranking import percentile
from readingstats.services.streaks import (
    advance,
    current_streak,
    next_milestone,
    streak_status,
)

logger = logging.getLogger(__name__)

COMPLETED_PROGRESS = 100.0

# Client clocks may run slightly ahead of ours
MAX_CLOCK_SKEW = timedelta(minutes=5)


@dataclass(frozen=True)
class ReadingSessionEvent:
    """One finished reading session as reported by a client."""

    member_id: int
    story_id: int
    words_read: int
    time_spent_seconds: int
    reading_progress: float
    session_start: datetime
    session_end: datetime
    completed: bool = False

    @property
    def is_completion(self) -> bool:
        return self.completed or self.reading_progress >= COMPLETED_PROGRESS

    @property
    def reading_date(self) -> date:
        """Calendar (UTC) date the session counts towards. Naive times are UTC."""
        return as_utc(self.session_end).date()


def validate_event(event: ReadingSessionEvent, now: datetime | None = None) -> None:
    """Raise ValidationError listing every invalid field.

    Timestamps are compared in UTC. With ``now`` given, sessions ending
    further in the future than MAX_CLOCK_SKEW are rejected.
    """
    errors = {}
    if event.words_read < 0:
        errors["words_read"] = "must be >= 0"
    if event.time_spent_seconds < 0:
        errors["time_spent_seconds"] = "must be >= 0"
    if not 0 <= event.reading_progress <= 100:
        errors["reading_progress"] = "must be between 0 and 100"
    start, end = as_utc(event.session_start), as_utc(event.session_end)
    if end <= start:
        errors["session_end"] = "must be after session_start"
    elif now is not None and end > as_utc(now) + MAX_CLOCK_SKEW:
        errors["session_end"] = "must not be in the future"
    if errors:
        raise ValidationError("Invalid reading session", details=errors)


def serialize_aggregate(row: DailyReadingStat) -> dict[str, Any]:
    return {
        "member_id": row.member_id,
        "date": row.date.isoformat(),
        "words_read": row.words_read,
        "stories_completed": row.stories_completed,
        "reading_time_minutes": row.reading_time_minutes,
        "reading_streak_days": row.reading_streak_days,
        "streak_start_date": row.streak_start_date.isoformat() if row.streak_start_date else None,
        "longest_streak_days": row.longest_streak_days,
        "reading_level": row.reading_level,
    }


class DailyStatsAggregator:
    """Owns the one-row-per-member-per-day aggregate and everything derived from it."""

    def __init__(
        self,
        db: AsyncSession,
        cache: CacheBackend | None = None,
        scoring: ScoringConfig = DEFAULT_SCORING,
        catalog: AchievementCatalog = DEFAULT_CATALOG,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.cache = cache
        self.scoring = scoring
        self.catalog = catalog
        self.clock = clock
        self.scorer = EfficiencyScorer(scoring)

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    async def record_session(self, event: ReadingSessionEvent) -> dict[str, Any]:
        """
        Record a session and update the member's aggregate for that day.

        Steps run in order: append the event, increment the day row, apply
        the streak transition, re-derive the reading level, commit, drop
        cached views, then evaluate achievements. A failing achievement
        evaluation is logged and does not undo the recorded session.
        """
        validate_event(event, self.clock())

        member = await self.db.get(Member, event.member_id)
        if member is None:
            raise NotFoundError(
                f"Member {event.member_id} not found", details={"member_id": event.member_id}
            )
        story = await self.db.get(Story, event.story_id)
        if story is None:
            raise NotFoundError(
                f"Story {event.story_id} not found", details={"story_id": event.story_id}
            )

        day = event.reading_date
        result = await self.db.execute(
            select(func.max(DailyReadingStat.date)).where(DailyReadingStat.member_id == member.id)
        )
        latest_date = result.scalar()
        if latest_date is not None and day < latest_date:
            raise ValidationError(
                "Session is dated before the member's latest recorded day",
                error_code="OUT_OF_ORDER_SESSION",
                details={"session_date": day.isoformat(), "latest_date": latest_date.isoformat()},
            )

        self.db.add(ReadingSession(
            member_id=member.id,
            story_id=story.id,
            words_read=event.words_read,
            time_spent_seconds=event.time_spent_seconds,
            reading_progress=event.reading_progress,
            completed=event.is_completion,
            session_start=as_utc(event.session_start),
            session_end=as_utc(event.session_end),
        ))
        await self.db.flush()

        await self._increment(
            member.id,
            day,
            words=event.words_read,
            minutes=math.ceil(event.time_spent_seconds / 60),
            stories=1 if event.is_completion else 0,
        )

        row = await self._locked_row(member.id, day)
        await self._apply_streak(row)
        level = await self._derive_level(member.id, day)
        row.reading_level = level
        member.reading_level = level

        await self.db.commit()

        snapshot = serialize_aggregate(row)
        snapshot["current_streak"] = current_streak(row, self.clock().date())
        snapshot["efficiency_score"] = self.scorer.score(row, current_streak(row, row.date))

        logger.info(
            "Recorded session for member %d on %s: +%d words (day total %d, streak %d)",
            member.id, day, event.words_read, row.words_read, row.reading_streak_days,
        )

        await self._invalidate(member.id)
        snapshot["new_achievements"] = await self._evaluate_achievements(member.id)
        return snapshot

    async def _increment(
        self, member_id: int, day: date, words: int, minutes: int, stories: int
    ) -> None:
        """SQL-side additive upsert of the (member, day) row."""
        increment = (
            update(DailyReadingStat)
            .where(
                and_(
                    DailyReadingStat.member_id == member_id,
                    DailyReadingStat.date == day,
                )
            )
            .values(
                words_read=DailyReadingStat.words_read + words,
                reading_time_minutes=DailyReadingStat.reading_time_minutes + minutes,
                stories_completed=DailyReadingStat.stories_completed + stories,
            )
            .execution_options(synchronize_session=False)
        )

        result = await self.db.execute(increment)
        if result.rowcount:
            return

        try:
            async with self.db.begin_nested():
                self.db.add(DailyReadingStat(
                    member_id=member_id,
                    date=day,
                    words_read=words,
                    reading_time_minutes=minutes,
                    stories_completed=stories,
                    reading_streak_days=0,
                    longest_streak_days=0,
                ))
                await self.db.flush()
        except IntegrityError:
            # Lost the insert race; the row exists now
            logger.debug("Daily row for member %d on %s created concurrently", member_id, day)
            await self.db.execute(increment)

    async def _locked_row(self, member_id: int, day: date) -> DailyReadingStat:
        result = await self.db.execute(
            select(DailyReadingStat)
            .where(DailyReadingStat.member_id == member_id, DailyReadingStat.date == day)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def _apply_streak(self, row: DailyReadingStat) -> None:
        result = await self.db.execute(
            select(DailyReadingStat).where(
                DailyReadingStat.member_id == row.member_id,
                DailyReadingStat.date == row.date - timedelta(days=1),
            )
        )
        yesterday = result.scalar_one_or_none()

        result = await self.db.execute(
            select(func.max(DailyReadingStat.longest_streak_days)).where(
                DailyReadingStat.member_id == row.member_id,
                DailyReadingStat.date < row.date,
            )
        )
        previous_longest = result.scalar() or 0

        state = advance(row.date, row.words_read, yesterday, previous_longest)
        if state is None:
            row.longest_streak_days = max(row.longest_streak_days or 0, previous_longest)
            return

        row.reading_streak_days = state.current_streak
        row.streak_start_date = state.streak_start_date
        row.longest_streak_days = max(row.longest_streak_days or 0, state.longest_streak)

    async def _derive_level(self, member_id: int, day: date) -> str:
        """Level from the trailing-window average of words read."""
        window_start = day - timedelta(days=self.scoring.level_window_days - 1)
        result = await self.db.execute(
            select(func.avg(DailyReadingStat.words_read)).where(
                DailyReadingStat.member_id == member_id,
                DailyReadingStat.date.between(window_start, day),
            )
        )
        average = result.scalar()
        return level_from_average(float(average) if average is not None else None, self.scoring)

    async def _evaluate_achievements(self, member_id: int) -> list[dict[str, Any]]:
        """Unlock achievements in a savepoint. Failures leave the recorded session intact."""
        engine = AchievementEngine(self.db, self.cache, self.catalog, self.clock)
        try:
            async with self.db.begin_nested():
                unlocked = await engine.unlock_qualifying(member_id)
        except Exception:
            logger.exception("Achievement evaluation failed for member %d", member_id)
            return []

        if unlocked:
            await self.db.commit()
            try:
                await engine.invalidate(member_id)
            except Exception as e:
                logger.warning("Cache invalidation failed for member %d: %s", member_id, e)
        return unlocked

    async def _invalidate(self, member_id: int) -> None:
        if self.cache is None:
            return
        try:
            for prefix in (f"member:{member_id}:", "leaderboard:", "member_rank:", "global_overview:"):
                await self.cache.invalidate(prefix)
        except Exception as e:
            logger.warning("Cache invalidation failed for member %d: %s", member_id, e)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def _require_member(self, member_id: int) -> Member:
        member = await self.db.get(Member, member_id)
        if member is None:
            raise NotFoundError(f"Member {member_id} not found", details={"member_id": member_id})
        return member

    async def _latest_row(self, member_id: int, today: date) -> DailyReadingStat | None:
        result = await self.db.execute(
            select(DailyReadingStat)
            .where(DailyReadingStat.member_id == member_id, DailyReadingStat.date <= today)
            .order_by(DailyReadingStat.date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def current_streak(self, member_id: int) -> int:
        """Freshness-gated current streak as of today."""
        today = self.clock().date()
        return current_streak(await self._latest_row(member_id, today), today)

    async def efficiency(self, member_id: int, day: date) -> float:
        """Efficiency score of one day, 0 when nothing was recorded."""

        async def compute() -> float:
            row = await self._day_row(member_id, day)
            if row is None:
                return 0.0
            return self.scorer.score(row, current_streak(row, row.date))

        if self.cache is None:
            return await compute()
        return await self.cache.remember(
            f"member:{member_id}:efficiency:{day.isoformat()}",
            settings.daily_stats_ttl,
            compute,
        )

    async def _day_row(self, member_id: int, day: date) -> DailyReadingStat | None:
        result = await self.db.execute(
            select(DailyReadingStat).where(
                DailyReadingStat.member_id == member_id,
                DailyReadingStat.date == day,
            )
        )
        return result.scalar_one_or_none()

    async def member_statistics(self, member_id: int, period: str = "month") -> dict[str, Any]:
        validate_period(period)
        await self._require_member(member_id)

        async def compute() -> dict[str, Any]:
            return await self._compute_statistics(member_id, period)

        if self.cache is None:
            return await compute()
        return await self.cache.remember(
            f"member:{member_id}:statistics:{period}",
            settings.member_statistics_ttl,
            compute,
        )

    async def _compute_statistics(self, member_id: int, period: str) -> dict[str, Any]:
        today = self.clock().date()
        start = period_start(period, today)

        conditions = [DailyReadingStat.member_id == member_id, DailyReadingStat.date <= today]
        if start is not None:
            conditions.append(DailyReadingStat.date >= start)

        result = await self.db.execute(
            select(
                func.coalesce(func.sum(DailyReadingStat.words_read), 0),
                func.coalesce(func.sum(DailyReadingStat.stories_completed), 0),
                func.coalesce(func.sum(DailyReadingStat.reading_time_minutes), 0),
                func.count(DailyReadingStat.id).filter(DailyReadingStat.words_read > 0),
                func.avg(DailyReadingStat.words_read),
            ).where(*conditions)
        )
        total_words, total_stories, total_minutes, reading_days, average = result.one()

        result = await self.db.execute(
            select(func.coalesce(func.max(DailyReadingStat.longest_streak_days), 0)).where(
                DailyReadingStat.member_id == member_id,
                DailyReadingStat.date <= today,
            )
        )
        longest = result.scalar() or 0

        window = completion_window_days(period)
        result = await self.db.execute(
            select(func.count(DailyReadingStat.id)).where(
                DailyReadingStat.member_id == member_id,
                DailyReadingStat.date.between(today - timedelta(days=window - 1), today),
                DailyReadingStat.words_read > 0,
            )
        )
        recent_reading_days = result.scalar() or 0

        achievements_query = select(func.count(AchievementUnlock.id)).where(
            AchievementUnlock.member_id == member_id
        )
        if start is not None:
            achievements_query = achievements_query.where(
                AchievementUnlock.achieved_at >= day_start(start)
            )
        achievements_earned = (await self.db.execute(achievements_query)).scalar() or 0

        average = float(average) if average is not None else None
        return {
            "member_id": member_id,
            "period": period,
            "total_words": int(total_words),
            "total_stories": int(total_stories),
            "total_time_minutes": int(total_minutes),
            "reading_days": int(reading_days or 0),
            "current_streak": await self.current_streak(member_id),
            "longest_streak": int(longest),
            "daily_average": round(average) if average is not None else 0,
            "completion_rate": round(recent_reading_days / window * 100, 1),
            "reading_level": level_from_average(average, self.scoring),
            "achievements_earned": int(achievements_earned),
        }

    async def daily_snapshot(self, member_id: int, day: date | None = None) -> dict[str, Any]:
        """One day's aggregate with goal, equivalent, efficiency and ranking views."""
        member = await self._require_member(member_id)
        today = self.clock().date()
        day = day or today

        row = await self._day_row(member_id, day)
        if row is None:
            row = DailyReadingStat(
                member_id=member_id,
                date=day,
                words_read=0,
                stories_completed=0,
                reading_time_minutes=0,
                reading_streak_days=0,
                longest_streak_days=0,
                reading_level=member.reading_level,
            )

        latest = await self._latest_row(member_id, today)
        snapshot = serialize_aggregate(row)
        snapshot.update({
            "goal_progress": goal_progress(row.words_read, row.reading_level, self.scoring),
            "reading_equivalent": reading_equivalent(row.words_read),
            "words_per_minute": words_per_minute(row.words_read, row.reading_time_minutes),
            "efficiency_score": await self.efficiency(member_id, day),
            "streak_status": streak_status(latest, today),
            "next_milestone": next_milestone(row.reading_streak_days),
            "daily_ranking": await self._daily_ranking(day, row.words_read),
        })
        return snapshot

    async def _daily_ranking(self, day: date, words_read: int) -> dict[str, Any]:
        result = await self.db.execute(
            select(
                func.count(DailyReadingStat.id).filter(DailyReadingStat.words_read > words_read),
                func.count(DailyReadingStat.id).filter(DailyReadingStat.words_read > 0),
            ).where(DailyReadingStat.date == day)
        )
        ahead, total = result.one()
        rank = (ahead or 0) + 1
        return {
            "rank": rank,
            "total_readers": total or 0,
            "percentile": percentile(rank, total or 0),
        }
