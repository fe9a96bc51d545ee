"""Achievement engine - progress metrics, unlocks, claims."""

import logging
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy import and_, distinct, extract, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from readingstats.core.cache import CacheBackend
from readingstats.core.config import settings
from readingstats.core.exceptions import (
    AccessDeniedError,
    AlreadyClaimedError,
    ComputationFailure,
    NotFoundError,
)
from readingstats.models.achievement import AchievementUnlock
from readingstats.models.member import Member
from readingstats.models.reading import DailyReadingStat, ReadingSession
from readingstats.models.story import Story
from readingstats.services.achievement_catalog import (
    DEFAULT_CATALOG,
    MAX_LEVEL,
    AchievementCatalog,
    AchievementLevel,
    ordinal_rank,
)
from readingstats.services.efficiency import words_per_minute
from readingstats.services.periods import Clock, utc_now
from readingstats.services.streaks import current_streak

logger = logging.getLogger(__name__)

# Session start hours (inclusive) counted as morning / evening reading
MORNING_HOURS = (6, 11)
EVENING_HOURS = (18, 23)


# =============================================================================
# PROGRESS METRICS
# =============================================================================

@dataclass(frozen=True)
class MemberProgress:
    """Snapshot of every value an achievement line is measured against."""

    current_streak: int = 0
    lifetime_words: int = 0
    average_wpm: int = 0
    longest_streak: int = 0
    reading_level: str = "beginner"
    distinct_categories: int = 0
    session_count: int = 0
    lifetime_completions: int = 0
    morning_sessions: int = 0
    evening_sessions: int = 0


def _daily_reader(p: MemberProgress) -> int:
    return p.current_streak


def _word_master(p: MemberProgress) -> int:
    return p.lifetime_words


def _speed_reader(p: MemberProgress) -> int:
    return p.average_wpm


def _streak_keeper(p: MemberProgress) -> int:
    return p.longest_streak


def _level_climber(p: MemberProgress) -> str:
    return p.reading_level


def _category_explorer(p: MemberProgress) -> int:
    return p.distinct_categories


def _engagement_star(p: MemberProgress) -> int:
    return p.session_count


def _completion_champion(p: MemberProgress) -> int:
    return p.lifetime_completions


def _early_bird(p: MemberProgress) -> int:
    return p.morning_sessions


def _night_owl(p: MemberProgress) -> int:
    return p.evening_sessions


# achievement type -> progress metric
PROGRESS_METRICS: dict[str, Callable[[MemberProgress], int | str]] = {
    "daily_reader": _daily_reader,
    "word_master": _word_master,
    "speed_reader": _speed_reader,
    "streak_keeper": _streak_keeper,
    "level_climber": _level_climber,
    "category_explorer": _category_explorer,
    "engagement_star": _engagement_star,
    "completion_champion": _completion_champion,
    "early_bird": _early_bird,
    "night_owl": _night_owl,
}


def metric_value(achievement_type: str, progress: MemberProgress) -> int | str:
    try:
        metric = PROGRESS_METRICS[achievement_type]
    except KeyError:
        raise ComputationFailure(
            f"No progress metric for achievement type '{achievement_type}'",
            details={"achievement_type": achievement_type},
        )
    return metric(progress)


def meets_requirement(value: int | str, requirement: int | str) -> bool:
    if isinstance(requirement, str):
        return ordinal_rank(str(value)) >= ordinal_rank(requirement)
    return int(value) >= requirement


def progress_percentage(value: int | str, requirement: int | str) -> int:
    """Numeric: capped percentage. Ordinal: all or nothing."""
    if isinstance(requirement, str):
        return 100 if meets_requirement(value, requirement) else 0
    if requirement <= 0:
        return 0
    return min(100, round(int(value) / requirement * 100))


def qualifying_levels(
    catalog: AchievementCatalog, progress: MemberProgress
) -> list[tuple[str, AchievementLevel]]:
    """Every (type, level) whose requirement the progress snapshot meets."""
    earned = []
    for achievement_type in catalog:
        value = metric_value(achievement_type.key, progress)
        for level in achievement_type.levels:
            if not meets_requirement(value, level.requirement):
                break
            earned.append((achievement_type.key, level))
    return earned


# =============================================================================
# ACHIEVEMENT ENGINE
# =============================================================================

class AchievementEngine:
    """Evaluates, lists and claims reading achievements."""

    def __init__(
        self,
        db: AsyncSession,
        cache: CacheBackend | None = None,
        catalog: AchievementCatalog = DEFAULT_CATALOG,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.cache = cache
        self.catalog = catalog
        self.clock = clock

    async def _require_member(self, member_id: int) -> Member:
        member = await self.db.get(Member, member_id)
        if member is None:
            raise NotFoundError(f"Member {member_id} not found", details={"member_id": member_id})
        return member

    async def gather_progress(self, member_id: int) -> MemberProgress:
        """Collect the progress snapshot for one member."""
        member = await self._require_member(member_id)
        today = self.clock().date()

        result = await self.db.execute(
            select(DailyReadingStat)
            .where(DailyReadingStat.member_id == member_id, DailyReadingStat.date <= today)
            .order_by(DailyReadingStat.date.desc())
            .limit(1)
        )
        latest = result.scalar_one_or_none()

        result = await self.db.execute(
            select(
                func.coalesce(func.sum(DailyReadingStat.words_read), 0),
                func.coalesce(func.sum(DailyReadingStat.reading_time_minutes), 0),
                func.coalesce(func.sum(DailyReadingStat.stories_completed), 0),
                func.coalesce(func.max(DailyReadingStat.longest_streak_days), 0),
            ).where(DailyReadingStat.member_id == member_id)
        )
        total_words, total_minutes, total_completions, longest = result.one()

        result = await self.db.execute(
            select(func.count(distinct(Story.category_id)))
            .select_from(ReadingSession)
            .join(Story, Story.id == ReadingSession.story_id)
            .where(ReadingSession.member_id == member_id)
        )
        categories = result.scalar() or 0

        hour = extract("hour", ReadingSession.session_start)
        result = await self.db.execute(
            select(
                func.count(ReadingSession.id),
                func.count(ReadingSession.id).filter(hour.between(*MORNING_HOURS)),
                func.count(ReadingSession.id).filter(hour.between(*EVENING_HOURS)),
            ).where(ReadingSession.member_id == member_id)
        )
        sessions, morning, evening = result.one()

        return MemberProgress(
            current_streak=current_streak(latest, today),
            lifetime_words=int(total_words),
            average_wpm=words_per_minute(int(total_words), int(total_minutes)),
            longest_streak=int(longest),
            reading_level=member.reading_level or "beginner",
            distinct_categories=int(categories),
            session_count=int(sessions or 0),
            lifetime_completions=int(total_completions),
            morning_sessions=int(morning or 0),
            evening_sessions=int(evening or 0),
        )

    async def _unlocked_levels(self, member_id: int) -> set[tuple[str, int]]:
        result = await self.db.execute(
            select(AchievementUnlock.achievement_type, AchievementUnlock.level)
            .where(AchievementUnlock.member_id == member_id)
        )
        return {(row[0], row[1]) for row in result.all()}

    async def evaluate(
        self, member_id: int, progress: MemberProgress | None = None
    ) -> list[dict[str, Any]]:
        """
        Unlock every level the member now qualifies for.

        Safe to re-run: an existing (member, type, level) row is never
        duplicated or modified. Returns the newly created unlocks.
        """
        newly_unlocked = await self.unlock_qualifying(member_id, progress)
        if newly_unlocked:
            await self.db.commit()
            await self.invalidate(member_id)
        return newly_unlocked

    async def unlock_qualifying(
        self, member_id: int, progress: MemberProgress | None = None
    ) -> list[dict[str, Any]]:
        """Flush new unlock rows without committing."""
        if progress is None:
            progress = await self.gather_progress(member_id)

        existing = await self._unlocked_levels(member_id)
        newly_unlocked = []

        for achievement_type, level in qualifying_levels(self.catalog, progress):
            if (achievement_type, level.level) in existing:
                continue

            unlock = AchievementUnlock(
                member_id=member_id,
                achievement_type=achievement_type,
                level=level.level,
                points_awarded=level.points,
                achieved_at=self.clock(),
                is_claimed=False,
            )
            try:
                async with self.db.begin_nested():
                    self.db.add(unlock)
                    await self.db.flush()
            except IntegrityError:
                # Unlocked concurrently by another request
                logger.debug(
                    "Achievement %s level %d already unlocked for member %d",
                    achievement_type, level.level, member_id,
                )
                continue

            newly_unlocked.append(self._serialize(unlock))
            logger.info(
                "Member %d unlocked %s level %d (%d points)",
                member_id, achievement_type, level.level, level.points,
            )

        return newly_unlocked

    async def claim(
        self, achievement_id: int, member_id: int, is_admin: bool = False
    ) -> dict[str, Any]:
        """Mark an unlock's reward as claimed. Fails if it was claimed before."""
        unlock = await self.db.get(AchievementUnlock, achievement_id)
        if unlock is None:
            raise NotFoundError(
                f"Achievement {achievement_id} not found",
                details={"achievement_id": achievement_id},
            )
        if unlock.member_id != member_id and not is_admin:
            raise AccessDeniedError(
                "Achievement belongs to another member",
                details={"achievement_id": achievement_id},
            )

        claimed_at = self.clock()
        result = await self.db.execute(
            update(AchievementUnlock)
            .where(
                and_(
                    AchievementUnlock.id == achievement_id,
                    AchievementUnlock.is_claimed.is_(False),
                )
            )
            .values(is_claimed=True, claimed_at=claimed_at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise AlreadyClaimedError(achievement_id)

        await self.db.commit()
        await self.db.refresh(unlock)
        await self.invalidate(unlock.member_id)

        logger.info(
            "Member %d claimed achievement %d (%d points)",
            unlock.member_id, achievement_id, unlock.points_awarded,
        )
        return {
            "achievement_id": achievement_id,
            "points_awarded": unlock.points_awarded,
            "claimed_at": claimed_at.isoformat(),
        }

    async def progress(self, member_id: int) -> dict[str, dict[str, Any]]:
        """Per type: current level, next level and progress towards it."""
        if self.cache is None:
            return await self._compute_progress(member_id)
        return await self.cache.remember(
            f"member:{member_id}:achievement_progress",
            settings.achievement_progress_ttl,
            lambda: self._compute_progress(member_id),
        )

    async def _compute_progress(self, member_id: int) -> dict[str, dict[str, Any]]:
        snapshot = await self.gather_progress(member_id)
        current_levels: dict[str, int] = {}
        for achievement_type, level in await self._unlocked_levels(member_id):
            current_levels[achievement_type] = max(current_levels.get(achievement_type, 0), level)

        progress = {}
        for achievement_type in self.catalog:
            current_level = current_levels.get(achievement_type.key, 0)
            next_info = achievement_type.level(current_level + 1)
            entry = {
                "achievement_type": achievement_type.key,
                "name": achievement_type.name,
                "description": achievement_type.description,
                "icon": achievement_type.icon,
                "current_level": current_level,
            }

            if next_info is None:
                entry.update({
                    "next_level": None,
                    "next_level_info": None,
                    "current_progress": None,
                    "progress_percentage": 100,
                    "is_max_level": True,
                })
            else:
                value = metric_value(achievement_type.key, snapshot)
                entry.update({
                    "next_level": next_info.level,
                    "next_level_info": next_info.to_dict(),
                    "current_progress": value,
                    "progress_percentage": progress_percentage(value, next_info.requirement),
                    "is_max_level": False,
                })
            progress[achievement_type.key] = entry

        return progress

    async def member_achievements(self, member_id: int) -> list[dict[str, Any]]:
        """Unlocks of one member, newest first."""
        await self._require_member(member_id)

        async def load() -> list[dict[str, Any]]:
            result = await self.db.execute(
                select(AchievementUnlock)
                .where(AchievementUnlock.member_id == member_id)
                .order_by(AchievementUnlock.achieved_at.desc(), AchievementUnlock.id.desc())
            )
            return [self._serialize(unlock) for unlock in result.scalars().all()]

        if self.cache is None:
            return await load()
        return await self.cache.remember(
            f"member:{member_id}:achievements",
            settings.member_achievements_ttl,
            load,
        )

    def available_achievements(self) -> list[dict[str, Any]]:
        achievements = []
        for achievement_type in self.catalog:
            entry = achievement_type.to_dict()
            entry["max_level"] = MAX_LEVEL
            entry["total_points"] = sum(lvl.points for lvl in achievement_type.levels)
            achievements.append(entry)
        return achievements

    async def recent_achievements(
        self, limit: int = 20, member_id: int | None = None
    ) -> list[dict[str, Any]]:
        query = (
            select(AchievementUnlock, Member.name)
            .join(Member, Member.id == AchievementUnlock.member_id)
            .order_by(AchievementUnlock.achieved_at.desc(), AchievementUnlock.id.desc())
            .limit(limit)
        )
        if member_id is not None:
            query = query.where(AchievementUnlock.member_id == member_id)

        result = await self.db.execute(query)
        recent = []
        for unlock, member_name in result.all():
            entry = self._serialize(unlock)
            entry["member_name"] = member_name
            recent.append(entry)
        return recent

    def _serialize(self, unlock: AchievementUnlock) -> dict[str, Any]:
        level = self.catalog.level(unlock.achievement_type, unlock.level)
        achievement_type = self.catalog.get(unlock.achievement_type)
        return {
            "id": unlock.id,
            "member_id": unlock.member_id,
            "achievement_type": unlock.achievement_type,
            "level": unlock.level,
            "points_awarded": unlock.points_awarded,
            "achieved_at": unlock.achieved_at.isoformat() if unlock.achieved_at else None,
            "is_claimed": unlock.is_claimed,
            "claimed_at": unlock.claimed_at.isoformat() if unlock.claimed_at else None,
            "achievement_info": {
                "name": achievement_type.name if achievement_type else unlock.achievement_type,
                "title": level.title if level else None,
                "icon": achievement_type.icon if achievement_type else None,
            },
        }

    async def invalidate(self, member_id: int) -> None:
        if self.cache is None:
            return
        await self.cache.invalidate(f"member:{member_id}:achievement")
        await self.cache.invalidate("leaderboard:achievements:")
        await self.cache.invalidate("member_rank:")
        await self.cache.invalidate("global_overview:")
