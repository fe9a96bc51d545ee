"""Tests for the achievement catalog and engine.

Covers:
  - Catalog shape and O(1) lookups
  - Progress percentage policy (numeric and ordinal requirements)
  - Progress snapshot gathered from sessions and aggregates
  - Idempotent unlocks
  - Claiming: single use, ownership, admin override
  - Cached member achievement lists invalidated on change
"""
from datetime import date, datetime, timezone

import pytest
from sqlalchemy import func, select

from readingstats.core.exceptions import (
    AccessDeniedError,
    AlreadyClaimedError,
    ComputationFailure,
    NotFoundError,
)
from tests.conftest import create_member, create_story


# =============================================================================
# CATALOG
# =============================================================================

class TestAchievementCatalog:
    """Static catalog of 10 lines x 5 levels."""

    def test_shape(self):
        from readingstats.services.achievement_catalog import DEFAULT_CATALOG, MAX_LEVEL
        assert len(DEFAULT_CATALOG) == 10
        for achievement_type in DEFAULT_CATALOG:
            assert len(achievement_type.levels) == MAX_LEVEL
            assert [lvl.level for lvl in achievement_type.levels] == [1, 2, 3, 4, 5]

    def test_lookup(self):
        from readingstats.services.achievement_catalog import DEFAULT_CATALOG
        level = DEFAULT_CATALOG.level("speed_reader", 1)
        assert level.requirement == 250
        assert level.points == 75
        assert level.title == "Quick Reader"
        assert DEFAULT_CATALOG.level("speed_reader", 6) is None
        assert DEFAULT_CATALOG.level("unknown", 1) is None
        assert "word_master" in DEFAULT_CATALOG

    def test_level_climber_is_ordinal(self):
        from readingstats.services.achievement_catalog import DEFAULT_CATALOG
        levels = DEFAULT_CATALOG.get("level_climber").levels
        assert all(lvl.is_ordinal for lvl in levels)
        assert levels[0].requirement == "elementary"
        assert levels[-1].requirement == "master"

    def test_requirements_ascend(self):
        from readingstats.services.achievement_catalog import DEFAULT_CATALOG, ordinal_rank
        for achievement_type in DEFAULT_CATALOG:
            reqs = [
                ordinal_rank(lvl.requirement) if lvl.is_ordinal else lvl.requirement
                for lvl in achievement_type.levels
            ]
            assert reqs == sorted(reqs), achievement_type.key

    def test_generate_levels_rejects_mismatched_lists(self):
        from readingstats.services.achievement_catalog import generate_levels
        with pytest.raises(ValueError):
            generate_levels([1, 2], [10], ["a", "b"])

    def test_ordinal_rank(self):
        from readingstats.services.achievement_catalog import ordinal_rank
        assert ordinal_rank("beginner") == 0
        assert ordinal_rank("master") == 5
        assert ordinal_rank("wizard") == -1


# =============================================================================
# PROGRESS POLICY (pure)
# =============================================================================

class TestProgressPercentage:
    def test_numeric(self):
        from readingstats.services.achievements import progress_percentage
        assert progress_percentage(5000, 10000) == 50
        assert progress_percentage(3333, 10000) == 33
        assert progress_percentage(20000, 10000) == 100

    def test_ordinal_is_binary(self):
        from readingstats.services.achievements import progress_percentage
        assert progress_percentage("intermediate", "advanced") == 0
        assert progress_percentage("advanced", "advanced") == 100
        assert progress_percentage("expert", "advanced") == 100

    def test_zero_requirement(self):
        from readingstats.services.achievements import progress_percentage
        assert progress_percentage(10, 0) == 0


class TestMetricDispatch:
    def test_each_catalog_type_has_a_metric(self):
        from readingstats.services.achievement_catalog import DEFAULT_CATALOG
        from readingstats.services.achievements import PROGRESS_METRICS
        assert set(DEFAULT_CATALOG.keys()) == set(PROGRESS_METRICS)

    def test_metric_values(self):
        from readingstats.services.achievements import MemberProgress, metric_value
        progress = MemberProgress(current_streak=4, lifetime_words=900, reading_level="expert")
        assert metric_value("daily_reader", progress) == 4
        assert metric_value("word_master", progress) == 900
        assert metric_value("level_climber", progress) == "expert"

    def test_unknown_type(self):
        from readingstats.services.achievements import MemberProgress, metric_value
        with pytest.raises(ComputationFailure):
            metric_value("pages_turned", MemberProgress())

    def test_qualifying_levels_stop_at_first_unmet(self):
        from readingstats.services.achievement_catalog import DEFAULT_CATALOG
        from readingstats.services.achievements import MemberProgress, qualifying_levels

        earned = qualifying_levels(
            DEFAULT_CATALOG, MemberProgress(lifetime_words=60_000, reading_level="advanced")
        )
        assert [(key, lvl.level) for key, lvl in earned] == [
            ("word_master", 1),
            ("word_master", 2),
            ("level_climber", 1),
            ("level_climber", 2),
            ("level_climber", 3),
        ]

    def test_injected_catalog(self):
        from readingstats.services.achievement_catalog import (
            AchievementCatalog,
            AchievementType,
            generate_levels,
        )
        from readingstats.services.achievements import MemberProgress, qualifying_levels

        catalog = AchievementCatalog([
            AchievementType(
                "word_master", "Words", "Test line", "book",
                generate_levels([10, 20], [1, 2], ["Ten", "Twenty"]),
            ),
        ])
        earned = qualifying_levels(catalog, MemberProgress(lifetime_words=15))
        assert [lvl.title for _, lvl in earned] == ["Ten"]


# =============================================================================
# ENGINE (database)
# =============================================================================

async def _unlock_count(db, member_id: int) -> int:
    from readingstats.models import AchievementUnlock
    result = await db.execute(
        select(func.count(AchievementUnlock.id)).where(AchievementUnlock.member_id == member_id)
    )
    return result.scalar()


class TestEvaluate:
    """Unlock creation."""

    async def test_unlocks_each_qualifying_level(self, db, clock):
        from readingstats.services.achievements import AchievementEngine, MemberProgress

        member = await create_member(db)
        engine = AchievementEngine(db, clock=clock)
        unlocked = await engine.evaluate(member.id, MemberProgress(lifetime_words=60_000))

        assert [(u["achievement_type"], u["level"]) for u in unlocked] == [
            ("word_master", 1), ("word_master", 2),
        ]
        assert [u["points_awarded"] for u in unlocked] == [100, 300]
        assert unlocked[0]["is_claimed"] is False
        assert unlocked[0]["achievement_info"]["title"] == "Word Seeker"

    async def test_evaluate_twice_creates_nothing_new(self, db, clock):
        from readingstats.services.achievements import AchievementEngine, MemberProgress

        member = await create_member(db)
        engine = AchievementEngine(db, clock=clock)
        progress = MemberProgress(lifetime_words=60_000)

        assert len(await engine.evaluate(member.id, progress)) == 2
        assert await engine.evaluate(member.id, progress) == []
        assert await _unlock_count(db, member.id) == 2

    async def test_higher_progress_only_adds_new_levels(self, db, clock):
        from readingstats.models import AchievementUnlock
        from readingstats.services.achievements import AchievementEngine, MemberProgress

        member = await create_member(db)
        engine = AchievementEngine(db, clock=clock)
        await engine.evaluate(member.id, MemberProgress(lifetime_words=10_000))
        unlocked = await engine.evaluate(member.id, MemberProgress(lifetime_words=150_000))

        assert [u["level"] for u in unlocked] == [2, 3]
        result = await db.execute(
            select(AchievementUnlock.points_awarded)
            .where(AchievementUnlock.member_id == member.id, AchievementUnlock.level == 1)
        )
        assert result.scalar() == 100

    async def test_nothing_qualifies(self, db, clock):
        from readingstats.services.achievements import AchievementEngine, MemberProgress

        member = await create_member(db)
        assert await AchievementEngine(db, clock=clock).evaluate(member.id, MemberProgress()) == []


class TestGatherProgress:
    """Progress snapshot from sessions, aggregates and the member row."""

    async def test_snapshot(self, db, clock):
        from readingstats.models import DailyReadingStat, ReadingSession
        from readingstats.services.achievements import AchievementEngine

        member = await create_member(db, reading_level="intermediate")
        fiction = await create_story(db, category_id=1)
        poetry = await create_story(db, category_id=2)

        def session(story, hour):
            start = datetime(2024, 5, 14, hour, 0, tzinfo=timezone.utc)
            return ReadingSession(
                member_id=member.id, story_id=story.id, words_read=500,
                time_spent_seconds=300, reading_progress=100, completed=True,
                session_start=start, session_end=start.replace(minute=5),
            )

        db.add_all([session(fiction, 7), session(poetry, 20), session(fiction, 14)])
        db.add_all([
            DailyReadingStat(member_id=member.id, date=date(2024, 5, 14), words_read=1500,
                             reading_time_minutes=15, stories_completed=3,
                             reading_streak_days=4, longest_streak_days=6),
        ])
        await db.commit()

        progress = await AchievementEngine(db, clock=clock).gather_progress(member.id)

        assert progress.current_streak == 4       # yesterday still counts
        assert progress.lifetime_words == 1500
        assert progress.average_wpm == 100
        assert progress.longest_streak == 6
        assert progress.reading_level == "intermediate"
        assert progress.distinct_categories == 2
        assert progress.session_count == 3
        assert progress.lifetime_completions == 3
        assert progress.morning_sessions == 1
        assert progress.evening_sessions == 1

    async def test_unknown_member(self, db, clock):
        from readingstats.services.achievements import AchievementEngine
        with pytest.raises(NotFoundError):
            await AchievementEngine(db, clock=clock).gather_progress(404)


class TestClaim:
    """Single-use reward claims."""

    async def _unlock(self, db, clock, member_id: int) -> int:
        from readingstats.services.achievements import AchievementEngine, MemberProgress
        unlocked = await AchievementEngine(db, clock=clock).evaluate(
            member_id, MemberProgress(lifetime_words=10_000)
        )
        return unlocked[0]["id"]

    async def test_claim_once(self, db, clock):
        from readingstats.models import AchievementUnlock
        from readingstats.services.achievements import AchievementEngine

        member = await create_member(db)
        achievement_id = await self._unlock(db, clock, member.id)
        engine = AchievementEngine(db, clock=clock)

        claimed = await engine.claim(achievement_id, member.id)
        assert claimed["points_awarded"] == 100
        assert claimed["claimed_at"] == clock().isoformat()

        with pytest.raises(AlreadyClaimedError):
            await engine.claim(achievement_id, member.id)

        unlock = await db.get(AchievementUnlock, achievement_id, populate_existing=True)
        assert unlock.is_claimed is True
        assert unlock.points_awarded == 100

    async def test_other_member_denied(self, db, clock):
        from readingstats.services.achievements import AchievementEngine

        owner = await create_member(db, name="Owner")
        other = await create_member(db, name="Other")
        achievement_id = await self._unlock(db, clock, owner.id)

        with pytest.raises(AccessDeniedError):
            await AchievementEngine(db, clock=clock).claim(achievement_id, other.id)

    async def test_admin_may_claim_for_member(self, db, clock):
        from readingstats.services.achievements import AchievementEngine

        owner = await create_member(db)
        achievement_id = await self._unlock(db, clock, owner.id)
        claimed = await AchievementEngine(db, clock=clock).claim(
            achievement_id, member_id=999, is_admin=True
        )
        assert claimed["achievement_id"] == achievement_id

    async def test_missing_unlock(self, db, clock):
        from readingstats.services.achievements import AchievementEngine
        with pytest.raises(NotFoundError):
            await AchievementEngine(db, clock=clock).claim(12345, 1)


class TestProgressView:
    """Per-line progress towards the next level."""

    async def test_fresh_member(self, db, clock):
        from readingstats.services.achievements import AchievementEngine

        member = await create_member(db)
        progress = await AchievementEngine(db, clock=clock).progress(member.id)

        assert set(progress) == {
            "daily_reader", "word_master", "speed_reader", "streak_keeper", "level_climber",
            "category_explorer", "engagement_star", "completion_champion", "early_bird",
            "night_owl",
        }
        word_master = progress["word_master"]
        assert word_master["current_level"] == 0
        assert word_master["next_level"] == 1
        assert word_master["next_level_info"]["requirement"] == 10_000
        assert word_master["progress_percentage"] == 0
        assert word_master["is_max_level"] is False

        level_climber = progress["level_climber"]
        assert level_climber["current_progress"] == "beginner"
        assert level_climber["progress_percentage"] == 0

    async def test_max_level(self, db, clock):
        from readingstats.services.achievements import AchievementEngine, MemberProgress

        member = await create_member(db)
        engine = AchievementEngine(db, clock=clock)
        await engine.evaluate(member.id, MemberProgress(lifetime_words=1_000_000))
        word_master = (await engine.progress(member.id))["word_master"]

        assert word_master["current_level"] == 5
        assert word_master["next_level"] is None
        assert word_master["progress_percentage"] == 100
        assert word_master["is_max_level"] is True


class TestListings:
    async def test_member_achievements_cache_invalidated_on_unlock(self, db, clock, cache):
        from readingstats.services.achievements import AchievementEngine, MemberProgress

        member = await create_member(db)
        engine = AchievementEngine(db, cache, clock=clock)

        assert await engine.member_achievements(member.id) == []
        await engine.evaluate(member.id, MemberProgress(lifetime_words=10_000))
        listed = await engine.member_achievements(member.id)
        assert [a["achievement_type"] for a in listed] == ["word_master"]

    async def test_claim_invalidates_cached_list(self, db, clock, cache):
        from readingstats.services.achievements import AchievementEngine, MemberProgress

        member = await create_member(db)
        engine = AchievementEngine(db, cache, clock=clock)
        unlocked = await engine.evaluate(member.id, MemberProgress(lifetime_words=10_000))

        assert (await engine.member_achievements(member.id))[0]["is_claimed"] is False
        await engine.claim(unlocked[0]["id"], member.id)
        assert (await engine.member_achievements(member.id))[0]["is_claimed"] is True

    async def test_recent_achievements_carry_member_name(self, db, clock):
        from readingstats.services.achievements import AchievementEngine, MemberProgress

        alice = await create_member(db, name="Alice")
        bob = await create_member(db, name="Bob")
        engine = AchievementEngine(db, clock=clock)
        await engine.evaluate(alice.id, MemberProgress(lifetime_words=10_000))
        await engine.evaluate(bob.id, MemberProgress(current_streak=7))

        recent = await engine.recent_achievements(limit=10)
        assert {r["member_name"] for r in recent} == {"Alice", "Bob"}

        only_bob = await engine.recent_achievements(member_id=bob.id)
        assert [r["achievement_type"] for r in only_bob] == ["daily_reader"]

    async def test_available_achievements(self, db):
        from readingstats.services.achievements import AchievementEngine

        catalog = AchievementEngine(db).available_achievements()
        daily_reader = next(a for a in catalog if a["achievement_type"] == "daily_reader")
        assert daily_reader["max_level"] == 5
        assert daily_reader["total_points"] == 50 + 200 + 500 + 1000 + 2500
        assert len(daily_reader["levels"]) == 5
