"""Tests for member ranks, leaderboards and the platform overview.

Covers:
  - Competition ranking (ties share a rank, next rank skips)
  - Percentile formula
  - Listing order with per-metric tie-breaks and offset/limit pagination
  - Population restricted to the period window and reading level
  - Cached leaderboards
"""
from datetime import date, datetime, timedelta, timezone

import pytest

from readingstats.core.exceptions import NotFoundError, ValidationError
from tests.conftest import create_member


# =============================================================================
# PURE HELPERS
# =============================================================================

class TestCompetitionRank:
    def test_ties_share_rank(self):
        """Scores A=100, B=80, C=80, D=50 rank 1, 2, 2, 4."""
        from readingstats.services.ranking import competition_rank
        scores = [100, 80, 80, 50]
        assert [competition_rank(s, scores) for s in scores] == [1, 2, 2, 4]

    def test_outside_population(self):
        from readingstats.services.ranking import competition_rank
        assert competition_rank(0, [100, 80]) == 3
        assert competition_rank(500, [100, 80]) == 1


class TestPercentile:
    def test_formula(self):
        from readingstats.services.ranking import percentile
        assert percentile(2, 4) == 75
        assert percentile(1, 4) == 100
        assert percentile(4, 4) == 25
        assert percentile(1, 1) == 100

    def test_empty_population(self):
        from readingstats.services.ranking import percentile
        assert percentile(1, 0) == 0

    def test_never_negative(self):
        from readingstats.services.ranking import percentile
        assert percentile(6, 4) == 0


class TestLeaderboardPage:
    """Listing order and pagination."""

    def _standing(self, member_id, **fields):
        from readingstats.services.ranking import Standing
        return Standing(member_id=member_id, member_name=f"m{member_id}",
                        reading_level="beginner", **fields)

    def test_words_ties_break_by_member_id(self):
        from readingstats.services.ranking import leaderboard_page
        standings = [
            self._standing(3, total_words=500),
            self._standing(1, total_words=500),
            self._standing(2, total_words=700),
        ]
        page = leaderboard_page(standings, "words", limit=10, offset=0)
        assert [(e["rank"], e["member_id"], e["score"]) for e in page] == [
            (1, 2, 700), (2, 1, 500), (3, 3, 500),
        ]

    def test_stories_ties_break_by_words(self):
        from readingstats.services.ranking import leaderboard_page
        standings = [
            self._standing(1, total_stories=4, total_words=100),
            self._standing(2, total_stories=4, total_words=900),
        ]
        page = leaderboard_page(standings, "stories", limit=10, offset=0)
        assert [e["member_id"] for e in page] == [2, 1]

    def test_streak_ties_break_by_words(self):
        from readingstats.services.ranking import leaderboard_page
        standings = [
            self._standing(1, current_streak=5, total_words=100),
            self._standing(2, current_streak=5, total_words=300),
            self._standing(3, current_streak=9, total_words=1),
        ]
        page = leaderboard_page(standings, "current_streak", limit=10, offset=0)
        assert [e["member_id"] for e in page] == [3, 2, 1]

    def test_achievements_ties_break_by_count(self):
        from readingstats.services.ranking import leaderboard_page
        standings = [
            self._standing(1, total_points=300, total_achievements=1),
            self._standing(2, total_points=300, total_achievements=3),
        ]
        page = leaderboard_page(standings, "achievements", limit=10, offset=0)
        assert [e["member_id"] for e in page] == [2, 1]
        assert page[0]["score"] == 300

    def test_rank_is_position_in_listing(self):
        """Tied members get consecutive listing ranks, offset included."""
        from readingstats.services.ranking import leaderboard_page
        standings = [self._standing(i, total_words=100) for i in range(1, 6)]
        page = leaderboard_page(standings, "words", limit=2, offset=2)
        assert [(e["rank"], e["member_id"]) for e in page] == [(3, 3), (4, 4)]

    def test_offset_past_end(self):
        from readingstats.services.ranking import leaderboard_page
        standings = [self._standing(1, total_words=1)]
        assert leaderboard_page(standings, "words", limit=10, offset=5) == []


class TestValidation:
    def test_metric(self):
        from readingstats.services.ranking import validate_metric
        assert validate_metric("words") == "words"
        with pytest.raises(ValidationError):
            validate_metric("pages")

    def test_level(self):
        from readingstats.services.ranking import validate_level
        assert validate_level(None) is None
        assert validate_level("master") == "master"
        with pytest.raises(ValidationError):
            validate_level("novice")


# =============================================================================
# ENGINE (database)
# =============================================================================

async def _seed_day(db, member, day: date, words: int, **fields):
    from readingstats.models import DailyReadingStat
    db.add(DailyReadingStat(member_id=member.id, date=day, words_read=words, **fields))
    await db.commit()


class TestRank:
    """Single-member competition rank against the population."""

    async def test_ties(self, db, clock):
        from readingstats.services.ranking import RankingEngine

        today = clock().date()
        members = {}
        for name, words in [("A", 100), ("B", 80), ("C", 80), ("D", 50)]:
            members[name] = await create_member(db, name=name)
            await _seed_day(db, members[name], today, words)

        engine = RankingEngine(db, clock=clock)
        ranks = {name: (await engine.rank(m.id, "words", "day"))["rank"]
                 for name, m in members.items()}
        assert ranks == {"A": 1, "B": 2, "C": 2, "D": 4}

        b = await engine.rank(members["B"].id, "words", "day")
        assert b == {
            "metric": "words", "rank": 2, "total_participants": 4,
            "percentile": 75, "score": 80,
        }

    async def test_member_outside_population(self, db, clock):
        from readingstats.services.ranking import RankingEngine

        reader = await create_member(db, name="Reader")
        idle = await create_member(db, name="Idle")
        await _seed_day(db, reader, clock().date(), 100)

        result = await RankingEngine(db, clock=clock).rank(idle.id, "words", "month")
        assert result["score"] == 0
        assert result["rank"] == 2
        assert result["total_participants"] == 1
        assert result["percentile"] == 0

    async def test_unknown_member(self, db, clock):
        from readingstats.services.ranking import RankingEngine
        with pytest.raises(NotFoundError):
            await RankingEngine(db, clock=clock).rank(404, "words")

    async def test_unknown_metric(self, db, clock):
        from readingstats.services.ranking import RankingEngine
        member = await create_member(db)
        with pytest.raises(ValidationError):
            await RankingEngine(db, clock=clock).rank(member.id, "pages")

    async def test_period_window(self, db, clock):
        """Last month's reading does not count for this month."""
        from readingstats.services.ranking import RankingEngine

        member = await create_member(db)
        await _seed_day(db, member, date(2024, 4, 20), 5000)
        await _seed_day(db, member, date(2024, 5, 2), 100)

        engine = RankingEngine(db, clock=clock)
        assert (await engine.rank(member.id, "words", "month"))["score"] == 100
        assert (await engine.rank(member.id, "words", "all"))["score"] == 5100

    async def test_current_streak_is_freshness_gated(self, db, clock):
        from readingstats.services.ranking import RankingEngine

        fresh = await create_member(db, name="Fresh")
        stale = await create_member(db, name="Stale")
        await _seed_day(db, fresh, date(2024, 5, 14), 100, reading_streak_days=3)
        await _seed_day(db, stale, date(2024, 5, 10), 100, reading_streak_days=8,
                        longest_streak_days=8)

        engine = RankingEngine(db, clock=clock)
        assert (await engine.rank(fresh.id, "current_streak"))["score"] == 3
        assert (await engine.rank(stale.id, "current_streak"))["score"] == 0
        assert (await engine.rank(stale.id, "longest_streak"))["rank"] == 1

    async def test_member_rank_covers_every_metric(self, db, clock, cache):
        from readingstats.services.ranking import METRICS, RankingEngine

        member = await create_member(db)
        await _seed_day(db, member, clock().date(), 100)
        result = await RankingEngine(db, cache, clock=clock).member_rank(member.id, "month")

        assert set(result["rankings"]) == set(METRICS)
        assert await cache.get(f"member_rank:{member.id}:month") == result


class TestLeaderboard:
    async def _population(self, db, clock):
        today = clock().date()
        members = []
        for name, words, level in [("A", 100, "beginner"), ("B", 80, "advanced"),
                                   ("C", 80, "advanced"), ("D", 50, "beginner")]:
            member = await create_member(db, name=name, reading_level=level)
            await _seed_day(db, member, today, words)
            members.append(member)
        return members

    async def test_paginated(self, db, clock):
        from readingstats.services.ranking import RankingEngine

        a, b, c, d = await self._population(db, clock)
        board = await RankingEngine(db, clock=clock).leaderboard("words", "week", limit=2, offset=2)

        assert board["total_entries"] == 4
        assert [(e["rank"], e["member_id"], e["score"]) for e in board["entries"]] == [
            (3, c.id, 80), (4, d.id, 50),
        ]
        assert board["entries"][0]["member_name"] == "C"

    async def test_reading_level_filter(self, db, clock):
        from readingstats.services.ranking import RankingEngine

        _, b, c, _ = await self._population(db, clock)
        board = await RankingEngine(db, clock=clock).leaderboard(
            "words", "week", reading_level="advanced"
        )
        assert [e["member_id"] for e in board["entries"]] == [b.id, c.id]
        assert board["reading_level"] == "advanced"

    async def test_limit_bounds(self, db, clock):
        from readingstats.services.ranking import RankingEngine
        engine = RankingEngine(db, clock=clock)
        with pytest.raises(ValidationError):
            await engine.leaderboard("words", limit=0)
        with pytest.raises(ValidationError):
            await engine.leaderboard("words", limit=101)
        with pytest.raises(ValidationError):
            await engine.leaderboard("words", offset=-1)

    async def test_achievements_leaderboard(self, db, clock):
        from readingstats.models import AchievementUnlock
        from readingstats.services.ranking import RankingEngine

        alice = await create_member(db, name="Alice")
        bob = await create_member(db, name="Bob")
        now = clock()
        db.add_all([
            AchievementUnlock(member_id=alice.id, achievement_type="word_master", level=1,
                              points_awarded=100, achieved_at=now),
            AchievementUnlock(member_id=bob.id, achievement_type="daily_reader", level=1,
                              points_awarded=50, achieved_at=now),
            AchievementUnlock(member_id=bob.id, achievement_type="early_bird", level=1,
                              points_awarded=50, achieved_at=now),
            # Earned last month, outside the window
            AchievementUnlock(member_id=bob.id, achievement_type="night_owl", level=1,
                              points_awarded=50, achieved_at=now - timedelta(days=30)),
        ])
        await db.commit()

        board = await RankingEngine(db, clock=clock).leaderboard("achievements", "month")
        assert [(e["member_id"], e["score"], e["total_achievements"]) for e in board["entries"]] == [
            (bob.id, 100, 2), (alice.id, 100, 1),
        ]

    async def test_cached_until_invalidated(self, db, clock, cache):
        from readingstats.services.ranking import RankingEngine

        member = await create_member(db)
        await _seed_day(db, member, clock().date(), 100)
        engine = RankingEngine(db, cache, clock=clock)

        first = await engine.leaderboard("words", "day")
        other = await create_member(db, name="Late")
        await _seed_day(db, other, clock().date(), 900)

        assert await engine.leaderboard("words", "day") == first
        await cache.invalidate("leaderboard:")
        refreshed = await engine.leaderboard("words", "day")
        assert refreshed["entries"][0]["member_id"] == other.id

    async def test_cache_key_includes_every_axis(self, db, clock, cache):
        from readingstats.services.ranking import RankingEngine

        engine = RankingEngine(db, cache, clock=clock)
        await engine.leaderboard("words", "day", limit=10, offset=0)
        await engine.leaderboard("words", "day", limit=10, offset=10)
        await engine.leaderboard("words", "day", reading_level="expert", limit=10, offset=0)
        assert len(cache) == 3


class TestGlobalOverview:
    async def test_overview(self, db, clock):
        from readingstats.services.ranking import RankingEngine

        today = clock().date()
        a = await create_member(db, name="A", reading_level="beginner")
        b = await create_member(db, name="B", reading_level="advanced")
        await _seed_day(db, a, today, 300, stories_completed=1, reading_streak_days=2)
        await _seed_day(db, b, today, 900, stories_completed=2, reading_streak_days=4)

        overview = await RankingEngine(db, clock=clock).global_overview("month")

        assert overview["total_participants"] == 2
        assert overview["top_performers"]["words_leader"]["member_id"] == b.id
        assert overview["top_performers"]["achievements_leader"] is None
        assert overview["platform_stats"] == {
            "total_words_read": 1200,
            "total_stories_completed": 3,
            "total_achievements_earned": 0,
            "average_reading_streak": 3.0,
        }
        assert overview["level_distribution"] == {"beginner": 1, "advanced": 1}

    async def test_empty_platform(self, db, clock):
        from readingstats.services.ranking import RankingEngine
        overview = await RankingEngine(db, clock=clock).global_overview("day")
        assert overview["total_participants"] == 0
        assert overview["platform_stats"]["average_reading_streak"] == 0.0
        assert overview["recent_milestones"] == []


class TestRecentMilestones:
    """Last week's high-level unlocks and big reading days."""

    async def test_merged_newest_first(self, db, clock):
        from readingstats.models import AchievementUnlock
        from readingstats.services.ranking import RankingEngine

        alice = await create_member(db, name="Alice")
        bob = await create_member(db, name="Bob")
        now = clock()
        db.add_all([
            AchievementUnlock(member_id=alice.id, achievement_type="word_master", level=3,
                              points_awarded=700, achieved_at=now - timedelta(days=1)),
            # Too low a level to count
            AchievementUnlock(member_id=alice.id, achievement_type="word_master", level=2,
                              points_awarded=300, achieved_at=now),
            # Older than a week
            AchievementUnlock(member_id=bob.id, achievement_type="daily_reader", level=4,
                              points_awarded=1000, achieved_at=now - timedelta(days=10)),
        ])
        await db.commit()
        await _seed_day(db, bob, date(2024, 5, 15), 1200, reading_streak_days=30)
        await _seed_day(db, alice, date(2024, 5, 13), 500, reading_streak_days=2)
        await _seed_day(db, alice, date(2024, 5, 1), 2000)

        milestones = await RankingEngine(db, clock=clock).recent_milestones()

        assert milestones == [
            {
                "type": "milestone",
                "member_id": bob.id,
                "member_name": "Bob",
                "description": "Read 1200 words and Reached 30 day streak",
                "timestamp": "2024-05-15T00:00:00+00:00",
            },
            {
                "type": "achievement",
                "member_id": alice.id,
                "member_name": "Alice",
                "description": "Achieved word_master Level 3",
                "timestamp": "2024-05-14T12:00:00+00:00",
            },
        ]

    async def test_limit(self, db, clock):
        from readingstats.services.ranking import RankingEngine

        member = await create_member(db)
        for offset in range(3):
            await _seed_day(db, member, date(2024, 5, 15) - timedelta(days=offset), 1500)

        milestones = await RankingEngine(db, clock=clock).recent_milestones(limit=2)
        assert [m["timestamp"][:10] for m in milestones] == ["2024-05-15", "2024-05-14"]

    async def test_included_in_overview(self, db, clock):
        from readingstats.services.ranking import RankingEngine

        member = await create_member(db, name="Reader")
        await _seed_day(db, member, clock().date(), 1000)

        overview = await RankingEngine(db, clock=clock).global_overview("week")
        assert [m["description"] for m in overview["recent_milestones"]] == ["Read 1000 words"]
