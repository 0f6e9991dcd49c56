"""Tests for the achievement catalog and the unlock ratchet."""

from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import select

from conftest import log_workouts, make_user

from uplift.errors import ConflictError, NotFoundError, ValidationError
from uplift.models import AchievementFeedPost, Profile, UserAchievement, WorkoutComment, WorkoutReaction
from uplift.services.achievements import (
    ACHIEVEMENT_CATALOG,
    CATALOG_BY_ID,
    SUPPORTED_STAT_KEYS,
    create_feed_post,
    evaluate_achievements,
    get_feed_posts,
    get_top_badges,
    get_unnotified_achievements,
    get_user_achievements,
    load_achievement_stats,
    mark_notified,
)

T0 = datetime(2026, 2, 1, 9, 0)
T1 = datetime(2026, 2, 2, 9, 0)
T2 = datetime(2026, 2, 3, 9, 0)


def _row(s, user_id, achievement_id):
    return s.execute(
        select(UserAchievement).where(
            UserAchievement.user_id == user_id, UserAchievement.achievement_id == achievement_id
        )
    ).scalar_one_or_none()


# ── Catalog ──────────────────────────────────────────────────────────────

class TestCatalog:
    def test_ids_unique(self):
        assert len(CATALOG_BY_ID) == len(ACHIEVEMENT_CATALOG)

    def test_catalog_is_immutable(self):
        with pytest.raises(TypeError):
            CATALOG_BY_ID["new"] = ACHIEVEMENT_CATALOG[0]

    def test_expected_thresholds(self):
        assert CATALOG_BY_ID["streak_7"].requirement_value == 7
        assert CATALOG_BY_ID["workouts_200"].requirement_type == "workouts_count"
        assert CATALOG_BY_ID["first_post"].requirement_value == 1

    def test_competitive_and_goal_entries_are_unsupported(self):
        for key in ("top3_weekly", "first_in_group", "climb_5", "weekly_goal_4", "perfect_month"):
            assert CATALOG_BY_ID[key].requirement_type not in SUPPORTED_STAT_KEYS


# ── Stats ────────────────────────────────────────────────────────────────

class TestStats:
    def test_social_counts(self, s):
        me, fan = make_user(s, "me"), make_user(s, "fan")
        (workout,) = log_workouts(s, me, [T0.date()])
        s.add_all([WorkoutReaction(workout_id=workout.id, user_id=fan.id) for _ in range(3)])
        s.add(WorkoutComment(workout_id=workout.id, user_id=fan.id, body="nice"))
        s.add(WorkoutComment(workout_id=workout.id, user_id=me.id, body="thanks"))
        s.flush()
        stats = load_achievement_stats(s, me.id)
        assert stats["reactions_received"] == 3
        assert stats["comments_received"] == 1

    def test_unknown_user(self, s):
        with pytest.raises(NotFoundError):
            evaluate_achievements(s, 404)


# ── Evaluation ───────────────────────────────────────────────────────────

class TestEvaluate:
    def test_unlocks_met_thresholds(self, s):
        user = make_user(s, workouts_count=10, streak=3)
        unlocked = {u.definition.id for u in evaluate_achievements(s, user.id, now=T0)}
        assert unlocked == {"first_post", "workouts_10", "streak_3"}
        assert _row(s, user.id, "streak_7").unlocked is False
        assert _row(s, user.id, "streak_7").progress_value == 3

    def test_skips_unsupported_types(self, s):
        user = make_user(s, workouts_count=500, streak=200)
        evaluate_achievements(s, user.id, now=T0)
        assert _row(s, user.id, "top3_weekly") is None
        assert _row(s, user.id, "perfect_month") is None

    def test_second_run_reports_nothing(self, s):
        user = make_user(s, workouts_count=1)
        assert [u.definition.id for u in evaluate_achievements(s, user.id, now=T0)] == ["first_post"]
        assert evaluate_achievements(s, user.id, now=T1) == []

    def test_ratchet_survives_lower_stats(self, s):
        user = make_user(s, streak=7)
        evaluate_achievements(s, user.id, now=T0)
        row = _row(s, user.id, "streak_7")
        assert row.unlocked is True
        assert row.unlocked_at == T0

        s.get(Profile, user.id).streak = 1
        s.flush()
        assert evaluate_achievements(s, user.id, now=T1) == []

        row = _row(s, user.id, "streak_7")
        assert row.unlocked is True
        assert row.unlocked_at == T0
        assert row.progress_value == 1

    def test_unlock_later_keeps_first_timestamp(self, s):
        user = make_user(s, workouts_count=5)
        evaluate_achievements(s, user.id, now=T0)
        s.get(Profile, user.id).workouts_count = 10
        s.flush()
        unlocked = evaluate_achievements(s, user.id, now=T1)
        assert [u.definition.id for u in unlocked] == ["workouts_10"]
        s.get(Profile, user.id).workouts_count = 11
        s.flush()
        evaluate_achievements(s, user.id, now=T2)
        assert _row(s, user.id, "workouts_10").unlocked_at == T1

    def test_stale_row_already_flipped_elsewhere_not_reported(self, s):
        user = make_user(s, workouts_count=10)
        s.add(
            UserAchievement(
                user_id=user.id, achievement_id="workouts_10", progress_value=10, unlocked=True, unlocked_at=T0
            )
        )
        s.flush()
        ids = {u.definition.id for u in evaluate_achievements(s, user.id, now=T1)}
        assert "workouts_10" not in ids
        assert _row(s, user.id, "workouts_10").unlocked_at == T0


# ── Notification bookkeeping ─────────────────────────────────────────────

class TestNotified:
    def test_unnotified_then_mark(self, s):
        user = make_user(s, workouts_count=1)
        evaluate_achievements(s, user.id, now=T0)
        pending = get_unnotified_achievements(s, user.id)
        assert [p.definition.id for p in pending] == ["first_post"]

        assert mark_notified(s, user.id, "first_post") is True
        assert mark_notified(s, user.id, "first_post") is False
        assert get_unnotified_achievements(s, user.id) == []

    def test_empty_id(self, s):
        user = make_user(s)
        with pytest.raises(ValidationError):
            mark_notified(s, user.id, "  ")

    def test_unknown_id(self, s):
        user = make_user(s)
        with pytest.raises(NotFoundError):
            mark_notified(s, user.id, "moonwalk")

    def test_locked_cannot_be_notified(self, s):
        user = make_user(s, workouts_count=2)
        evaluate_achievements(s, user.id, now=T0)
        with pytest.raises(ConflictError):
            mark_notified(s, user.id, "workouts_10")


# ── Views & feed ─────────────────────────────────────────────────────────

class TestViews:
    def test_user_achievements_covers_catalog(self, s):
        user = make_user(s, workouts_count=1)
        evaluate_achievements(s, user.id, now=T0)
        progress = get_user_achievements(s, user.id)
        assert len(progress) == len(ACHIEVEMENT_CATALOG)
        by_id = {p.definition.id: p for p in progress}
        assert by_id["first_post"].unlocked is True
        assert by_id["climb_5"].progress_value == 0
        assert by_id["climb_5"].unlocked is False

    def test_top_badges_most_recent_first(self, s):
        user = make_user(s, workouts_count=1)
        evaluate_achievements(s, user.id, now=T0)
        s.get(Profile, user.id).streak = 3
        s.flush()
        evaluate_achievements(s, user.id, now=T1)
        s.get(Profile, user.id).friends_count = 3
        s.flush()
        evaluate_achievements(s, user.id, now=T2)
        assert [b.id for b in get_top_badges(s, user.id)] == ["friends_3", "streak_3"]

    def test_feed_post(self, s):
        user = make_user(s)
        post = create_feed_post(s, user.id, "streak_7")
        assert "7 Day Streak" in post.message
        assert get_feed_posts(s, [user.id]) == [post]
        assert get_feed_posts(s, []) == []
        assert s.execute(select(AchievementFeedPost)).scalars().all() == [post]
