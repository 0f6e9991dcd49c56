"""Tests for the workout pipeline that drives the other subsystems."""

from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import func, select

from conftest import log_workouts, make_group, make_user

from uplift.errors import ConflictError, ErrorCode, NotFoundError, ValidationError
from uplift.models import AchievementFeedPost, Profile, Workout
from uplift.services import activity
from uplift.services.activity import record_workout
from uplift.services.competitions import accept_challenge, challenge_group
from uplift.services.duels import accept_duel, create_duel

NOW = datetime(2026, 4, 15, 18, 30)
TODAY = NOW.date()


def _workouts(s, user_id):
    return s.execute(select(func.count(Workout.id)).where(Workout.user_id == user_id)).scalar_one()


class TestRecordWorkout:
    def test_first_workout(self, s):
        user = make_user(s)
        outcome = record_workout(s, user.id, caption="leg day", now=NOW)
        assert outcome.workout.workout_date == TODAY
        assert outcome.workout.caption == "leg day"
        assert (outcome.workouts_count, outcome.streak) == (1, 1)
        assert [u.definition.id for u in outcome.unlocked] == ["first_post"]
        assert len(outcome.feed_posts) == 1
        assert outcome.level_up is None

    def test_streak_continues_from_yesterday(self, s):
        user = make_user(s, workouts_count=1, streak=1)
        log_workouts(s, user, [TODAY - timedelta(days=1)])
        assert record_workout(s, user.id, now=NOW).streak == 2

    def test_streak_restarts_after_gap(self, s):
        user = make_user(s, workouts_count=1, streak=4)
        log_workouts(s, user, [TODAY - timedelta(days=3)])
        assert record_workout(s, user.id, now=NOW).streak == 1

    def test_backdated_workout(self, s):
        user = make_user(s)
        outcome = record_workout(s, user.id, workout_date=date(2026, 4, 10), now=NOW)
        assert outcome.workout.workout_date == date(2026, 4, 10)

    def test_future_date_rejected(self, s):
        user = make_user(s)
        with pytest.raises(ValidationError):
            record_workout(s, user.id, workout_date=TODAY + timedelta(days=1), now=NOW)
        assert _workouts(s, user.id) == 0

    def test_one_per_day(self, s):
        user = make_user(s)
        record_workout(s, user.id, now=NOW)
        with pytest.raises(ConflictError) as exc:
            record_workout(s, user.id, now=NOW + timedelta(hours=1))
        assert exc.value.code == ErrorCode.WORKOUT_ALREADY_LOGGED
        assert s.get(Profile, user.id).workouts_count == 1

    def test_unknown_user(self, s):
        with pytest.raises(NotFoundError):
            record_workout(s, 404, now=NOW)


class TestHooks:
    def test_credits_active_competition(self, s):
        o1, o2 = make_user(s, "o1"), make_user(s, "o2")
        g1, g2 = make_group(s, o1, "g1"), make_group(s, o2, "g2")
        competition = challenge_group(s, g1.id, g2.id, o1.id, now=NOW - timedelta(days=1))
        accept_challenge(s, competition.id, o2.id, now=NOW - timedelta(days=1))

        outcome = record_workout(s, o2.id, now=NOW)
        assert outcome.competitions_credited == [competition.id]
        assert (competition.group1_score, competition.group2_score) == (0, 1)

    def test_updates_active_duels(self, s):
        a, b = make_user(s, "a"), make_user(s, "b")
        duel = create_duel(s, a.id, b.id, now=NOW - timedelta(hours=2))
        accept_duel(s, duel.id, b.id, now=NOW - timedelta(hours=1))

        outcome = record_workout(s, b.id, now=NOW)
        assert outcome.duels_updated == [duel.id]
        assert (duel.challenger_score, duel.opponent_score) == (0, 1)

    def test_level_up_reported(self, s):
        user = make_user(s, workouts_count=17)
        outcome = record_workout(s, user.id, now=NOW)
        assert outcome.level_up is not None
        assert outcome.level_up.tier == "silver"

    def test_achievement_failure_does_not_lose_workout(self, s, monkeypatch, caplog):
        user = make_user(s)

        def boom(*args, **kwargs):
            raise RuntimeError("catalog exploded")

        monkeypatch.setattr(activity, "evaluate_achievements", boom)
        outcome = record_workout(s, user.id, now=NOW)

        assert outcome.unlocked == []
        assert outcome.feed_posts == []
        assert _workouts(s, user.id) == 1
        assert s.get(Profile, user.id).workouts_count == 1
        assert s.execute(select(AchievementFeedPost)).scalars().all() == []
        assert any(r.getMessage() == "achievement_evaluation_failed" for r in caplog.records)
