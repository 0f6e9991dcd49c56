"""Workout activity pipeline.

Logging a workout is the event that drives everything else: lifetime
counters, competition contributions, duel scores, achievements and levels.
The workout itself must always land; achievement bookkeeping runs in its own
savepoint and a failure there is logged, never raised.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from uplift.errors import ConflictError, ErrorCode, ValidationError
from uplift.models import AchievementFeedPost, Workout, utcnow
from uplift.repository import add_guarded, has_workout_on, require_profile
from uplift.services.achievements import UnlockedAchievement, create_feed_post, evaluate_achievements
from uplift.services.competitions import credit_workout
from uplift.services.duels import refresh_active_duels
from uplift.services.levels import LevelDefinition, detect_level_up, get_user_level
from uplift.services.streaks import next_running_streak

logger = logging.getLogger(__name__)


@dataclass
class WorkoutOutcome:
    workout: Workout
    workouts_count: int
    streak: int
    competitions_credited: list[int] = field(default_factory=list)
    duels_updated: list[int] = field(default_factory=list)
    unlocked: list[UnlockedAchievement] = field(default_factory=list)
    feed_posts: list[AchievementFeedPost] = field(default_factory=list)
    level_up: LevelDefinition | None = None


def record_workout(
    s: Session,
    user_id: int,
    workout_date: dt.date | None = None,
    caption: str | None = None,
    now: dt.datetime | None = None,
) -> WorkoutOutcome:
    """Log today's (or ``workout_date``'s) workout and run the gamification hooks.

    Raises:
        NotFoundError: unknown user
        ValidationError: workout dated in the future
        ConflictError: a workout is already logged for that day
    """
    now = now or utcnow()
    workout_date = workout_date or now.date()
    if workout_date > now.date():
        raise ValidationError("Workout date cannot be in the future", field="workout_date")

    profile = require_profile(s, user_id)
    conflict = ConflictError(
        "Workout already logged for this day",
        code=ErrorCode.WORKOUT_ALREADY_LOGGED,
        details={"user_id": user_id, "workout_date": workout_date.isoformat()},
    )
    if has_workout_on(s, user_id, workout_date):
        raise conflict

    xp_before = get_user_level(s, user_id).xp

    workout = add_guarded(
        s,
        Workout(user_id=user_id, workout_date=workout_date, caption=caption, created_at=now),
        conflict,
    )
    profile.streak = next_running_streak(s, user_id, workout_date, profile.streak)
    profile.workouts_count = (profile.workouts_count or 0) + 1
    s.flush()

    outcome = WorkoutOutcome(workout=workout, workouts_count=profile.workouts_count, streak=profile.streak)
    outcome.competitions_credited = credit_workout(s, user_id, now=now)
    outcome.duels_updated = [d.id for d in refresh_active_duels(s, user_id, now=now)]

    try:
        with s.begin_nested():
            outcome.unlocked = evaluate_achievements(s, user_id, now=now)
            outcome.feed_posts = [create_feed_post(s, user_id, u.definition.id) for u in outcome.unlocked]
    except Exception:
        logger.exception("achievement_evaluation_failed", extra={"user_id": user_id, "workout_id": workout.id})
        outcome.unlocked = []
        outcome.feed_posts = []

    outcome.level_up = detect_level_up(xp_before, get_user_level(s, user_id).xp)
    if outcome.level_up is not None:
        logger.info("level_up", extra={"user_id": user_id, "tier": outcome.level_up.tier})

    logger.info(
        "workout_recorded",
        extra={
            "user_id": user_id,
            "workout_id": workout.id,
            "workout_date": workout_date.isoformat(),
            "streak": profile.streak,
            "competitions": outcome.competitions_credited,
            "duels": outcome.duels_updated,
        },
    )
    return outcome
