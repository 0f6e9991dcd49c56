"""Achievement catalog and unlock rule engine.

The catalog is static configuration. ``evaluate_achievements`` compares a
user's current stats against every stat-based definition and unlocks
achievements exactly once: ``unlocked`` only ever flips false → true, and the
flip is a guarded UPDATE so concurrent evaluations for the same user cannot
both report the same unlock. Competitive and goal achievements are driven by
a separate rule set and are skipped here.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from types import MappingProxyType

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from uplift.errors import ConflictError, ErrorCode, NotFoundError, ValidationError
from uplift.models import AchievementFeedPost, UserAchievement, utcnow
from uplift.repository import count_comments_received, count_reactions_received, require_profile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AchievementDefinition:
    id: str
    name: str
    description: str
    category: str
    icon: str
    requirement_type: str
    requirement_value: int
    sort_order: int


ACHIEVEMENT_CATALOG: tuple[AchievementDefinition, ...] = (
    # Consistency
    AchievementDefinition("streak_3", "3 Day Streak", "Log workouts 3 days in a row", "consistency", "🔥", "streak", 3, 10),
    AchievementDefinition("streak_7", "7 Day Streak", "Log workouts 7 days in a row", "consistency", "🔥", "streak", 7, 20),
    AchievementDefinition("streak_14", "14 Day Streak", "Log workouts 14 days in a row", "consistency", "🔥", "streak", 14, 30),
    AchievementDefinition("streak_30", "30 Day Streak", "Log workouts 30 days in a row", "consistency", "🔥", "streak", 30, 40),
    AchievementDefinition("streak_100", "100 Day Streak", "Log workouts 100 days in a row", "consistency", "🔥", "streak", 100, 50),
    # Volume
    AchievementDefinition("workouts_10", "10 Workouts", "Log 10 total workouts", "volume", "💪", "workouts_count", 10, 10),
    AchievementDefinition("workouts_50", "50 Workouts", "Log 50 total workouts", "volume", "💪", "workouts_count", 50, 20),
    AchievementDefinition("workouts_100", "100 Workouts", "Log 100 total workouts", "volume", "💪", "workouts_count", 100, 30),
    AchievementDefinition("workouts_200", "200 Workouts", "Log 200 total workouts", "volume", "💪", "workouts_count", 200, 40),
    # Competitive
    AchievementDefinition("top3_weekly", "Top 3 Finisher", "Finish in the top 3 on the weekly leaderboard", "competitive", "🏆", "top3_weekly", 1, 10),
    AchievementDefinition("first_in_group", "#1 in Group", "Finish #1 in your group leaderboard", "competitive", "🏆", "first_in_group", 1, 20),
    AchievementDefinition("climb_5", "Climb 5 Spots", "Climb 5 leaderboard spots in one week", "competitive", "🏆", "rank_climb", 5, 30),
    # Social
    AchievementDefinition("first_post", "First Post", "Log your very first workout", "social", "👥", "workouts_count", 1, 10),
    AchievementDefinition("reactions_10", "10 Reactions", "Receive 10 reactions on your posts", "social", "👥", "reactions_received", 10, 20),
    AchievementDefinition("comments_10", "10 Comments", "Receive 10 comments on your posts", "social", "👥", "comments_received", 10, 30),
    AchievementDefinition("friends_3", "Invite 3 Friends", "Add 3 friends on UPLift", "social", "👥", "friends_count", 3, 40),
    # Goals
    AchievementDefinition("weekly_goal_4", "Weekly Warrior", "Hit your weekly goal 4 weeks in a row", "goals", "🎯", "weekly_goal_streak", 4, 10),
    AchievementDefinition("perfect_month", "Perfect Month", "Log a workout every day for a full month", "goals", "🎯", "perfect_month", 1, 20),
)

CATALOG_BY_ID = MappingProxyType({a.id: a for a in ACHIEVEMENT_CATALOG})

SUPPORTED_STAT_KEYS = frozenset(
    {"streak", "workouts_count", "friends_count", "reactions_received", "comments_received"}
)


@dataclass
class UnlockedAchievement:
    definition: AchievementDefinition
    progress_value: int
    unlocked_at: dt.datetime


@dataclass
class AchievementProgress:
    definition: AchievementDefinition
    progress_value: int
    unlocked: bool
    unlocked_at: dt.datetime | None
    notified: bool


def load_achievement_stats(s: Session, user_id: int) -> dict[str, int]:
    profile = require_profile(s, user_id)
    return {
        "streak": profile.streak or 0,
        "workouts_count": profile.workouts_count or 0,
        "friends_count": profile.friends_count or 0,
        "reactions_received": count_reactions_received(s, user_id),
        "comments_received": count_comments_received(s, user_id),
    }


def _user_rows(s: Session, user_id: int) -> dict[str, UserAchievement]:
    rows = s.execute(select(UserAchievement).where(UserAchievement.user_id == user_id)).scalars().all()
    return {r.achievement_id: r for r in rows}


def _insert_progress(s: Session, user_id: int, ach: AchievementDefinition, progress: int, unlocked: bool, now: dt.datetime) -> bool:
    """Create the lazily-initialised row. False if another writer created it first."""
    try:
        with s.begin_nested():
            s.add(
                UserAchievement(
                    user_id=user_id,
                    achievement_id=ach.id,
                    progress_value=progress,
                    unlocked=unlocked,
                    unlocked_at=now if unlocked else None,
                    notified=False,
                    updated_at=now,
                )
            )
    except IntegrityError:
        return False
    return True


def _flip_unlocked(s: Session, row_id: int, progress: int, now: dt.datetime) -> bool:
    """Guarded false → true transition; True only for the writer that flipped it."""
    result = s.execute(
        update(UserAchievement)
        .where(UserAchievement.id == row_id, UserAchievement.unlocked.is_(False))
        .values(unlocked=True, unlocked_at=now, progress_value=progress, updated_at=now)
        .execution_options(synchronize_session="evaluate")
    )
    return result.rowcount == 1


def evaluate_achievements(
    s: Session,
    user_id: int,
    now: dt.datetime | None = None,
    catalog: tuple[AchievementDefinition, ...] = ACHIEVEMENT_CATALOG,
) -> list[UnlockedAchievement]:
    """Refresh progress for every stat-based achievement and unlock what is due.

    Safe to call redundantly: re-running with the same or stale stats never
    re-locks, never moves ``unlocked_at`` and never reports an unlock twice.

    Returns the achievements unlocked by this call, in catalog order.
    """
    now = now or utcnow()
    stats = load_achievement_stats(s, user_id)
    existing = _user_rows(s, user_id)
    newly_unlocked: list[UnlockedAchievement] = []

    for ach in catalog:
        if ach.requirement_type not in SUPPORTED_STAT_KEYS:
            continue
        progress = stats[ach.requirement_type]
        is_unlocked = progress >= ach.requirement_value
        row = existing.get(ach.id)

        if row is None:
            if _insert_progress(s, user_id, ach, progress, is_unlocked, now):
                if is_unlocked:
                    newly_unlocked.append(UnlockedAchievement(ach, progress, now))
                continue
            row = _user_rows(s, user_id).get(ach.id)
            if row is None:
                continue

        if row.unlocked:
            if row.progress_value != progress:
                row.progress_value = progress
                row.updated_at = now
            continue

        if is_unlocked:
            if _flip_unlocked(s, row.id, progress, now):
                newly_unlocked.append(UnlockedAchievement(ach, progress, now))
        elif row.progress_value != progress:
            row.progress_value = progress
            row.updated_at = now

    s.flush()
    if newly_unlocked:
        logger.info(
            "achievements_unlocked",
            extra={"user_id": user_id, "achievements": [u.definition.id for u in newly_unlocked]},
        )
    return newly_unlocked


# ── Celebration / notification bookkeeping ───────────────────────────────

def _require_definition(achievement_id: str) -> AchievementDefinition:
    if not achievement_id or not achievement_id.strip():
        raise ValidationError("achievement id must not be empty", field="achievement_id")
    definition = CATALOG_BY_ID.get(achievement_id)
    if definition is None:
        raise NotFoundError("Achievement", achievement_id)
    return definition


def mark_notified(s: Session, user_id: int, achievement_id: str) -> bool:
    """Record that an unlock has been surfaced to the user.

    Returns True on the false → true transition, False if it was already
    notified. Raises ConflictError if the achievement is not unlocked.
    """
    _require_definition(achievement_id)
    row = _user_rows(s, user_id).get(achievement_id)
    if row is None or not row.unlocked:
        raise ConflictError(
            "Achievement is not unlocked",
            code=ErrorCode.INVALID_STATE,
            details={"achievement_id": achievement_id},
        )
    result = s.execute(
        update(UserAchievement)
        .where(UserAchievement.id == row.id, UserAchievement.notified.is_(False))
        .values(notified=True)
        .execution_options(synchronize_session="evaluate")
    )
    return result.rowcount == 1


def get_unnotified_achievements(s: Session, user_id: int) -> list[AchievementProgress]:
    """Unlocked but not yet celebrated, oldest unlock first."""
    rows = s.execute(
        select(UserAchievement)
        .where(
            UserAchievement.user_id == user_id,
            UserAchievement.unlocked.is_(True),
            UserAchievement.notified.is_(False),
        )
        .order_by(UserAchievement.unlocked_at, UserAchievement.id)
    ).scalars().all()
    return [_progress(r) for r in rows if r.achievement_id in CATALOG_BY_ID]


def get_user_achievements(s: Session, user_id: int) -> list[AchievementProgress]:
    """Full catalog with the user's progress (implicitly 0/locked when absent)."""
    rows = _user_rows(s, user_id)
    out = []
    for ach in sorted(ACHIEVEMENT_CATALOG, key=lambda a: a.sort_order):
        row = rows.get(ach.id)
        if row is None:
            out.append(AchievementProgress(ach, 0, False, None, False))
        else:
            out.append(_progress(row))
    return out


def get_top_badges(s: Session, user_id: int, limit: int = 2) -> list[AchievementDefinition]:
    """Most recently unlocked achievements, for display next to a name."""
    rows = s.execute(
        select(UserAchievement.achievement_id)
        .where(UserAchievement.user_id == user_id, UserAchievement.unlocked.is_(True))
        .order_by(UserAchievement.unlocked_at.desc(), UserAchievement.id.desc())
    ).scalars().all()
    return [CATALOG_BY_ID[a] for a in rows if a in CATALOG_BY_ID][:limit]


def create_feed_post(s: Session, user_id: int, achievement_id: str, message: str | None = None) -> AchievementFeedPost:
    definition = _require_definition(achievement_id)
    post = AchievementFeedPost(
        user_id=user_id,
        achievement_id=achievement_id,
        message=message or f"Unlocked {definition.icon} {definition.name}",
    )
    s.add(post)
    s.flush()
    return post


def get_feed_posts(s: Session, user_ids: list[int], limit: int = 20) -> list[AchievementFeedPost]:
    if not user_ids:
        return []
    return list(
        s.execute(
            select(AchievementFeedPost)
            .where(AchievementFeedPost.user_id.in_(user_ids))
            .order_by(AchievementFeedPost.created_at.desc(), AchievementFeedPost.id.desc())
            .limit(limit)
        ).scalars().all()
    )


def _progress(row: UserAchievement) -> AchievementProgress:
    return AchievementProgress(
        definition=CATALOG_BY_ID[row.achievement_id],
        progress_value=row.progress_value,
        unlocked=row.unlocked,
        unlocked_at=row.unlocked_at,
        notified=row.notified,
    )
