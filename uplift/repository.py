"""Data-access primitives the gamification services are built on.

Plain functions over a SQLAlchemy ``Session``; none of them commit. The
caller owns the transaction (``session_scope`` or the API dependency).
"""

from __future__ import annotations

import datetime as dt
from collections import defaultdict
from dataclasses import dataclass

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from uplift.errors import ConflictError, NotFoundError
from uplift.models import (
    COMPLETED,
    OPEN_STATUSES,
    Duel,
    Friendship,
    Group,
    GroupCompetition,
    GroupMember,
    LeaderboardSnapshot,
    Profile,
    UserAchievement,
    Workout,
    WorkoutComment,
    WorkoutReaction,
)


@dataclass(frozen=True)
class UserStats:
    """Lifetime counters owned by the workout-logging path."""

    workouts_count: int = 0
    streak: int = 0
    groups_count: int = 0
    friends_count: int = 0
    competition_wins: int = 0


# ── Profiles & workouts ──────────────────────────────────────────────────

def require_profile(s: Session, user_id: int) -> Profile:
    profile = s.get(Profile, user_id)
    if profile is None:
        raise NotFoundError("User", user_id)
    return profile


def require_group(s: Session, group_id: int) -> Group:
    group = s.get(Group, group_id)
    if group is None:
        raise NotFoundError("Group", group_id)
    return group


def get_workout_dates(s: Session, user_id: int, from_date: dt.date, to_date: dt.date) -> list[dt.date]:
    rows = s.execute(
        select(Workout.workout_date)
        .where(Workout.user_id == user_id, Workout.workout_date >= from_date, Workout.workout_date <= to_date)
        .order_by(Workout.workout_date)
    ).scalars().all()
    return list(rows)


def get_workout_dates_by_user(s: Session, from_date: dt.date, to_date: dt.date) -> dict[int, set[dt.date]]:
    """Distinct workout days per user inside ``[from_date, to_date]``."""
    by_user: dict[int, set[dt.date]] = defaultdict(set)
    rows = s.execute(
        select(Workout.user_id, Workout.workout_date)
        .where(Workout.workout_date >= from_date, Workout.workout_date <= to_date)
        .order_by(Workout.id)
    ).all()
    for user_id, workout_date in rows:
        by_user[int(user_id)].add(workout_date)
    return dict(by_user)


def has_workout_on(s: Session, user_id: int, day: dt.date) -> bool:
    found = s.execute(
        select(Workout.id).where(Workout.user_id == user_id, Workout.workout_date == day)
    ).first()
    return found is not None


def count_workouts_between(s: Session, user_id: int, from_date: dt.date, to_date: dt.date) -> int:
    return int(
        s.execute(
            select(func.count(Workout.id)).where(
                Workout.user_id == user_id,
                Workout.workout_date >= from_date,
                Workout.workout_date <= to_date,
            )
        ).scalar_one()
    )


def count_workout_days_between(s: Session, user_id: int, from_date: dt.date, to_date: dt.date) -> int:
    return int(
        s.execute(
            select(func.count(func.distinct(Workout.workout_date))).where(
                Workout.user_id == user_id,
                Workout.workout_date >= from_date,
                Workout.workout_date <= to_date,
            )
        ).scalar_one()
    )


def get_display_names(s: Session, user_ids: list[int]) -> dict[int, str | None]:
    if not user_ids:
        return {}
    rows = s.execute(select(Profile.id, Profile.display_name).where(Profile.id.in_(user_ids))).all()
    return {int(pid): name for pid, name in rows}


# ── Social graph ─────────────────────────────────────────────────────────

def get_friend_ids(s: Session, user_id: int) -> list[int]:
    rows = s.execute(
        select(Friendship.requester_id, Friendship.addressee_id).where(
            Friendship.status == "accepted",
            or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id),
        )
    ).all()
    friends = {addressee if requester == user_id else requester for requester, addressee in rows}
    return sorted(friends)


def get_group_members(s: Session, group_id: int) -> list[int]:
    rows = s.execute(
        select(GroupMember.user_id).where(GroupMember.group_id == group_id).order_by(GroupMember.user_id)
    ).scalars().all()
    return [int(r) for r in rows]


def get_user_group_ids(s: Session, user_id: int) -> list[int]:
    rows = s.execute(
        select(GroupMember.group_id).where(GroupMember.user_id == user_id).order_by(GroupMember.group_id)
    ).scalars().all()
    return [int(r) for r in rows]


def get_group_peer_ids(s: Session, user_id: int) -> list[int]:
    """Everyone sharing at least one group with ``user_id`` (the user included)."""
    group_ids = get_user_group_ids(s, user_id)
    if not group_ids:
        return []
    rows = s.execute(
        select(GroupMember.user_id).where(GroupMember.group_id.in_(group_ids)).distinct()
    ).scalars().all()
    return sorted(int(r) for r in rows)


def get_member_role(s: Session, group_id: int, user_id: int) -> str | None:
    return s.execute(
        select(GroupMember.role).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    ).scalar_one_or_none()


# ── Stats ────────────────────────────────────────────────────────────────

def competition_wins_by_user(s: Session) -> dict[int, int]:
    """Completed-competition wins credited to current members of each winning group."""
    group_wins = dict(
        s.execute(
            select(GroupCompetition.winner_group_id, func.count(GroupCompetition.id))
            .where(GroupCompetition.status == COMPLETED, GroupCompetition.winner_group_id.is_not(None))
            .group_by(GroupCompetition.winner_group_id)
        ).all()
    )
    if not group_wins:
        return {}
    wins: dict[int, int] = defaultdict(int)
    rows = s.execute(
        select(GroupMember.user_id, GroupMember.group_id).where(GroupMember.group_id.in_(list(group_wins)))
    ).all()
    for user_id, group_id in rows:
        wins[int(user_id)] += int(group_wins[group_id])
    return dict(wins)


def get_lifetime_stats(s: Session, user_id: int) -> UserStats:
    profile = s.get(Profile, user_id)
    if profile is None:
        return UserStats()
    return UserStats(
        workouts_count=profile.workouts_count or 0,
        streak=profile.streak or 0,
        groups_count=profile.groups_count or 0,
        friends_count=profile.friends_count or 0,
        competition_wins=competition_wins_by_user(s).get(user_id, 0),
    )


def count_reactions_received(s: Session, user_id: int) -> int:
    return int(
        s.execute(
            select(func.count(WorkoutReaction.id))
            .join(Workout, Workout.id == WorkoutReaction.workout_id)
            .where(Workout.user_id == user_id)
        ).scalar_one()
    )


def count_comments_received(s: Session, user_id: int) -> int:
    """Comments left by other users on ``user_id``'s workouts."""
    return int(
        s.execute(
            select(func.count(WorkoutComment.id))
            .join(Workout, Workout.id == WorkoutComment.workout_id)
            .where(Workout.user_id == user_id, WorkoutComment.user_id != user_id)
        ).scalar_one()
    )


def count_unlocked_achievements(s: Session, user_ids: list[int]) -> dict[int, int]:
    if not user_ids:
        return {}
    rows = s.execute(
        select(UserAchievement.user_id, func.count(UserAchievement.id))
        .where(UserAchievement.user_id.in_(user_ids), UserAchievement.unlocked.is_(True))
        .group_by(UserAchievement.user_id)
    ).all()
    return {int(uid): int(n) for uid, n in rows}


# ── Competitions ─────────────────────────────────────────────────────────

def find_open_competition(s: Session, group_id: int) -> GroupCompetition | None:
    return s.execute(
        select(GroupCompetition)
        .where(
            GroupCompetition.status.in_(OPEN_STATUSES),
            or_(GroupCompetition.group1_id == group_id, GroupCompetition.group2_id == group_id),
        )
        .order_by(GroupCompetition.id)
        .limit(1)
    ).scalar_one_or_none()


# ── Leaderboard snapshots ────────────────────────────────────────────────

def get_snapshot(s: Session, user_id: int, scope: str, period: str) -> LeaderboardSnapshot | None:
    return s.execute(
        select(LeaderboardSnapshot).where(
            LeaderboardSnapshot.user_id == user_id,
            LeaderboardSnapshot.scope == scope,
            LeaderboardSnapshot.period == period,
        )
    ).scalar_one_or_none()


def upsert_snapshot(s: Session, user_id: int, scope: str, period: str, rank: int, points: int) -> LeaderboardSnapshot:
    snap = get_snapshot(s, user_id, scope, period)
    if snap is None:
        snap = LeaderboardSnapshot(user_id=user_id, scope=scope, period=period, rank=rank, points=points)
        s.add(snap)
    else:
        snap.rank = rank
        snap.points = points
    s.flush()
    return snap


# ── Guarded inserts ──────────────────────────────────────────────────────

def add_guarded(s: Session, obj, conflict: ConflictError):
    """Insert ``obj`` inside a savepoint; a unique-constraint hit raises ``conflict``.

    The storage constraint is the race guard; the application checks that
    precede this call only make the common case fail fast.
    """
    try:
        with s.begin_nested():
            s.add(obj)
    except IntegrityError as exc:
        raise conflict from exc
    return obj


def get_competition(s: Session, competition_id: int) -> GroupCompetition:
    competition = s.get(GroupCompetition, competition_id)
    if competition is None:
        raise NotFoundError("Competition", competition_id)
    return competition


def get_duel(s: Session, duel_id: int) -> Duel:
    duel = s.get(Duel, duel_id)
    if duel is None:
        raise NotFoundError("Duel", duel_id)
    return duel
