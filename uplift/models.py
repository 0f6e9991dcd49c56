from __future__ import annotations

import datetime as dt

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Lifecycle states shared by competitions and duels
PENDING = "pending"
ACTIVE = "active"
COMPLETED = "completed"
CANCELLED = "cancelled"
DECLINED = "declined"
OPEN_STATUSES = (PENDING, ACTIVE)

COMPETITION_TYPES = ("matchmaking", "challenge")
DUEL_TYPES = ("streak", "workout_count")
GROUP_ROLES = ("owner", "admin", "member")

_OPEN_WHERE = text("status IN ('pending', 'active')")


def utcnow() -> dt.datetime:
    """Naive UTC timestamp; every datetime column stores UTC."""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def pair_key(a: int, b: int) -> str:
    """Order-independent key for a pair of ids."""
    low, high = sorted((int(a), int(b)))
    return f"{low}:{high}"


class Base(DeclarativeBase):
    pass


class Profile(Base):
    __tablename__ = "profiles"
    id: Mapped[int] = mapped_column(primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(120))
    workouts_count: Mapped[int] = mapped_column(Integer, default=0)
    streak: Mapped[int] = mapped_column(Integer, default=0)
    groups_count: Mapped[int] = mapped_column(Integer, default=0)
    friends_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)


class Friendship(Base):
    __tablename__ = "friendships"
    id: Mapped[int] = mapped_column(primary_key=True)
    requester_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), index=True)
    addressee_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), index=True)
    status: Mapped[str] = mapped_column(String(16), default="pending")
    accepted_at: Mapped[dt.datetime | None] = mapped_column(DateTime)
    __table_args__ = (UniqueConstraint("requester_id", "addressee_id", name="uq_friendship_pair"),)


class Group(Base):
    __tablename__ = "groups"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120))
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[int] = mapped_column(ForeignKey("profiles.id"))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)


class GroupMember(Base):
    __tablename__ = "group_members"
    id: Mapped[int] = mapped_column(primary_key=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), index=True)
    role: Mapped[str] = mapped_column(String(16), default="member")
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_member"),
        CheckConstraint("role in ('owner', 'admin', 'member')"),
    )


class Workout(Base):
    __tablename__ = "workouts"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), index=True)
    workout_date: Mapped[dt.date] = mapped_column(Date, index=True)
    caption: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    __table_args__ = (UniqueConstraint("user_id", "workout_date", name="uq_workout_daily"),)


class WorkoutReaction(Base):
    __tablename__ = "workout_reactions"
    id: Mapped[int] = mapped_column(primary_key=True)
    workout_id: Mapped[int] = mapped_column(ForeignKey("workouts.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"))
    emoji: Mapped[str] = mapped_column(String(16), default="fire")
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)


class WorkoutComment(Base):
    __tablename__ = "workout_comments"
    id: Mapped[int] = mapped_column(primary_key=True)
    workout_id: Mapped[int] = mapped_column(ForeignKey("workouts.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"))
    body: Mapped[str] = mapped_column(Text)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)


class UserAchievement(Base):
    __tablename__ = "user_achievements"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), index=True)
    achievement_id: Mapped[str] = mapped_column(String(40))
    progress_value: Mapped[int] = mapped_column(Integer, default=0)
    unlocked: Mapped[bool] = mapped_column(Boolean, default=False)
    unlocked_at: Mapped[dt.datetime | None] = mapped_column(DateTime)
    notified: Mapped[bool] = mapped_column(Boolean, default=False)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    __table_args__ = (UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),)


class AchievementFeedPost(Base):
    __tablename__ = "achievement_feed_posts"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), index=True)
    achievement_id: Mapped[str] = mapped_column(String(40))
    message: Mapped[str] = mapped_column(Text)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)


class LeaderboardSnapshot(Base):
    __tablename__ = "leaderboard_snapshots"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), index=True)
    scope: Mapped[str] = mapped_column(String(40), default="global")
    period: Mapped[str] = mapped_column(String(7))
    rank: Mapped[int] = mapped_column(Integer)
    points: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    __table_args__ = (UniqueConstraint("user_id", "scope", "period", name="uq_snapshot_period"),)


class StreakFreeze(Base):
    __tablename__ = "streak_freezes"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), index=True)
    used_at: Mapped[dt.date] = mapped_column(Date)
    month_year: Mapped[str] = mapped_column(String(7))
    __table_args__ = (UniqueConstraint("user_id", "month_year", name="uq_streak_freeze_month"),)


class GroupCompetition(Base):
    __tablename__ = "group_competitions"
    id: Mapped[int] = mapped_column(primary_key=True)
    group1_id: Mapped[int] = mapped_column(ForeignKey("groups.id"), index=True)
    group2_id: Mapped[int] = mapped_column(ForeignKey("groups.id"), index=True)
    pair_key: Mapped[str] = mapped_column(String(64))
    type: Mapped[str] = mapped_column(String(16))
    status: Mapped[str] = mapped_column(String(16), default=PENDING, index=True)
    started_at: Mapped[dt.datetime | None] = mapped_column(DateTime)
    ends_at: Mapped[dt.datetime] = mapped_column(DateTime, index=True)
    group1_score: Mapped[int] = mapped_column(Integer, default=0)
    group2_score: Mapped[int] = mapped_column(Integer, default=0)
    winner_group_id: Mapped[int | None] = mapped_column(ForeignKey("groups.id"))
    created_by: Mapped[int] = mapped_column(ForeignKey("profiles.id"))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    __table_args__ = (
        CheckConstraint("group1_id != group2_id"),
        CheckConstraint("type in ('matchmaking', 'challenge')"),
        CheckConstraint("status in ('pending', 'active', 'completed', 'cancelled')"),
        Index(
            "uq_competition_open_pair",
            "pair_key",
            unique=True,
            postgresql_where=_OPEN_WHERE,
            sqlite_where=_OPEN_WHERE,
        ),
    )


class MatchmakingQueueEntry(Base):
    __tablename__ = "group_matchmaking_queue"
    id: Mapped[int] = mapped_column(primary_key=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id"), unique=True)
    queued_by: Mapped[int] = mapped_column(ForeignKey("profiles.id"))
    queued_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, index=True)


class CompetitionContribution(Base):
    __tablename__ = "competition_member_contributions"
    id: Mapped[int] = mapped_column(primary_key=True)
    competition_id: Mapped[int] = mapped_column(ForeignKey("group_competitions.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), index=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id"), index=True)
    points: Mapped[int] = mapped_column(Integer, default=0)
    workouts_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    __table_args__ = (
        UniqueConstraint("competition_id", "user_id", "group_id", name="uq_contribution_member"),
    )


class Duel(Base):
    __tablename__ = "duels"
    id: Mapped[int] = mapped_column(primary_key=True)
    challenger_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), index=True)
    opponent_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), index=True)
    pair_key: Mapped[str] = mapped_column(String(64))
    type: Mapped[str] = mapped_column(String(16), default="workout_count")
    duration_days: Mapped[int] = mapped_column(Integer, default=7)
    status: Mapped[str] = mapped_column(String(16), default=PENDING, index=True)
    challenger_score: Mapped[int] = mapped_column(Integer, default=0)
    opponent_score: Mapped[int] = mapped_column(Integer, default=0)
    winner_id: Mapped[int | None] = mapped_column(ForeignKey("profiles.id"))
    started_at: Mapped[dt.datetime | None] = mapped_column(DateTime)
    ends_at: Mapped[dt.datetime | None] = mapped_column(DateTime)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    __table_args__ = (
        CheckConstraint("challenger_id != opponent_id"),
        CheckConstraint("type in ('streak', 'workout_count')"),
        CheckConstraint("status in ('pending', 'active', 'completed', 'declined', 'cancelled')"),
        CheckConstraint("duration_days > 0"),
        Index(
            "uq_duel_open_pair",
            "pair_key",
            unique=True,
            postgresql_where=_OPEN_WHERE,
            sqlite_where=_OPEN_WHERE,
        ),
    )
