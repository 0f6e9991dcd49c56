from __future__ import annotations

from datetime import date as dt_date
from datetime import datetime as dt_datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict = Field(default_factory=dict)


class ErrorOut(BaseModel):
    error: ErrorBody


# ── Leaderboard ──────────────────────────────────────────────────────────


class LeaderboardRowOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    display_name: Optional[str] = None
    workouts_count: int
    streak: int
    competition_wins: int
    points: int
    rank: int


class LeaderboardOut(BaseModel):
    scope: str
    period: str
    label: str
    rows: list[LeaderboardRowOut]
    my_row: Optional[LeaderboardRowOut] = None
    rank_movement: Optional[int] = None


# ── Achievements & levels ────────────────────────────────────────────────


class AchievementOut(BaseModel):
    id: str
    name: str
    description: str
    category: str
    icon: str
    requirement_type: str
    requirement_value: int
    progress_value: int = 0
    unlocked: bool = False
    unlocked_at: Optional[dt_datetime] = None
    notified: bool = False


class NotifiedOut(BaseModel):
    achievement_id: str
    changed: bool


class LevelOut(BaseModel):
    tier: str
    title: str
    color: str
    xp: int
    next_tier: Optional[str] = None
    progress: float
    xp_to_next: int


# ── Competitions, matchmaking, duels ─────────────────────────────────────


class CompetitionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    group1_id: int
    group2_id: int
    type: str
    status: str
    started_at: Optional[dt_datetime] = None
    ends_at: dt_datetime
    group1_score: int
    group2_score: int
    winner_group_id: Optional[int] = None
    created_by: int
    created_at: dt_datetime


class ContributionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    group_id: int
    display_name: Optional[str] = None
    points: int
    workouts_count: int


class CompetitionDetailsOut(BaseModel):
    competition: CompetitionOut
    group1_name: str
    group2_name: str
    contributions: list[ContributionOut]


class MatchmakingOut(BaseModel):
    group_id: int
    queued: bool
    competition: Optional[CompetitionOut] = None


class DuelOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    challenger_id: int
    opponent_id: int
    type: str
    duration_days: int
    status: str
    challenger_score: int
    opponent_score: int
    winner_id: Optional[int] = None
    started_at: Optional[dt_datetime] = None
    ends_at: Optional[dt_datetime] = None
    created_at: dt_datetime


# ── Activity & jobs ──────────────────────────────────────────────────────


class WorkoutOut(BaseModel):
    workout_id: int
    workout_date: dt_date
    workouts_count: int
    streak: int
    competitions_credited: list[int]
    duels_updated: list[int]
    unlocked: list[str]
    level_up: Optional[str] = None


class FinalizeReportOut(BaseModel):
    kind: str
    finalized: list[int]
    skipped: list[int]
    failed: list[int]


class FinalizeJobOut(BaseModel):
    competitions: FinalizeReportOut
    duels: FinalizeReportOut
    paired: list[int]
