from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, Response

from api.auth import CurrentUserId, JobToken
from api.deps import DbSession
from api.ratelimit import challenge_rate_limit, limiter
from api.schemas import (
    AchievementOut,
    CompetitionDetailsOut,
    CompetitionOut,
    ContributionOut,
    DuelOut,
    FinalizeJobOut,
    LeaderboardOut,
    LeaderboardRowOut,
    LevelOut,
    MatchmakingOut,
    NotifiedOut,
    WorkoutOut,
)
from uplift.services import achievements, competitions, duels, leaderboard, levels, matchmaking
from uplift.services.activity import record_workout
from uplift.services.streaks import month_label
from uplift.validators import ChallengeCreateInput, DuelCreateInput, WorkoutLogInput

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1")


def _achievement_out(p: achievements.AchievementProgress) -> AchievementOut:
    d = p.definition
    return AchievementOut(
        id=d.id,
        name=d.name,
        description=d.description,
        category=d.category,
        icon=d.icon,
        requirement_type=d.requirement_type,
        requirement_value=d.requirement_value,
        progress_value=p.progress_value,
        unlocked=p.unlocked,
        unlocked_at=p.unlocked_at,
        notified=p.notified,
    )


@router.get("/health", tags=["ops"])
def health():
    return {"status": "ok"}


# ── Leaderboard ──────────────────────────────────────────────────────────


@router.get("/leaderboard", response_model=LeaderboardOut, tags=["leaderboard"])
def get_leaderboard(
    s: DbSession,
    user_id: CurrentUserId,
    scope: str = Query("global"),
    group_id: Optional[int] = Query(None, gt=0),
    limit: Optional[int] = Query(None),
):
    result = leaderboard.get_leaderboard(s, scope=scope, group_id=group_id, limit=limit, current_user_id=user_id)
    movement = leaderboard.record_rank_movement(s, user_id, result, group_id=group_id)
    return LeaderboardOut(
        scope=result.scope,
        period=result.period.key,
        label=month_label(result.period.start),
        rows=[LeaderboardRowOut.model_validate(r) for r in result.rows],
        my_row=LeaderboardRowOut.model_validate(result.my_row) if result.my_row else None,
        rank_movement=movement,
    )


# ── Achievements & levels ────────────────────────────────────────────────


@router.get("/achievements/me", response_model=list[AchievementOut], tags=["achievements"])
def my_achievements(s: DbSession, user_id: CurrentUserId):
    return [_achievement_out(p) for p in achievements.get_user_achievements(s, user_id)]


@router.post("/achievements/evaluate", response_model=list[AchievementOut], tags=["achievements"])
def evaluate_my_achievements(s: DbSession, user_id: CurrentUserId):
    unlocked = {u.definition.id for u in achievements.evaluate_achievements(s, user_id)}
    return [_achievement_out(p) for p in achievements.get_user_achievements(s, user_id) if p.definition.id in unlocked]


@router.get("/achievements/unnotified", response_model=list[AchievementOut], tags=["achievements"])
def unnotified_achievements(s: DbSession, user_id: CurrentUserId):
    return [_achievement_out(p) for p in achievements.get_unnotified_achievements(s, user_id)]


@router.post("/achievements/{achievement_id}/notified", response_model=NotifiedOut, tags=["achievements"])
def mark_achievement_notified(achievement_id: str, s: DbSession, user_id: CurrentUserId):
    changed = achievements.mark_notified(s, user_id, achievement_id)
    return NotifiedOut(achievement_id=achievement_id, changed=changed)


@router.get("/levels/me", response_model=LevelOut, tags=["levels"])
def my_level(s: DbSession, user_id: CurrentUserId):
    lvl = levels.get_user_level(s, user_id)
    return LevelOut(
        tier=lvl.level.tier,
        title=lvl.level.title,
        color=lvl.level.color,
        xp=lvl.xp,
        next_tier=lvl.next_level.tier if lvl.next_level else None,
        progress=lvl.progress,
        xp_to_next=lvl.xp_to_next,
    )


# ── Matchmaking ──────────────────────────────────────────────────────────


@router.post("/matchmaking/{group_id}", response_model=MatchmakingOut, status_code=201, tags=["competitions"])
@limiter.limit(challenge_rate_limit)
def join_matchmaking(request: Request, response: Response, group_id: int, s: DbSession, user_id: CurrentUserId):
    competition = matchmaking.enqueue_group(s, group_id, user_id)
    return MatchmakingOut(
        group_id=group_id,
        queued=competition is None,
        competition=CompetitionOut.model_validate(competition) if competition else None,
    )


@router.delete("/matchmaking/{group_id}", status_code=204, tags=["competitions"])
def leave_matchmaking(group_id: int, s: DbSession, user_id: CurrentUserId):
    matchmaking.dequeue_group(s, group_id, user_id)


# ── Competitions ─────────────────────────────────────────────────────────


@router.post("/competitions", response_model=CompetitionOut, status_code=201, tags=["competitions"])
@limiter.limit(challenge_rate_limit)
def create_challenge(request: Request, response: Response, payload: ChallengeCreateInput, s: DbSession, user_id: CurrentUserId):
    return competitions.challenge_group(
        s,
        payload.challenger_group_id,
        payload.target_group_id,
        user_id,
        duration_days=payload.duration_days,
    )


@router.post("/competitions/{competition_id}/accept", response_model=CompetitionOut, tags=["competitions"])
def accept_challenge(competition_id: int, s: DbSession, user_id: CurrentUserId):
    return competitions.accept_challenge(s, competition_id, user_id)


@router.post("/competitions/{competition_id}/cancel", response_model=CompetitionOut, tags=["competitions"])
def cancel_challenge(competition_id: int, s: DbSession, user_id: CurrentUserId):
    return competitions.cancel_challenge(s, competition_id, user_id)


@router.get("/competitions/{competition_id}", response_model=CompetitionDetailsOut, tags=["competitions"])
def competition_details(competition_id: int, s: DbSession, user_id: CurrentUserId):
    details = competitions.get_competition_details(s, competition_id)
    return CompetitionDetailsOut(
        competition=CompetitionOut.model_validate(details.competition),
        group1_name=details.group1_name,
        group2_name=details.group2_name,
        contributions=[ContributionOut.model_validate(c) for c in details.contributions],
    )


# ── Duels ────────────────────────────────────────────────────────────────


@router.post("/duels", response_model=DuelOut, status_code=201, tags=["duels"])
@limiter.limit(challenge_rate_limit)
def create_duel(request: Request, response: Response, payload: DuelCreateInput, s: DbSession, user_id: CurrentUserId):
    return duels.create_duel(s, user_id, payload.opponent_id, payload.type, payload.duration_days)


@router.post("/duels/{duel_id}/accept", response_model=DuelOut, tags=["duels"])
def accept_duel(duel_id: int, s: DbSession, user_id: CurrentUserId):
    return duels.accept_duel(s, duel_id, user_id)


@router.post("/duels/{duel_id}/decline", response_model=DuelOut, tags=["duels"])
def decline_duel(duel_id: int, s: DbSession, user_id: CurrentUserId):
    return duels.decline_duel(s, duel_id, user_id)


@router.post("/duels/{duel_id}/cancel", response_model=DuelOut, tags=["duels"])
def cancel_duel(duel_id: int, s: DbSession, user_id: CurrentUserId):
    return duels.cancel_duel(s, duel_id, user_id)


@router.get("/duels", response_model=list[DuelOut], tags=["duels"])
def list_duels(s: DbSession, user_id: CurrentUserId, status: Optional[str] = Query(None)):
    return duels.get_user_duels(s, user_id, status=status)


# ── Activity ─────────────────────────────────────────────────────────────


@router.post("/workouts", response_model=WorkoutOut, status_code=201, tags=["activity"])
def log_workout(payload: WorkoutLogInput, s: DbSession, user_id: CurrentUserId):
    outcome = record_workout(s, user_id, workout_date=payload.workout_date, caption=payload.caption or None)
    return WorkoutOut(
        workout_id=outcome.workout.id,
        workout_date=outcome.workout.workout_date,
        workouts_count=outcome.workouts_count,
        streak=outcome.streak,
        competitions_credited=outcome.competitions_credited,
        duels_updated=outcome.duels_updated,
        unlocked=[u.definition.id for u in outcome.unlocked],
        level_up=outcome.level_up.tier if outcome.level_up else None,
    )


# ── Scheduler ────────────────────────────────────────────────────────────


@router.post("/jobs/finalize", response_model=FinalizeJobOut, tags=["ops"])
def run_finalizers(s: DbSession, _: JobToken):
    paired = matchmaking.pair_waiting_groups(s)
    comp_report = competitions.finalize_expired_competitions(s)
    duel_report = duels.finalize_expired_duels(s)
    logger.info("finalize_job_run", extra={"paired": len(paired)})
    return FinalizeJobOut(
        competitions=comp_report.as_dict(),
        duels=duel_report.as_dict(),
        paired=[c.id for c in paired],
    )
