"""Group competitions: challenge lifecycle, contributions and expiry.

    pending ──accept──▶ active ──(ends_at passes)──▶ completed
       │
       └──cancel──▶ cancelled

Scores are only ever written by the contribution path
(``recompute_competition_scores``); lifecycle transitions never touch them.
Every transition is a conditional UPDATE on the expected current status, so
two racing callers cannot both move the same record.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from uplift.config import get_settings
from uplift.errors import ConflictError, ErrorCode, PermissionDeniedError, ValidationError
from uplift.models import (
    ACTIVE,
    CANCELLED,
    COMPLETED,
    OPEN_STATUSES,
    PENDING,
    CompetitionContribution,
    Group,
    GroupCompetition,
    pair_key,
    utcnow,
)
from uplift.repository import (
    add_guarded,
    find_open_competition,
    get_competition,
    get_display_names,
    get_member_role,
    get_user_group_ids,
    require_group,
)
from uplift.services.finalize import FinalizeReport, decide_winner, run_batch
from uplift.services.groups import is_group_manager, require_group_manager

logger = logging.getLogger(__name__)


def validate_duration(duration_days: int | None, default: int) -> int:
    max_days = get_settings().max_duration_days
    if duration_days is None:
        return default
    if duration_days < 1 or duration_days > max_days:
        raise ValidationError(f"duration_days must be between 1 and {max_days}", field="duration_days")
    return duration_days


def _ensure_no_open_competition(s: Session, group_id: int) -> None:
    existing = find_open_competition(s, group_id)
    if existing is not None:
        raise ConflictError(
            "Group already has a pending or active competition",
            code=ErrorCode.COMPETITION_IN_PROGRESS,
            details={"group_id": group_id, "competition_id": existing.id},
        )


def insert_competition(s: Session, competition: GroupCompetition) -> GroupCompetition:
    """Guarded insert on the open-pair unique index."""
    competition.pair_key = pair_key(competition.group1_id, competition.group2_id)
    add_guarded(
        s,
        competition,
        ConflictError(
            "These groups already have a pending or active competition",
            code=ErrorCode.CHALLENGE_EXISTS,
            details={"group1_id": competition.group1_id, "group2_id": competition.group2_id},
        ),
    )
    return competition


# ── Challenge lifecycle ──────────────────────────────────────────────────

def challenge_group(
    s: Session,
    challenger_group_id: int,
    target_group_id: int,
    user_id: int,
    duration_days: int | None = None,
    now: dt.datetime | None = None,
) -> GroupCompetition:
    """Create a pending challenge from one group to another.

    Raises:
        ValidationError: same group twice, or duration out of range
        NotFoundError: either group is missing
        PermissionDeniedError: actor is not owner/admin of the challenger
        ConflictError: either group already has an open competition
    """
    if challenger_group_id == target_group_id:
        raise ValidationError("A group cannot challenge itself", field="target_group_id")
    settings = get_settings()
    duration = validate_duration(duration_days, settings.competition_duration_days)

    require_group(s, challenger_group_id)
    require_group(s, target_group_id)
    require_group_manager(s, challenger_group_id, user_id, "challenge other groups")

    _ensure_no_open_competition(s, challenger_group_id)
    _ensure_no_open_competition(s, target_group_id)

    now = now or utcnow()
    competition = insert_competition(
        s,
        GroupCompetition(
            group1_id=challenger_group_id,
            group2_id=target_group_id,
            type="challenge",
            status=PENDING,
            ends_at=now + dt.timedelta(days=duration),
            group1_score=0,
            group2_score=0,
            created_by=user_id,
            created_at=now,
        ),
    )
    logger.info(
        "challenge_created",
        extra={
            "competition_id": competition.id,
            "group1_id": challenger_group_id,
            "group2_id": target_group_id,
            "user_id": user_id,
        },
    )
    return competition


def _transition(s: Session, competition: GroupCompetition, from_status: str, **values) -> None:
    result = s.execute(
        update(GroupCompetition)
        .where(GroupCompetition.id == competition.id, GroupCompetition.status == from_status)
        .values(**values)
        .execution_options(synchronize_session="evaluate")
    )
    if result.rowcount != 1:
        s.refresh(competition)
        raise ConflictError(
            f"Competition is {competition.status}, expected {from_status}",
            code=ErrorCode.INVALID_STATE,
            details={"competition_id": competition.id, "status": competition.status},
        )


def _require_status(competition: GroupCompetition, expected: str) -> None:
    if competition.status != expected:
        raise ConflictError(
            f"Competition is {competition.status}, expected {expected}",
            code=ErrorCode.INVALID_STATE,
            details={"competition_id": competition.id, "status": competition.status},
        )


def accept_challenge(s: Session, competition_id: int, user_id: int, now: dt.datetime | None = None) -> GroupCompetition:
    """Invited group's owner/admin starts the competition."""
    competition = get_competition(s, competition_id)
    _require_status(competition, PENDING)
    require_group_manager(s, competition.group2_id, user_id, "accept challenges")

    now = now or utcnow()
    _transition(s, competition, PENDING, status=ACTIVE, started_at=now)
    s.refresh(competition)
    logger.info("challenge_accepted", extra={"competition_id": competition.id, "user_id": user_id})
    return competition


def cancel_challenge(s: Session, competition_id: int, user_id: int) -> GroupCompetition:
    """Owner/admin of either group withdraws a pending challenge."""
    competition = get_competition(s, competition_id)
    _require_status(competition, PENDING)
    if not (
        is_group_manager(get_member_role(s, competition.group1_id, user_id))
        or is_group_manager(get_member_role(s, competition.group2_id, user_id))
    ):
        raise PermissionDeniedError(
            "Only owner or admin can cancel challenges",
            details={"competition_id": competition.id, "user_id": user_id},
        )

    _transition(s, competition, PENDING, status=CANCELLED)
    s.refresh(competition)
    logger.info("challenge_cancelled", extra={"competition_id": competition.id, "user_id": user_id})
    return competition


# ── Expiry ───────────────────────────────────────────────────────────────

def finalize_competition(s: Session, competition_id: int, now: dt.datetime | None = None) -> bool:
    """Settle an expired active competition.

    Returns True if this call completed it; False if it is not active or not
    yet expired (including already completed, so reruns are no-ops).
    """
    now = now or utcnow()
    competition = get_competition(s, competition_id)
    if competition.status != ACTIVE or competition.ends_at > now:
        return False

    winner = decide_winner(
        competition.group1_score, competition.group2_score, competition.group1_id, competition.group2_id
    )
    result = s.execute(
        update(GroupCompetition)
        .where(GroupCompetition.id == competition.id, GroupCompetition.status == ACTIVE)
        .values(status=COMPLETED, winner_group_id=winner)
        .execution_options(synchronize_session="evaluate")
    )
    if result.rowcount != 1:
        return False
    logger.info(
        "competition_finalized",
        extra={
            "competition_id": competition.id,
            "winner_group_id": winner,
            "group1_score": competition.group1_score,
            "group2_score": competition.group2_score,
        },
    )
    return True


def finalize_expired_competitions(s: Session, now: dt.datetime | None = None) -> FinalizeReport:
    now = now or utcnow()
    ids = s.execute(
        select(GroupCompetition.id)
        .where(GroupCompetition.status == ACTIVE, GroupCompetition.ends_at <= now)
        .order_by(GroupCompetition.ends_at, GroupCompetition.id)
    ).scalars().all()
    return run_batch(s, "competition", ids, lambda cid: finalize_competition(s, cid, now))


# ── Contributions & scores ───────────────────────────────────────────────

def recompute_competition_scores(s: Session, competition_id: int) -> tuple[int, int]:
    """Set both group scores to the sum of their members' contribution points."""
    competition = get_competition(s, competition_id)
    totals = dict(
        s.execute(
            select(CompetitionContribution.group_id, func.coalesce(func.sum(CompetitionContribution.points), 0))
            .where(CompetitionContribution.competition_id == competition.id)
            .group_by(CompetitionContribution.group_id)
        ).all()
    )
    competition.group1_score = int(totals.get(competition.group1_id, 0))
    competition.group2_score = int(totals.get(competition.group2_id, 0))
    s.flush()
    return competition.group1_score, competition.group2_score


def _get_contribution(s: Session, competition_id: int, user_id: int, group_id: int) -> CompetitionContribution | None:
    return s.execute(
        select(CompetitionContribution).where(
            CompetitionContribution.competition_id == competition_id,
            CompetitionContribution.user_id == user_id,
            CompetitionContribution.group_id == group_id,
        )
    ).scalar_one_or_none()


def record_contribution(
    s: Session,
    competition_id: int,
    user_id: int,
    group_id: int,
    points: int | None = None,
    workouts: int = 1,
    now: dt.datetime | None = None,
) -> CompetitionContribution:
    """Credit a member's activity to their side of an active competition."""
    competition = get_competition(s, competition_id)
    if competition.status != ACTIVE:
        raise ConflictError(
            "Contributions only accrue to active competitions",
            code=ErrorCode.INVALID_STATE,
            details={"competition_id": competition_id, "status": competition.status},
        )
    if group_id not in (competition.group1_id, competition.group2_id):
        raise ValidationError("Group is not part of this competition", field="group_id")

    now = now or utcnow()
    if points is None:
        points = get_settings().competition_points_per_workout

    row = _get_contribution(s, competition_id, user_id, group_id)
    if row is None:
        row = CompetitionContribution(
            competition_id=competition_id,
            user_id=user_id,
            group_id=group_id,
            points=0,
            workouts_count=0,
            updated_at=now,
        )
        try:
            with s.begin_nested():
                s.add(row)
        except IntegrityError:
            row = _get_contribution(s, competition_id, user_id, group_id)

    row.points += points
    row.workouts_count += workouts
    row.updated_at = now
    s.flush()
    recompute_competition_scores(s, competition_id)
    return row


def credit_workout(s: Session, user_id: int, now: dt.datetime | None = None) -> list[int]:
    """Add one workout to every active competition the user's groups are in.

    Each competition is credited once. A user in both competing groups
    counts for the side with the lower group id.
    """
    now = now or utcnow()
    group_ids = get_user_group_ids(s, user_id)
    if not group_ids:
        return []
    competitions = s.execute(
        select(GroupCompetition)
        .where(
            GroupCompetition.status == ACTIVE,
            GroupCompetition.ends_at > now,
            or_(GroupCompetition.group1_id.in_(group_ids), GroupCompetition.group2_id.in_(group_ids)),
        )
        .order_by(GroupCompetition.id)
    ).scalars().all()
    credited = []
    for competition in competitions:
        side = min(g for g in (competition.group1_id, competition.group2_id) if g in group_ids)
        record_contribution(s, competition.id, user_id, side, now=now)
        credited.append(competition.id)
    return credited


# ── Queries ──────────────────────────────────────────────────────────────

@dataclass
class ContributionRow:
    user_id: int
    group_id: int
    points: int
    workouts_count: int
    display_name: str | None = None


@dataclass
class CompetitionDetails:
    competition: GroupCompetition
    group1_name: str
    group2_name: str
    contributions: list[ContributionRow] = field(default_factory=list)


def get_group_competitions(s: Session, group_id: int) -> list[GroupCompetition]:
    """Pending and active competitions involving the group, newest first."""
    return list(
        s.execute(
            select(GroupCompetition)
            .where(
                GroupCompetition.status.in_(OPEN_STATUSES),
                or_(GroupCompetition.group1_id == group_id, GroupCompetition.group2_id == group_id),
            )
            .order_by(GroupCompetition.created_at.desc(), GroupCompetition.id.desc())
        ).scalars().all()
    )


def get_completed_competitions(s: Session, group_id: int, limit: int = 10) -> list[GroupCompetition]:
    return list(
        s.execute(
            select(GroupCompetition)
            .where(
                GroupCompetition.status == COMPLETED,
                or_(GroupCompetition.group1_id == group_id, GroupCompetition.group2_id == group_id),
            )
            .order_by(GroupCompetition.ends_at.desc(), GroupCompetition.id.desc())
            .limit(limit)
        ).scalars().all()
    )


def get_competition_details(s: Session, competition_id: int) -> CompetitionDetails:
    competition = get_competition(s, competition_id)
    rows = s.execute(
        select(CompetitionContribution)
        .where(CompetitionContribution.competition_id == competition.id)
        .order_by(CompetitionContribution.points.desc(), CompetitionContribution.user_id)
    ).scalars().all()
    names = get_display_names(s, [r.user_id for r in rows])
    return CompetitionDetails(
        competition=competition,
        group1_name=require_group(s, competition.group1_id).name,
        group2_name=require_group(s, competition.group2_id).name,
        contributions=[
            ContributionRow(r.user_id, r.group_id, r.points, r.workouts_count, names.get(r.user_id))
            for r in rows
        ],
    )


def get_challengeable_groups(s: Session, user_id: int) -> list[Group]:
    """Public groups the user is not in and that have no open competition."""
    mine = set(get_user_group_ids(s, user_id))
    busy = set()
    for g1, g2 in s.execute(
        select(GroupCompetition.group1_id, GroupCompetition.group2_id).where(
            GroupCompetition.status.in_(OPEN_STATUSES)
        )
    ).all():
        busy.update((g1, g2))
    groups = s.execute(select(Group).where(Group.is_public.is_(True)).order_by(Group.name, Group.id)).scalars().all()
    return [g for g in groups if g.id not in mine and g.id not in busy]
