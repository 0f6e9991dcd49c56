"""1v1 duels between users.

    pending ──accept──▶ active ──(ends_at passes)──▶ completed
       ├──decline──▶ declined   (opponent)
       └──cancel───▶ cancelled  (challenger)
"""

from __future__ import annotations

import datetime as dt
import logging

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from uplift.config import get_settings
from uplift.errors import ConflictError, ErrorCode, PermissionDeniedError, ValidationError
from uplift.models import (
    ACTIVE,
    CANCELLED,
    COMPLETED,
    DECLINED,
    DUEL_TYPES,
    OPEN_STATUSES,
    PENDING,
    Duel,
    pair_key,
    utcnow,
)
from uplift.repository import (
    add_guarded,
    count_workout_days_between,
    count_workouts_between,
    get_duel,
    require_profile,
)
from uplift.services.competitions import validate_duration
from uplift.services.finalize import FinalizeReport, decide_winner, run_batch

logger = logging.getLogger(__name__)


def has_existing_duel(s: Session, user_a: int, user_b: int) -> bool:
    """True if a pending or active duel exists between the pair, in either direction."""
    return (
        s.execute(
            select(Duel.id).where(Duel.pair_key == pair_key(user_a, user_b), Duel.status.in_(OPEN_STATUSES)).limit(1)
        ).first()
        is not None
    )


def create_duel(
    s: Session,
    challenger_id: int,
    opponent_id: int,
    duel_type: str = "workout_count",
    duration_days: int | None = None,
    now: dt.datetime | None = None,
) -> Duel:
    if challenger_id == opponent_id:
        raise ValidationError("You cannot duel yourself", field="opponent_id")
    if duel_type not in DUEL_TYPES:
        raise ValidationError(f"type must be one of {DUEL_TYPES}", field="type")
    duration = validate_duration(duration_days, get_settings().duel_duration_days)

    require_profile(s, challenger_id)
    require_profile(s, opponent_id)

    conflict = ConflictError(
        "A pending or active duel already exists between these users",
        code=ErrorCode.DUEL_EXISTS,
        details={"challenger_id": challenger_id, "opponent_id": opponent_id},
    )
    if has_existing_duel(s, challenger_id, opponent_id):
        raise conflict

    now = now or utcnow()
    duel = add_guarded(
        s,
        Duel(
            challenger_id=challenger_id,
            opponent_id=opponent_id,
            pair_key=pair_key(challenger_id, opponent_id),
            type=duel_type,
            duration_days=duration,
            status=PENDING,
            challenger_score=0,
            opponent_score=0,
            created_at=now,
            updated_at=now,
        ),
        conflict,
    )
    logger.info(
        "duel_created",
        extra={"duel_id": duel.id, "challenger_id": challenger_id, "opponent_id": opponent_id, "type": duel_type},
    )
    return duel


def _transition(s: Session, duel: Duel, to_status: str, now: dt.datetime, **values) -> Duel:
    result = s.execute(
        update(Duel)
        .where(Duel.id == duel.id, Duel.status == PENDING)
        .values(status=to_status, updated_at=now, **values)
        .execution_options(synchronize_session="evaluate")
    )
    s.refresh(duel)
    if result.rowcount != 1:
        raise ConflictError(
            f"Duel is {duel.status}, expected {PENDING}",
            code=ErrorCode.INVALID_STATE,
            details={"duel_id": duel.id, "status": duel.status},
        )
    logger.info("duel_transition", extra={"duel_id": duel.id, "status": to_status})
    return duel


def _require_participant(duel: Duel, user_id: int, participant_id: int, action: str) -> None:
    if user_id != participant_id:
        raise PermissionDeniedError(
            f"Only the {action} this duel",
            details={"duel_id": duel.id, "user_id": user_id},
        )


def _require_pending(duel: Duel) -> None:
    if duel.status != PENDING:
        raise ConflictError(
            f"Duel is {duel.status}, expected {PENDING}",
            code=ErrorCode.INVALID_STATE,
            details={"duel_id": duel.id, "status": duel.status},
        )


def accept_duel(s: Session, duel_id: int, user_id: int, now: dt.datetime | None = None) -> Duel:
    duel = get_duel(s, duel_id)
    _require_participant(duel, user_id, duel.opponent_id, "opponent can accept")
    _require_pending(duel)
    now = now or utcnow()
    return _transition(s, duel, ACTIVE, now, started_at=now, ends_at=now + dt.timedelta(days=duel.duration_days))


def decline_duel(s: Session, duel_id: int, user_id: int, now: dt.datetime | None = None) -> Duel:
    duel = get_duel(s, duel_id)
    _require_participant(duel, user_id, duel.opponent_id, "opponent can decline")
    _require_pending(duel)
    return _transition(s, duel, DECLINED, now or utcnow())


def cancel_duel(s: Session, duel_id: int, user_id: int, now: dt.datetime | None = None) -> Duel:
    duel = get_duel(s, duel_id)
    _require_participant(duel, user_id, duel.challenger_id, "challenger can cancel")
    _require_pending(duel)
    return _transition(s, duel, CANCELLED, now or utcnow())


# ── Scoring ──────────────────────────────────────────────────────────────

def duel_score(s: Session, duel: Duel, user_id: int) -> int:
    """Workouts (or distinct workout days for streak duels) inside the duel window."""
    if duel.started_at is None or duel.ends_at is None:
        return 0
    start, end = duel.started_at.date(), duel.ends_at.date()
    if duel.type == "streak":
        return count_workout_days_between(s, user_id, start, end)
    return count_workouts_between(s, user_id, start, end)


def recompute_duel_scores(s: Session, duel: Duel, now: dt.datetime | None = None) -> Duel:
    if duel.status != ACTIVE:
        return duel
    duel.challenger_score = duel_score(s, duel, duel.challenger_id)
    duel.opponent_score = duel_score(s, duel, duel.opponent_id)
    duel.updated_at = now or utcnow()
    s.flush()
    return duel


def refresh_active_duels(s: Session, user_id: int, now: dt.datetime | None = None) -> list[Duel]:
    """Recompute every active duel the user is in; called after a workout."""
    duels = get_user_duels(s, user_id, status=ACTIVE)
    for duel in duels:
        recompute_duel_scores(s, duel, now)
    return duels


# ── Expiry ───────────────────────────────────────────────────────────────

def finalize_duel(s: Session, duel_id: int, now: dt.datetime | None = None) -> bool:
    """Settle an expired active duel; False (no change) if not active or not yet due."""
    now = now or utcnow()
    duel = get_duel(s, duel_id)
    if duel.status != ACTIVE or duel.ends_at is None or duel.ends_at > now:
        return False

    winner = decide_winner(duel.challenger_score, duel.opponent_score, duel.challenger_id, duel.opponent_id)
    result = s.execute(
        update(Duel)
        .where(Duel.id == duel.id, Duel.status == ACTIVE)
        .values(status=COMPLETED, winner_id=winner, updated_at=now)
        .execution_options(synchronize_session="evaluate")
    )
    if result.rowcount != 1:
        return False
    logger.info(
        "duel_finalized",
        extra={
            "duel_id": duel.id,
            "winner_id": winner,
            "challenger_score": duel.challenger_score,
            "opponent_score": duel.opponent_score,
        },
    )
    return True


def finalize_expired_duels(s: Session, now: dt.datetime | None = None) -> FinalizeReport:
    now = now or utcnow()
    ids = s.execute(
        select(Duel.id).where(Duel.status == ACTIVE, Duel.ends_at <= now).order_by(Duel.ends_at, Duel.id)
    ).scalars().all()
    return run_batch(s, "duel", ids, lambda did: finalize_duel(s, did, now))


# ── Queries ──────────────────────────────────────────────────────────────

def get_user_duels(s: Session, user_id: int, status: str | None = None) -> list[Duel]:
    stmt = select(Duel).where(or_(Duel.challenger_id == user_id, Duel.opponent_id == user_id))
    if status is not None:
        stmt = stmt.where(Duel.status == status)
    return list(s.execute(stmt.order_by(Duel.created_at.desc(), Duel.id.desc())).scalars().all())


def get_pending_duel_invites(s: Session, user_id: int) -> list[Duel]:
    return list(
        s.execute(
            select(Duel)
            .where(Duel.opponent_id == user_id, Duel.status == PENDING)
            .order_by(Duel.created_at.desc(), Duel.id.desc())
        ).scalars().all()
    )
