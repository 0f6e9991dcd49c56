"""Matchmaking queue: groups wait here until paired into an active competition."""

from __future__ import annotations

import datetime as dt
import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from uplift.config import get_settings
from uplift.errors import ConflictError, ErrorCode, NotFoundError
from uplift.models import ACTIVE, GroupCompetition, MatchmakingQueueEntry, utcnow
from uplift.repository import add_guarded, find_open_competition, require_group
from uplift.services.competitions import insert_competition
from uplift.services.groups import require_group_manager

logger = logging.getLogger(__name__)


def get_queue_entry(s: Session, group_id: int) -> MatchmakingQueueEntry | None:
    return s.execute(
        select(MatchmakingQueueEntry).where(MatchmakingQueueEntry.group_id == group_id)
    ).scalar_one_or_none()


def is_in_matchmaking_queue(s: Session, group_id: int) -> bool:
    return get_queue_entry(s, group_id) is not None


def enqueue_group(
    s: Session, group_id: int, user_id: int, now: dt.datetime | None = None
) -> GroupCompetition | None:
    """Queue a group for matchmaking and try to pair it straight away.

    Returns the competition the group was paired into by the synchronous
    pairing attempt, or None if it is still waiting.
    """
    require_group(s, group_id)
    require_group_manager(s, group_id, user_id, "join matchmaking")

    if is_in_matchmaking_queue(s, group_id):
        raise ConflictError(
            "Group is already in the matchmaking queue",
            code=ErrorCode.ALREADY_QUEUED,
            details={"group_id": group_id},
        )
    existing = find_open_competition(s, group_id)
    if existing is not None:
        raise ConflictError(
            "Group already has a pending or active competition",
            code=ErrorCode.COMPETITION_IN_PROGRESS,
            details={"group_id": group_id, "competition_id": existing.id},
        )

    now = now or utcnow()
    add_guarded(
        s,
        MatchmakingQueueEntry(group_id=group_id, queued_by=user_id, queued_at=now),
        ConflictError(
            "Group is already in the matchmaking queue",
            code=ErrorCode.ALREADY_QUEUED,
            details={"group_id": group_id},
        ),
    )
    logger.info("matchmaking_enqueued", extra={"group_id": group_id, "user_id": user_id})

    for competition in pair_waiting_groups(s, now=now):
        if group_id in (competition.group1_id, competition.group2_id):
            return competition
    return None


def dequeue_group(s: Session, group_id: int, user_id: int) -> None:
    require_group(s, group_id)
    require_group_manager(s, group_id, user_id, "leave matchmaking")
    entry = get_queue_entry(s, group_id)
    if entry is None:
        raise NotFoundError("Queue entry", group_id)
    s.delete(entry)
    s.flush()
    logger.info("matchmaking_dequeued", extra={"group_id": group_id, "user_id": user_id})


def pair_waiting_groups(s: Session, now: dt.datetime | None = None) -> list[GroupCompetition]:
    """Greedily pair queued groups, oldest first, into active competitions.

    Entries whose group picked up an open competition while waiting are
    dropped from the queue. Callable on a timer as well as after enqueue.
    """
    now = now or utcnow()
    duration = dt.timedelta(days=get_settings().competition_duration_days)
    entries = s.execute(
        select(MatchmakingQueueEntry).order_by(MatchmakingQueueEntry.queued_at, MatchmakingQueueEntry.id)
    ).scalars().all()

    waiting: list[MatchmakingQueueEntry] = []
    for entry in entries:
        if find_open_competition(s, entry.group_id) is not None:
            s.delete(entry)
            logger.info("matchmaking_entry_dropped", extra={"group_id": entry.group_id})
            continue
        waiting.append(entry)

    created: list[GroupCompetition] = []
    while len(waiting) >= 2:
        first, second = waiting.pop(0), waiting.pop(0)
        try:
            with s.begin_nested():
                competition = insert_competition(
                    s,
                    GroupCompetition(
                        group1_id=first.group_id,
                        group2_id=second.group_id,
                        type="matchmaking",
                        status=ACTIVE,
                        started_at=now,
                        ends_at=now + duration,
                        group1_score=0,
                        group2_score=0,
                        created_by=first.queued_by,
                        created_at=now,
                    ),
                )
                s.execute(
                    delete(MatchmakingQueueEntry).where(
                        MatchmakingQueueEntry.id.in_([first.id, second.id])
                    )
                )
        except ConflictError:
            logger.warning(
                "matchmaking_pair_conflict",
                extra={"group1_id": first.group_id, "group2_id": second.group_id},
            )
            continue
        created.append(competition)
        logger.info(
            "matchmaking_paired",
            extra={
                "competition_id": competition.id,
                "group1_id": first.group_id,
                "group2_id": second.group_id,
            },
        )
    s.flush()
    return created
