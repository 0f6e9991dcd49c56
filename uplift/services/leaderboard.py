"""Monthly leaderboard aggregation.

Aggregates the current UTC month of workouts plus lifetime competition wins
into ranked rows, then narrows them to a scope (global, friends, groups) and
re-ranks within that scope.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy.orm import Session

from uplift.config import get_settings
from uplift.errors import ValidationError
from uplift.repository import (
    competition_wins_by_user,
    get_display_names,
    get_friend_ids,
    get_group_members,
    get_group_peer_ids,
    get_snapshot,
    get_workout_dates_by_user,
    require_group,
    upsert_snapshot,
)
from uplift.services.points import PointsWeights, compute_points
from uplift.services.streaks import MonthPeriod, compute_period_streak, month_period, utc_today

logger = logging.getLogger(__name__)

SCOPES = ("global", "friends", "groups")


@dataclass
class LeaderboardRow:
    user_id: int
    workouts_count: int
    streak: int
    competition_wins: int
    points: int
    rank: int
    display_name: str | None = None


@dataclass
class LeaderboardResult:
    scope: str
    period: MonthPeriod
    rows: list[LeaderboardRow]
    my_row: LeaderboardRow | None = None


def rank_leaderboard(
    workout_days: dict[int, set[date]],
    competition_wins: dict[int, int],
    period: MonthPeriod,
    today: date | None = None,
    weights: PointsWeights | None = None,
    allowed_ids: set[int] | None = None,
) -> list[LeaderboardRow]:
    """Compute a ranked leaderboard from per-user activity.

    Args:
        workout_days: user_id -> distinct in-period workout dates
        competition_wins: user_id -> lifetime competition wins
        period: scoring month (bounds the streak walk)
        today: streak reference day
        weights: points weights, defaults to the standard formula
        allowed_ids: restrict to these users (None = everyone)

    Returns rows sorted by points desc, then user_id asc, with sequential
    1-based ranks. Tied points still get distinct ranks.
    """
    candidates = set(workout_days) | {uid for uid, wins in competition_wins.items() if wins > 0}
    if allowed_ids is not None:
        candidates &= allowed_ids

    rows = []
    for user_id in candidates:
        days = workout_days.get(user_id, set())
        streak = compute_period_streak(days, period, today)
        wins = competition_wins.get(user_id, 0)
        rows.append(
            LeaderboardRow(
                user_id=user_id,
                workouts_count=len(days),
                streak=streak,
                competition_wins=wins,
                points=compute_points(len(days), streak, wins, weights),
                rank=0,
            )
        )

    rows.sort(key=lambda r: (-r.points, r.user_id))
    for i, row in enumerate(rows):
        row.rank = i + 1
    return rows


def resolve_scope_members(
    s: Session,
    scope: str,
    current_user_id: int | None = None,
    group_id: int | None = None,
) -> set[int] | None:
    """Candidate user set for a scope; None means unrestricted."""
    if scope == "global":
        return None
    if scope == "friends":
        if current_user_id is None:
            raise ValidationError("friends leaderboard requires a current user", field="current_user_id")
        return {current_user_id, *get_friend_ids(s, current_user_id)}
    if scope == "groups":
        if group_id is not None:
            require_group(s, group_id)
            return set(get_group_members(s, group_id))
        if current_user_id is None:
            raise ValidationError("groups leaderboard requires a group or a current user", field="group_id")
        return set(get_group_peer_ids(s, current_user_id))
    raise ValidationError(f"scope must be one of {SCOPES}", field="scope")


def get_leaderboard(
    s: Session,
    scope: str = "global",
    period_ref: date | datetime | None = None,
    group_id: int | None = None,
    limit: int | None = None,
    current_user_id: int | None = None,
    today: date | None = None,
) -> LeaderboardResult:
    """Ranked leaderboard for the month containing ``period_ref``.

    ``my_row`` carries the caller's own row (scope-relative rank) whenever the
    caller is ranked, including when it falls outside the top ``limit``.
    """
    settings = get_settings()
    if limit is None:
        limit = settings.leaderboard_default_limit
    if limit < 1 or limit > settings.leaderboard_max_limit:
        raise ValidationError(f"limit must be between 1 and {settings.leaderboard_max_limit}", field="limit")

    allowed = resolve_scope_members(s, scope, current_user_id, group_id)
    period = month_period(period_ref)
    reference_day = min(today or utc_today(), period.end)

    ranked = rank_leaderboard(
        get_workout_dates_by_user(s, period.start, period.end),
        competition_wins_by_user(s),
        period,
        today=reference_day,
        weights=PointsWeights.from_settings(),
        allowed_ids=allowed,
    )

    top = ranked[:limit]
    my_row = next((r for r in ranked if r.user_id == current_user_id), None)

    visible = {r.user_id for r in top}
    if my_row is not None:
        visible.add(my_row.user_id)
    names = get_display_names(s, sorted(visible))
    for row in top:
        row.display_name = names.get(row.user_id)
    if my_row is not None:
        my_row.display_name = names.get(my_row.user_id)

    logger.debug(
        "leaderboard_computed",
        extra={"scope": scope, "period": period.key, "ranked": len(ranked), "returned": len(top)},
    )
    return LeaderboardResult(scope=scope, period=period, rows=top, my_row=my_row)


# ── Rank movement ────────────────────────────────────────────────────────

def snapshot_scope(scope: str, group_id: int | None = None) -> str:
    if scope == "groups" and group_id is not None:
        return f"groups:{group_id}"
    return scope


def record_rank_movement(s: Session, user_id: int, result: LeaderboardResult, group_id: int | None = None) -> int | None:
    """Compare the caller's rank with the last snapshot, then store the new one.

    Returns positions climbed since the previous view (negative = dropped),
    or None when there is no earlier snapshot or the caller is unranked.
    """
    if result.my_row is None:
        return None
    scope_key = snapshot_scope(result.scope, group_id)
    previous = get_snapshot(s, user_id, scope_key, result.period.key)
    movement = previous.rank - result.my_row.rank if previous is not None else None
    upsert_snapshot(s, user_id, scope_key, result.period.key, result.my_row.rank, result.my_row.points)
    return movement
