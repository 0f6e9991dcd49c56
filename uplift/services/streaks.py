"""Streak tracking and the monthly scoring period.

Every date is a UTC calendar day. Leaderboards and streaks only ever look at
the current calendar month; the streak computed here is recomputed per query
and is distinct from the running ``Profile.streak`` counter maintained when a
workout is logged.
"""

from __future__ import annotations

import calendar
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from uplift.models import StreakFreeze
from uplift.repository import get_workout_dates, has_workout_on

logger = logging.getLogger(__name__)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


# ── Period ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MonthPeriod:
    start: date
    end: date

    @property
    def key(self) -> str:
        """``YYYY-MM`` label used to key snapshots and freezes."""
        return f"{self.start.year:04d}-{self.start.month:02d}"

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def month_period(period_ref: date | datetime | None = None) -> MonthPeriod:
    """UTC calendar month containing ``period_ref`` (defaults to now)."""
    if period_ref is None:
        ref = utc_today()
    elif isinstance(period_ref, datetime):
        if period_ref.tzinfo is not None:
            period_ref = period_ref.astimezone(timezone.utc)
        ref = period_ref.date()
    else:
        ref = period_ref
    last_day = calendar.monthrange(ref.year, ref.month)[1]
    return MonthPeriod(start=ref.replace(day=1), end=ref.replace(day=last_day))


def month_label(period_ref: date | datetime | None = None) -> str:
    """Display label for the period, e.g. ``"February 2026"``."""
    period = month_period(period_ref)
    return f"{calendar.month_name[period.start.month]} {period.start.year}"


# ── Streak calculator ────────────────────────────────────────────────────

def compute_period_streak(
    workout_dates: Iterable[date],
    period: MonthPeriod,
    today: date | None = None,
) -> int:
    """Count consecutive workout days walking back from the reference day.

    The walk starts at ``min(today, period.end)`` so it never counts into the
    future, and stops at the first missing day or at the start of the period:
    a streak never spans a monthly reset.

    Args:
        workout_dates: Dates with a workout (need not be sorted/unique).
        period: The scoring month.
        today: Reference "count back from" day; defaults to the UTC today.

    Returns number of consecutive present days (0 if the reference day is empty).
    """
    days = set(workout_dates)
    if not days:
        return 0
    today = today or utc_today()
    cursor = min(today, period.end)
    streak = 0
    while cursor >= period.start and cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def get_current_streak(s: Session, user_id: int, today: date | None = None) -> int:
    """Streak of the user's stored workouts in the month containing ``today``."""
    today = today or utc_today()
    period = month_period(today)
    return compute_period_streak(get_workout_dates(s, user_id, period.start, today), period, today=today)


def next_running_streak(s: Session, user_id: int, workout_date: date, current_streak: int) -> int:
    """Running lifetime counter after logging a workout on ``workout_date``.

    Continues the streak when the previous day has a workout, otherwise
    restarts it at 1.
    """
    if has_workout_on(s, user_id, workout_date - timedelta(days=1)):
        return (current_streak or 0) + 1
    return 1


# ── Streak freeze ────────────────────────────────────────────────────────

def has_streak_freeze_available(s: Session, user_id: int, today: date | None = None) -> bool:
    """One freeze per user per calendar month."""
    period = month_period(today)
    used = s.execute(
        select(StreakFreeze.id).where(StreakFreeze.user_id == user_id, StreakFreeze.month_year == period.key)
    ).first()
    return used is None


def use_streak_freeze(s: Session, user_id: int, today: date | None = None) -> bool:
    """Spend this month's freeze. Returns False if it was already used."""
    today = today or utc_today()
    period = month_period(today)
    if not has_streak_freeze_available(s, user_id, today):
        return False
    try:
        with s.begin_nested():
            s.add(StreakFreeze(user_id=user_id, used_at=today, month_year=period.key))
    except IntegrityError:
        return False
    logger.info("streak_freeze_used", extra={"user_id": user_id, "period": period.key})
    return True
