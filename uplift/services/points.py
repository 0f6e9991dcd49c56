"""Leaderboard points formula.

    base       = workouts * W_WORKOUT + competition_wins * W_COMPETITION_WIN
    multiplier = M ** streak   (1 when streak == 0)
    points     = round(base * multiplier)

The exponential streak term makes continuity dominate raw volume. Weights are
configuration (see ``Settings``), not constants baked into the math.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from uplift.config import get_settings


@dataclass(frozen=True)
class PointsWeights:
    workout: int = 10
    competition_win: int = 20
    streak_multiplier: float = 2.0

    @classmethod
    def from_settings(cls) -> "PointsWeights":
        settings = get_settings()
        return cls(
            workout=settings.points_per_workout,
            competition_win=settings.points_per_competition_win,
            streak_multiplier=settings.streak_multiplier,
        )


DEFAULT_WEIGHTS = PointsWeights()


def compute_points(
    workouts_count: int,
    streak: int,
    competition_wins: int,
    weights: PointsWeights | None = None,
) -> int:
    w = weights or DEFAULT_WEIGHTS
    base = (workouts_count or 0) * w.workout + (competition_wins or 0) * w.competition_win
    multiplier = w.streak_multiplier ** streak if streak > 0 else 1
    # Half-up rounding; Python's round() would round half to even.
    return int(math.floor(base * multiplier + 0.5))
