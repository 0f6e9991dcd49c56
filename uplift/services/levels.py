"""Bronze → Legend levels derived from lifetime stats.

Purely derived data: XP is a weighted sum of profile counters plus unlocked
achievements, and the tier table is fixed. Nothing here is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from uplift.repository import UserStats, count_unlocked_achievements, get_lifetime_stats


@dataclass(frozen=True)
class LevelDefinition:
    tier: str
    title: str
    min_xp: int
    color: str


# Ordered lowest → highest; the last tier has no upper bound.
LEVEL_TIERS: tuple[LevelDefinition, ...] = (
    LevelDefinition("bronze", "Bronze", 0, "#CD7F32"),
    LevelDefinition("silver", "Silver", 50_000, "#94A3B8"),
    LevelDefinition("gold", "Gold", 100_000, "#EAB308"),
    LevelDefinition("platinum", "Platinum", 200_000, "#6366F1"),
    LevelDefinition("diamond", "Diamond", 375_000, "#22D3EE"),
    LevelDefinition("master", "Master", 625_000, "#EC4899"),
    LevelDefinition("legend", "Legend", 1_000_000, "#F59E0B"),
)

XP_WEIGHTS: dict[str, int] = {
    "workout": 2500,
    "streak": 3750,
    "group": 1250,
    "friend": 750,
    "achievement_unlocked": 6250,
}


@dataclass(frozen=True)
class UserLevel:
    level: LevelDefinition
    xp: int
    next_level: LevelDefinition | None
    progress: float
    xp_to_next: int


def compute_xp(stats: UserStats, unlocked_achievements: int) -> int:
    return (
        stats.workouts_count * XP_WEIGHTS["workout"]
        + stats.streak * XP_WEIGHTS["streak"]
        + stats.groups_count * XP_WEIGHTS["group"]
        + stats.friends_count * XP_WEIGHTS["friend"]
        + unlocked_achievements * XP_WEIGHTS["achievement_unlocked"]
    )


def level_from_xp(xp: int) -> UserLevel:
    """Highest tier whose threshold ``xp`` reaches, plus progress to the next."""
    index = 0
    for i in range(len(LEVEL_TIERS) - 1, -1, -1):
        if xp >= LEVEL_TIERS[i].min_xp:
            index = i
            break

    current = LEVEL_TIERS[index]
    nxt = LEVEL_TIERS[index + 1] if index + 1 < len(LEVEL_TIERS) else None
    if nxt is None:
        return UserLevel(level=current, xp=xp, next_level=None, progress=1.0, xp_to_next=0)

    span = nxt.min_xp - current.min_xp
    progress = min(max((xp - current.min_xp) / span, 0.0), 1.0)
    return UserLevel(level=current, xp=xp, next_level=nxt, progress=progress, xp_to_next=max(0, nxt.min_xp - xp))


def level_from_stats(stats: UserStats, unlocked_count: int) -> UserLevel:
    return level_from_xp(compute_xp(stats, unlocked_count))


def detect_level_up(xp_before: int, xp_after: int) -> LevelDefinition | None:
    """New tier reached between two XP readings, or None."""
    before = level_from_xp(xp_before).level
    after = level_from_xp(xp_after).level
    if LEVEL_TIERS.index(after) > LEVEL_TIERS.index(before):
        return after
    return None


def get_user_level(s: Session, user_id: int) -> UserLevel:
    stats = get_lifetime_stats(s, user_id)
    unlocked = count_unlocked_achievements(s, [user_id]).get(user_id, 0)
    return level_from_stats(stats, unlocked)


def batch_user_levels(s: Session, user_ids: list[int]) -> dict[int, UserLevel]:
    unlocked = count_unlocked_achievements(s, user_ids)
    return {uid: level_from_stats(get_lifetime_stats(s, uid), unlocked.get(uid, 0)) for uid in user_ids}
