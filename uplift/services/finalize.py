"""Expiry finalization shared by competitions and duels.

Both state machines settle the same way when ``ends_at`` passes: the higher
score wins, an exact tie has no winner, and a record that is already
completed is left alone. The batch runner isolates each row in a savepoint
so one bad row never aborts the rest of the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, TypeVar

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class FinalizeReport:
    kind: str
    finalized: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "kind": self.kind,
            "finalized": list(self.finalized),
            "skipped": list(self.skipped),
            "failed": list(self.failed),
        }


def decide_winner(score_a: int, score_b: int, id_a: T, id_b: T) -> T | None:
    """Side with the strictly higher score; None on an exact tie."""
    if score_a > score_b:
        return id_a
    if score_b > score_a:
        return id_b
    return None


def run_batch(s: Session, kind: str, ids: Iterable[int], finalize_one: Callable[[int], bool]) -> FinalizeReport:
    """Finalize each id in its own savepoint, logging and continuing past failures."""
    report = FinalizeReport(kind=kind)
    for record_id in ids:
        try:
            with s.begin_nested():
                done = finalize_one(record_id)
        except Exception:
            logger.exception("finalize_failed", extra={"kind": kind, "record_id": record_id})
            report.failed.append(record_id)
            continue
        (report.finalized if done else report.skipped).append(record_id)

    logger.info(
        "finalize_batch_complete",
        extra={
            "kind": kind,
            "finalized": len(report.finalized),
            "skipped": len(report.skipped),
            "failed": len(report.failed),
        },
    )
    return report
