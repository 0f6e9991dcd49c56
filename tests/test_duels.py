"""Tests for the 1v1 duel lifecycle."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from conftest import log_workouts, make_user

from uplift.errors import ConflictError, ErrorCode, NotFoundError, PermissionDeniedError, ValidationError
from uplift.models import Duel
from uplift.services.duels import (
    accept_duel,
    cancel_duel,
    create_duel,
    decline_duel,
    finalize_duel,
    finalize_expired_duels,
    get_pending_duel_invites,
    get_user_duels,
    has_existing_duel,
    recompute_duel_scores,
    refresh_active_duels,
)

NOW = datetime(2026, 3, 2, 10, 0)


@pytest.fixture
def pair(s):
    return make_user(s, "alice"), make_user(s, "bob")


def _active(s, pair, **kw):
    a, b = pair
    duel = create_duel(s, a.id, b.id, now=NOW, **kw)
    return accept_duel(s, duel.id, b.id, now=NOW)


class TestCreate:
    def test_pending_defaults(self, s, pair):
        a, b = pair
        duel = create_duel(s, a.id, b.id, now=NOW)
        assert duel.status == "pending"
        assert duel.type == "workout_count"
        assert duel.duration_days == 7
        assert (duel.challenger_score, duel.opponent_score) == (0, 0)
        assert duel.started_at is None and duel.ends_at is None
        assert has_existing_duel(s, b.id, a.id)

    def test_self_duel(self, s, pair):
        a, _ = pair
        with pytest.raises(ValidationError):
            create_duel(s, a.id, a.id)

    def test_bad_type(self, s, pair):
        a, b = pair
        with pytest.raises(ValidationError):
            create_duel(s, a.id, b.id, duel_type="pushups")

    def test_unknown_opponent(self, s, pair):
        a, _ = pair
        with pytest.raises(NotFoundError):
            create_duel(s, a.id, 999)

    def test_duplicate_blocked_in_both_directions(self, s, pair):
        a, b = pair
        create_duel(s, a.id, b.id, now=NOW)
        with pytest.raises(ConflictError) as exc:
            create_duel(s, a.id, b.id, now=NOW)
        assert exc.value.code == ErrorCode.DUEL_EXISTS
        with pytest.raises(ConflictError):
            create_duel(s, b.id, a.id, now=NOW)

    def test_active_duel_also_blocks(self, s, pair):
        a, b = pair
        _active(s, pair)
        with pytest.raises(ConflictError):
            create_duel(s, b.id, a.id, now=NOW)

    def test_closed_duel_allows_rematch(self, s, pair):
        a, b = pair
        first = create_duel(s, a.id, b.id, now=NOW)
        decline_duel(s, first.id, b.id, now=NOW)
        assert create_duel(s, b.id, a.id, now=NOW).status == "pending"

    def test_other_pairs_unaffected(self, s, pair):
        a, b = pair
        c = make_user(s, "carol")
        create_duel(s, a.id, b.id, now=NOW)
        assert create_duel(s, a.id, c.id, now=NOW).status == "pending"


class TestTransitions:
    def test_accept_starts_clock(self, s, pair):
        duel = _active(s, pair, duration_days=3)
        assert duel.status == "active"
        assert duel.started_at == NOW
        assert duel.ends_at == NOW + timedelta(days=3)

    def test_only_opponent_accepts(self, s, pair):
        a, b = pair
        duel = create_duel(s, a.id, b.id, now=NOW)
        with pytest.raises(PermissionDeniedError):
            accept_duel(s, duel.id, a.id)
        assert duel.status == "pending"

    def test_only_opponent_declines(self, s, pair):
        a, b = pair
        duel = create_duel(s, a.id, b.id, now=NOW)
        with pytest.raises(PermissionDeniedError):
            decline_duel(s, duel.id, a.id)
        assert decline_duel(s, duel.id, b.id).status == "declined"

    def test_only_challenger_cancels(self, s, pair):
        a, b = pair
        duel = create_duel(s, a.id, b.id, now=NOW)
        with pytest.raises(PermissionDeniedError):
            cancel_duel(s, duel.id, b.id)
        assert cancel_duel(s, duel.id, a.id).status == "cancelled"

    def test_outsider_is_denied(self, s, pair):
        a, b = pair
        outsider = make_user(s, "eve")
        duel = create_duel(s, a.id, b.id, now=NOW)
        for op in (accept_duel, decline_duel, cancel_duel):
            with pytest.raises(PermissionDeniedError):
                op(s, duel.id, outsider.id)

    def test_non_pending_is_conflict(self, s, pair):
        a, b = pair
        duel = _active(s, pair)
        with pytest.raises(ConflictError) as exc:
            accept_duel(s, duel.id, b.id)
        assert exc.value.code == ErrorCode.INVALID_STATE
        with pytest.raises(ConflictError):
            cancel_duel(s, duel.id, a.id)
        with pytest.raises(ConflictError):
            decline_duel(s, duel.id, b.id)

    def test_missing_duel(self, s, pair):
        _, b = pair
        with pytest.raises(NotFoundError):
            accept_duel(s, 404, b.id)


class TestScoring:
    def test_counts_workouts_inside_window(self, s, pair):
        a, b = pair
        duel = _active(s, pair)
        start = NOW.date()
        log_workouts(s, a, [start - timedelta(days=1), start, start + timedelta(days=1)])
        log_workouts(s, b, [start + timedelta(days=2)])
        recompute_duel_scores(s, duel, now=NOW)
        assert (duel.challenger_score, duel.opponent_score) == (2, 1)

    def test_streak_duel_counts_days(self, s, pair):
        a, _ = pair
        duel = _active(s, pair, duel_type="streak")
        log_workouts(s, a, [NOW.date(), NOW.date() + timedelta(days=3)])
        recompute_duel_scores(s, duel, now=NOW)
        assert duel.challenger_score == 2

    def test_pending_duel_not_scored(self, s, pair):
        a, b = pair
        duel = create_duel(s, a.id, b.id, now=NOW)
        log_workouts(s, a, [NOW.date()])
        recompute_duel_scores(s, duel)
        assert duel.challenger_score == 0

    def test_refresh_active_duels(self, s, pair):
        a, _ = pair
        duel = _active(s, pair)
        log_workouts(s, a, [NOW.date()])
        assert [d.id for d in refresh_active_duels(s, a.id, now=NOW)] == [duel.id]
        assert duel.challenger_score == 1


class TestFinalize:
    def test_not_expired(self, s, pair):
        duel = _active(s, pair)
        assert finalize_duel(s, duel.id, now=NOW + timedelta(days=6)) is False
        assert duel.status == "active"

    def test_pending_is_untouched(self, s, pair):
        a, b = pair
        duel = create_duel(s, a.id, b.id, now=NOW)
        assert finalize_duel(s, duel.id, now=NOW + timedelta(days=30)) is False
        assert duel.status == "pending"

    def test_winner_and_scores_preserved(self, s, pair):
        a, _ = pair
        duel = _active(s, pair)
        log_workouts(s, a, [NOW.date()])
        recompute_duel_scores(s, duel, now=NOW)
        assert finalize_duel(s, duel.id, now=NOW + timedelta(days=7)) is True
        assert duel.status == "completed"
        assert duel.winner_id == a.id
        assert (duel.challenger_score, duel.opponent_score) == (1, 0)

    def test_tie_has_no_winner(self, s, pair):
        duel = _active(s, pair)
        finalize_duel(s, duel.id, now=NOW + timedelta(days=8))
        assert duel.status == "completed"
        assert duel.winner_id is None

    def test_second_finalize_is_a_no_op(self, s, pair):
        duel = _active(s, pair)
        later = NOW + timedelta(days=8)
        assert finalize_duel(s, duel.id, now=later) is True
        updated_at = duel.updated_at
        assert finalize_duel(s, duel.id, now=later + timedelta(days=1)) is False
        assert duel.status == "completed"
        assert duel.updated_at == updated_at

    def test_batch(self, s, pair):
        a, b = pair
        c = make_user(s, "carol")
        due = _active(s, pair, duration_days=1)
        later = create_duel(s, a.id, c.id, now=NOW, duration_days=30)
        accept_duel(s, later.id, c.id, now=NOW)

        report = finalize_expired_duels(s, now=NOW + timedelta(days=2))
        assert report.kind == "duel"
        assert report.finalized == [due.id]
        assert later.status == "active"
        assert finalize_expired_duels(s, now=NOW + timedelta(days=2)).finalized == []


class TestQueries:
    def test_user_duels_and_invites(self, s, pair):
        a, b = pair
        c = make_user(s, "carol")
        first = create_duel(s, a.id, b.id, now=NOW)
        second = create_duel(s, c.id, a.id, now=NOW + timedelta(hours=1))

        assert [d.id for d in get_user_duels(s, a.id)] == [second.id, first.id]
        assert [d.id for d in get_user_duels(s, a.id, status="active")] == []
        assert [d.id for d in get_pending_duel_invites(s, a.id)] == [second.id]
        assert [d.id for d in get_pending_duel_invites(s, b.id)] == [first.id]
        assert all(isinstance(d, Duel) for d in get_user_duels(s, c.id))
