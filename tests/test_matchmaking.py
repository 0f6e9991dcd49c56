"""Tests for the matchmaking queue and pairing step."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from conftest import make_group, make_user

from uplift.errors import ConflictError, ErrorCode, NotFoundError, PermissionDeniedError
from uplift.models import GroupCompetition, MatchmakingQueueEntry, pair_key
from uplift.services import matchmaking
from uplift.services.competitions import challenge_group
from uplift.services.matchmaking import (
    dequeue_group,
    enqueue_group,
    is_in_matchmaking_queue,
    pair_waiting_groups,
)

NOW = datetime(2026, 2, 10, 8, 0)


def _groups(s, n):
    owners = [make_user(s, f"owner{i}") for i in range(n)]
    return owners, [make_group(s, o, f"g{i}") for i, o in enumerate(owners)]


class TestEnqueue:
    def test_lone_group_waits(self, s):
        owners, groups = _groups(s, 1)
        assert enqueue_group(s, groups[0].id, owners[0].id, now=NOW) is None
        assert is_in_matchmaking_queue(s, groups[0].id)

    def test_second_group_pairs_immediately(self, s):
        owners, groups = _groups(s, 2)
        enqueue_group(s, groups[0].id, owners[0].id, now=NOW)
        later = NOW + timedelta(minutes=5)
        competition = enqueue_group(s, groups[1].id, owners[1].id, now=later)

        assert competition is not None
        assert competition.type == "matchmaking"
        assert competition.status == "active"
        assert (competition.group1_id, competition.group2_id) == (groups[0].id, groups[1].id)
        assert competition.created_by == owners[0].id
        assert competition.started_at == later
        assert competition.ends_at == later + timedelta(days=7)
        assert not is_in_matchmaking_queue(s, groups[0].id)
        assert not is_in_matchmaking_queue(s, groups[1].id)

    def test_already_queued(self, s):
        owners, groups = _groups(s, 1)
        enqueue_group(s, groups[0].id, owners[0].id, now=NOW)
        with pytest.raises(ConflictError) as exc:
            enqueue_group(s, groups[0].id, owners[0].id, now=NOW)
        assert exc.value.code == ErrorCode.ALREADY_QUEUED

    def test_group_in_competition(self, s):
        owners, groups = _groups(s, 2)
        challenge_group(s, groups[0].id, groups[1].id, owners[0].id, now=NOW)
        with pytest.raises(ConflictError) as exc:
            enqueue_group(s, groups[1].id, owners[1].id, now=NOW)
        assert exc.value.code == ErrorCode.COMPETITION_IN_PROGRESS

    def test_member_cannot_enqueue(self, s):
        owners, groups = _groups(s, 1)
        member = make_user(s, "member")
        group = make_group(s, owners[0], "with-member", members=[(member, "member")])
        with pytest.raises(PermissionDeniedError):
            enqueue_group(s, group.id, member.id, now=NOW)

    def test_unknown_group(self, s):
        user = make_user(s)
        with pytest.raises(NotFoundError):
            enqueue_group(s, 404, user.id)


class TestPairing:
    def test_fifo_greedy_pairs(self, s):
        owners, groups = _groups(s, 5)
        for i, (o, g) in enumerate(zip(owners, groups)):
            s.add(MatchmakingQueueEntry(group_id=g.id, queued_by=o.id, queued_at=NOW + timedelta(minutes=i)))
        s.flush()

        created = pair_waiting_groups(s, now=NOW)
        assert [(c.group1_id, c.group2_id) for c in created] == [
            (groups[0].id, groups[1].id),
            (groups[2].id, groups[3].id),
        ]
        remaining = s.execute(select(MatchmakingQueueEntry.group_id)).scalars().all()
        assert remaining == [groups[4].id]

    def test_busy_entries_are_dropped(self, s):
        owners, groups = _groups(s, 4)
        for i in (0, 1):
            s.add(MatchmakingQueueEntry(group_id=groups[i].id, queued_by=owners[i].id, queued_at=NOW))
        s.flush()
        challenge_group(s, groups[0].id, groups[2].id, owners[0].id, now=NOW)

        assert pair_waiting_groups(s, now=NOW) == []
        assert not is_in_matchmaking_queue(s, groups[0].id)
        assert is_in_matchmaking_queue(s, groups[1].id)

    def test_pair_lost_to_concurrent_challenge_is_skipped(self, s, monkeypatch, caplog):
        owners, groups = _groups(s, 2)
        for i in (0, 1):
            s.add(MatchmakingQueueEntry(group_id=groups[i].id, queued_by=owners[i].id, queued_at=NOW))
        s.flush()

        real_lookup = matchmaking.find_open_competition
        seen = []

        def racing_lookup(session, group_id):
            found = real_lookup(session, group_id)
            seen.append(group_id)
            if len(seen) == 2:
                # a challenge for the same pair lands after the queue was filtered
                session.add(
                    GroupCompetition(
                        group1_id=groups[1].id,
                        group2_id=groups[0].id,
                        pair_key=pair_key(groups[1].id, groups[0].id),
                        type="challenge",
                        status="pending",
                        ends_at=NOW + timedelta(days=7),
                        created_by=owners[1].id,
                    )
                )
                session.flush()
            return found

        monkeypatch.setattr(matchmaking, "find_open_competition", racing_lookup)
        assert pair_waiting_groups(s, now=NOW) == []

        competitions = s.execute(select(GroupCompetition)).scalars().all()
        assert [c.type for c in competitions] == ["challenge"]
        assert is_in_matchmaking_queue(s, groups[0].id)
        assert is_in_matchmaking_queue(s, groups[1].id)
        assert any(r.getMessage() == "matchmaking_pair_conflict" for r in caplog.records)

    def test_empty_queue(self, s):
        assert pair_waiting_groups(s, now=NOW) == []
        assert s.execute(select(GroupCompetition)).scalars().all() == []


class TestDequeue:
    def test_owner_dequeues(self, s):
        owners, groups = _groups(s, 1)
        enqueue_group(s, groups[0].id, owners[0].id, now=NOW)
        dequeue_group(s, groups[0].id, owners[0].id)
        assert not is_in_matchmaking_queue(s, groups[0].id)

    def test_admin_dequeues(self, s):
        owner, admin = make_user(s, "o"), make_user(s, "a")
        group = make_group(s, owner, members=[(admin, "admin")])
        enqueue_group(s, group.id, owner.id, now=NOW)
        dequeue_group(s, group.id, admin.id)
        assert not is_in_matchmaking_queue(s, group.id)

    def test_outsider_cannot_dequeue(self, s):
        owners, groups = _groups(s, 2)
        enqueue_group(s, groups[0].id, owners[0].id, now=NOW)
        with pytest.raises(PermissionDeniedError):
            dequeue_group(s, groups[0].id, owners[1].id)
        assert is_in_matchmaking_queue(s, groups[0].id)

    def test_not_queued(self, s):
        owners, groups = _groups(s, 1)
        with pytest.raises(NotFoundError):
            dequeue_group(s, groups[0].id, owners[0].id)
