from __future__ import annotations

import datetime as dt
import os

os.environ.setdefault("APP_ENV", "test")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from uplift.config import get_settings
from uplift.db import configure_sqlite_engine
from uplift.models import (
    Base,
    Friendship,
    Group,
    GroupMember,
    Profile,
    Workout,
)


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def s():
    engine = configure_sqlite_engine(
        create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    )
    Base.metadata.create_all(engine)
    session = Session(engine, autoflush=False, expire_on_commit=False)
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


# ── Factories ────────────────────────────────────────────────────────────


def make_user(s: Session, name: str = "user", **counters) -> Profile:
    profile = Profile(display_name=name, **counters)
    s.add(profile)
    s.flush()
    return profile


def make_group(s: Session, owner: Profile, name: str = "group", is_public: bool = True, members=()) -> Group:
    """Group owned by ``owner``; ``members`` is an iterable of (profile, role)."""
    group = Group(name=name, is_public=is_public, created_by=owner.id)
    s.add(group)
    s.flush()
    s.add(GroupMember(group_id=group.id, user_id=owner.id, role="owner"))
    for profile, role in members:
        s.add(GroupMember(group_id=group.id, user_id=profile.id, role=role))
    s.flush()
    return group


def befriend(s: Session, a: Profile, b: Profile, status: str = "accepted") -> Friendship:
    friendship = Friendship(requester_id=a.id, addressee_id=b.id, status=status)
    s.add(friendship)
    s.flush()
    return friendship


def log_workouts(s: Session, user: Profile, days) -> list[Workout]:
    rows = [Workout(user_id=user.id, workout_date=d) for d in days]
    s.add_all(rows)
    s.flush()
    return rows


def consecutive_days(end: dt.date, count: int) -> list[dt.date]:
    return [end - dt.timedelta(days=i) for i in range(count)]
