"""Pytest configuration and fixtures."""
import asyncio
import itertools
import os
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from jose import jwt

from timeclock.exceptions import ConcurrencyConflictError
from timeclock.models.time_event import EventKind, TimeEvent, TimeEventCreate
from timeclock.models.work_session import SessionStatus, WorkSession

SANTIAGO = ZoneInfo("America/Santiago")


def local(day: int, hour: int, minute: int = 0, month: int = 1) -> datetime:
    """Santiago wall-clock time in 2024 (UTC-3 in January)."""
    return datetime(2024, month, day, hour, minute, tzinfo=SANTIAGO)


class InMemoryClockRepository:
    """
    Dict-backed stand-in for ClockRepository.

    Enforces the same uniqueness as the MongoDB indexes: one session per
    (user, date) and one open session per user. Reads yield to the event
    loop so concurrent coroutines interleave the way they would over a
    real connection.
    """

    def __init__(self):
        self.events: list[TimeEvent] = []
        self.sessions: dict[str, WorkSession] = {}
        self._ids = itertools.count(1)

    def _next_id(self) -> str:
        return f"{next(self._ids):024x}"

    async def create_event(self, event: TimeEventCreate) -> TimeEvent:
        stored = TimeEvent(
            id=self._next_id(),
            created_at=datetime.now(timezone.utc),
            **event.model_dump(),
        )
        self.events.append(stored)
        return stored

    async def find_last_event_by_user_and_kind(
        self, user_id: str, kind: EventKind
    ) -> Optional[TimeEvent]:
        await asyncio.sleep(0)
        matching = [e for e in self.events if e.user_id == user_id and e.kind == kind]
        return max(matching, key=lambda e: e.timestamp, default=None)

    async def find_recent_events(self, user_id: str, limit: int) -> list[TimeEvent]:
        mine = [e for e in self.events if e.user_id == user_id]
        return sorted(mine, key=lambda e: e.timestamp, reverse=True)[:limit]

    async def find_events_by_user_and_date(self, user_id: str, day: date) -> list[TimeEvent]:
        mine = [e for e in self.events if e.user_id == user_id and e.date == day]
        return sorted(mine, key=lambda e: e.timestamp)

    async def find_session_by_id(self, session_id: str) -> Optional[WorkSession]:
        return self.sessions.get(session_id)

    async def find_session_by_user_and_date(
        self, user_id: str, day: date
    ) -> Optional[WorkSession]:
        await asyncio.sleep(0)
        for session in self.sessions.values():
            if session.user_id == user_id and session.date == day:
                return session
        return None

    async def find_open_session(self, user_id: str) -> Optional[WorkSession]:
        await asyncio.sleep(0)
        for session in self.sessions.values():
            if session.user_id == user_id and session.is_open:
                return session
        return None

    async def create_session(
        self, user_id: str, day: date, fields: Optional[dict[str, Any]] = None
    ) -> WorkSession:
        await asyncio.sleep(0)
        now = datetime.now(timezone.utc)
        session = WorkSession.model_validate(
            {
                "id": self._next_id(),
                "user_id": user_id,
                "date": day,
                "status": SessionStatus.ACTIVE,
                "created_at": now,
                "updated_at": now,
                **(fields or {}),
            }
        )
        for other in self.sessions.values():
            if other.user_id == user_id and (
                other.date == day or (other.is_open and session.is_open)
            ):
                raise ConcurrencyConflictError(
                    f"User {user_id} already has a session on {day} or an open session"
                )

        self.sessions[session.id] = session
        return session

    async def update_session(
        self, session_id: str, fields: dict[str, Any]
    ) -> Optional[WorkSession]:
        current = self.sessions.get(session_id)
        if current is None:
            return None

        updated = WorkSession.model_validate(
            {
                **current.model_dump(),
                **fields,
                "updated_at": datetime.now(timezone.utc),
            }
        )
        if updated.is_open and any(
            s.user_id == updated.user_id and s.is_open and s.id != session_id
            for s in self.sessions.values()
        ):
            raise ConcurrencyConflictError(
                f"Session {session_id} conflicts with another open session"
            )

        self.sessions[session_id] = updated
        return updated

    async def find_sessions_by_user_and_date_range(
        self, user_id: str, start: date, end: date
    ) -> list[WorkSession]:
        mine = [
            s for s in self.sessions.values()
            if s.user_id == user_id and start <= s.date <= end
        ]
        return sorted(mine, key=lambda s: s.date)

    async def page_sessions_by_user(
        self,
        user_id: str,
        skip: int,
        limit: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> tuple[list[WorkSession], int]:
        mine = [
            s for s in self.sessions.values()
            if s.user_id == user_id
            and (start is None or s.date >= start)
            and (end is None or s.date <= end)
        ]
        mine.sort(key=lambda s: s.date, reverse=True)
        return mine[skip:skip + limit], len(mine)


class FrozenClock:
    """Mutable "now" handed to the API through the get_now dependency."""

    def __init__(self, now: datetime):
        self.now = now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_session(**overrides) -> WorkSession:
    """Build a WorkSession for user123 on Monday 2024-01-15."""
    stamp = datetime(2024, 1, 15, 11, 0, tzinfo=timezone.utc)
    fields = {
        "_id": "65a4f0c2e4b0a1b2c3d4e5f6",
        "user_id": "user123",
        "date": date(2024, 1, 15),
        "status": SessionStatus.ACTIVE,
        "created_at": stamp,
        "updated_at": stamp,
    }
    fields.update(overrides)
    return WorkSession(**fields)


def make_event(kind: EventKind, timestamp: datetime, **overrides) -> TimeEvent:
    """Build a stored TimeEvent for user123."""
    fields = {
        "_id": "65a4f0c2e4b0a1b2c3d4e500",
        "user_id": "user123",
        "kind": kind,
        "timestamp": timestamp,
        "date": timestamp.astimezone(SANTIAGO).date(),
        "timezone": "America/Santiago",
        "created_at": timestamp,
    }
    fields.update(overrides)
    return TimeEvent(**fields)


def access_token(user_id: str = "user123", **claims) -> str:
    """Sign a token the way the identity service does."""
    from timeclock.config import settings

    payload = {
        "sub": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=30),
        **claims,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


@pytest.fixture
def repository():
    """Empty in-memory clock repository."""
    return InMemoryClockRepository()


@pytest.fixture
def clock():
    """Clock frozen at 08:00 Monday 2024-01-15, Santiago time."""
    return FrozenClock(local(15, 8))


@pytest.fixture
def auth_headers():
    """Bearer header for user123."""
    return {"Authorization": f"Bearer {access_token()}"}


@pytest_asyncio.fixture
async def app_client(repository, clock):
    """
    Create a test client backed by the in-memory repository.

    This fixture:
    - Swaps the clock repository and the clock for test doubles
    - Yields an async HTTP client for testing
    - Removes the overrides afterwards
    """
    from timeclock.main import app
    from timeclock.routers.dependencies import get_clock_repository, get_now

    app.dependency_overrides[get_clock_repository] = lambda: repository
    app.dependency_overrides[get_now] = lambda: clock.now

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()
