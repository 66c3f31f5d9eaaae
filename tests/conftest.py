"""Common test fixtures."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from itertools import count

import pytest

from vacation_calendar.config import SchedulerSettings
from vacation_calendar.lifecycle.requests import RequestLifecycle
from vacation_calendar.models.limit import CapacityLimit
from vacation_calendar.models.request import (
    RequestKind,
    RequestStatus,
    Role,
    TimeOffRequest,
)
from vacation_calendar.service import CalendarService
from vacation_calendar.stores.memory import InMemoryLimitStore, InMemoryRequestStore


class TickingClock:
    """Clock that advances one second per call, so created_at is strictly increasing."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


_ids = count(1)


def make_request(
    day: date,
    role: Role = Role.CAREGIVER,
    status: RequestStatus = RequestStatus.PENDING,
    name: str | None = None,
    request_id: str | None = None,
) -> TimeOffRequest:
    """Build a stored request directly, bypassing the lifecycle."""
    n = next(_ids)
    created = datetime(2025, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=n)
    return TimeOffRequest(
        id=request_id or f"req-{n}",
        requester_name=name or f"Staff {n}",
        date=day,
        role=role,
        kind=RequestKind.REGULAR,
        status=status,
        created_at=created,
        updated_at=created,
        deletion_secret="secret",
    )


def make_limit(day: date, role: Role, max_allowed: int) -> CapacityLimit:
    return CapacityLimit(date=day, role=role, max_allowed=max_allowed)


@pytest.fixture
def request_factory():
    return make_request


@pytest.fixture
def limit_factory():
    return make_limit


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def settings() -> SchedulerSettings:
    """Explicit settings so the suite ignores VACATION_* variables on the host."""
    return SchedulerSettings(
        default_max_allowed=3,
        retry_max_attempts=3,
        retry_base_delay=0.5,
        retry_max_delay=4.0,
        settle_delay=1.0,
        _env_file=None,
    )


@pytest.fixture
def request_store() -> InMemoryRequestStore:
    return InMemoryRequestStore()


@pytest.fixture
def limit_store(clock) -> InMemoryLimitStore:
    return InMemoryLimitStore(clock=clock)


@pytest.fixture
def lifecycle(request_store, limit_store, clock) -> RequestLifecycle:
    return RequestLifecycle(request_store, limit_store, clock=clock)


@pytest.fixture
def service(request_store, limit_store, settings, clock) -> CalendarService:
    return CalendarService(
        request_store=request_store,
        limit_store=limit_store,
        settings=settings,
        clock=clock,
    )
