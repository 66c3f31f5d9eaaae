"""Abstract store interfaces consumed by the scheduling core.

Implementations raise NotFoundError for unknown ids and
TransientStoreError for retryable backend failures.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime

from vacation_calendar.models.limit import CapacityLimit
from vacation_calendar.models.request import (
    NewTimeOffRequest,
    RequestStatus,
    Role,
    TimeOffRequest,
)


class RequestStore(ABC):
    """Durable collection of time-off requests."""

    @abstractmethod
    async def find_by_date_range(self, start: date, end: date) -> list[TimeOffRequest]:
        """Requests with ``start <= date <= end``."""

    @abstractmethod
    async def find_by_date(self, day: date) -> list[TimeOffRequest]:
        """Requests on a single date."""

    @abstractmethod
    async def find_by_status(self, status: RequestStatus) -> list[TimeOffRequest]:
        """Requests currently in ``status``."""

    @abstractmethod
    async def get(self, request_id: str) -> TimeOffRequest:
        """Fetch one request or raise NotFoundError."""

    @abstractmethod
    async def insert(self, fields: NewTimeOffRequest) -> TimeOffRequest:
        """Store a new request and return it with its assigned id."""

    @abstractmethod
    async def update_status(
        self, request_id: str, status: RequestStatus, updated_at: datetime
    ) -> TimeOffRequest:
        """Set the status of an existing request or raise NotFoundError."""

    @abstractmethod
    async def delete(self, request_id: str) -> None:
        """Permanently remove a request or raise NotFoundError."""


class LimitStore(ABC):
    """Durable collection of per-(date, role) caps."""

    @abstractmethod
    async def find_by_date_range_and_role(
        self, start: date, end: date, role: Role | None = None
    ) -> list[CapacityLimit]:
        """Limits in the date range, optionally for one role only."""

    @abstractmethod
    async def upsert(self, day: date, role: Role, max_allowed: int) -> CapacityLimit:
        """Create or replace the limit keyed by (day, role)."""
