"""Derived availability models. Recomputed on every read, never stored."""

from __future__ import annotations

from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from vacation_calendar.models.request import RequestStatus, Role, TimeOffRequest


class AvailabilityStatus(str, Enum):
    """Capacity status of one date."""

    AVAILABLE = "available"
    FULL = "full"
    OVER = "over"


class DayAvailability(BaseModel):
    """Headcount for one date within one role scope."""

    model_config = ConfigDict(frozen=True)

    date: date
    role: Role
    effective_count: int = Field(ge=0, description="Pending and approved requests counted")
    effective_limit: int = Field(ge=0)
    status: AvailabilityStatus
    requests: list[TimeOffRequest] = Field(
        default_factory=list, description="Listed requests, rejected included, canceled excluded"
    )

    @property
    def remaining(self) -> int:
        return max(self.effective_limit - self.effective_count, 0)


class MonthView(BaseModel):
    """Availability for every day of one month under one role filter."""

    model_config = ConfigDict(frozen=True)

    year: int
    month: int = Field(ge=1, le=12)
    role: Role = Role.ALL
    days: list[DayAvailability] = Field(default_factory=list)

    @property
    def month_key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def dates(self) -> list[date]:
        return [d.date for d in self.days]

    def get(self, day: date) -> DayAvailability | None:
        for entry in self.days:
            if entry.date == day:
                return entry
        return None


_STATUS_ORDER = {
    RequestStatus.APPROVED: 0,
    RequestStatus.PENDING: 1,
    RequestStatus.REJECTED: 2,
    RequestStatus.CANCELED: 3,
}


class DateDetail(BaseModel):
    """Single-date view used by the detail panel."""

    model_config = ConfigDict(frozen=True)

    date: date
    role: Role = Role.ALL
    availability: DayAvailability

    @property
    def requests(self) -> list[TimeOffRequest]:
        """Approved first, then pending, then rejected; oldest first within each."""
        return sorted(
            self.availability.requests,
            key=lambda r: (_STATUS_ORDER[r.status], r.created_at),
        )
