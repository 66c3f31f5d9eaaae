"""CalendarService - the operations exposed to the API layer.

Parses wire-format input, then delegates to the lifecycle, the stores and
the capacity engine. Month and role filter are always explicit arguments;
the service keeps no view state of its own.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Any

from vacation_calendar.clock import Clock
from vacation_calendar.config import SchedulerSettings, get_settings
from vacation_calendar.engine.capacity import compute_availability, month_dates
from vacation_calendar.errors import ValidationError
from vacation_calendar.io.excel_writer import write_month_report
from vacation_calendar.lifecycle.requests import RequestLifecycle
from vacation_calendar.models.availability import DateDetail, MonthView
from vacation_calendar.models.limit import CapacityLimit
from vacation_calendar.models.request import RequestKind, Role, TimeOffRequest
from vacation_calendar.stores.base import LimitStore, RequestStore
from vacation_calendar.stores.memory import InMemoryLimitStore, InMemoryRequestStore
from vacation_calendar.validation import (
    coerce_max_allowed,
    parse_iso_date,
    parse_role,
    parse_year_month,
    require_text,
)

logger = logging.getLogger(__name__)


def _parse_kind(value: Any) -> RequestKind | str:
    if value is None or value == "":
        return RequestKind.REGULAR
    if not isinstance(value, str):
        raise ValidationError(f"kind must be a string, got {value!r}", field="kind")
    try:
        return RequestKind(value)
    except ValueError:
        # legacy kinds (sick, other, ...) are kept as-is
        return value


class CalendarService:
    """Entry point for request mutations and availability reads."""

    def __init__(
        self,
        request_store: RequestStore | None = None,
        limit_store: LimitStore | None = None,
        settings: SchedulerSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.request_store = InMemoryRequestStore() if request_store is None else request_store
        self.limit_store = InMemoryLimitStore(clock=clock) if limit_store is None else limit_store
        self.lifecycle = RequestLifecycle(self.request_store, self.limit_store, clock=clock)

    @property
    def default_limit(self) -> int:
        return self.settings.default_max_allowed

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    async def submit_request(
        self,
        requester_name: str,
        date: str | date,
        deletion_secret: str,
        role: str | Role = Role.ALL,
        kind: str | None = None,
        reason: str | None = "",
    ) -> TimeOffRequest:
        day = parse_iso_date(date)
        return await self.lifecycle.submit(
            requester_name=requester_name,
            day=day,
            role=parse_role(role),
            deletion_secret=deletion_secret,
            kind=_parse_kind(kind),
            reason=reason or "",
        )

    async def approve_request(self, request_id: str) -> TimeOffRequest:
        return await self.lifecycle.approve(require_text(request_id, "request_id"))

    async def reject_request(self, request_id: str) -> TimeOffRequest:
        return await self.lifecycle.reject(require_text(request_id, "request_id"))

    async def delete_request(
        self,
        request_id: str,
        is_admin: bool = False,
        supplied_secret: str | None = None,
    ) -> TimeOffRequest:
        return await self.lifecycle.delete(
            require_text(request_id, "request_id"),
            is_admin=is_admin,
            supplied_secret=supplied_secret,
        )

    async def set_limit(
        self, date: str | date, role: str | Role, max_allowed: Any
    ) -> CapacityLimit:
        return await self.lifecycle.set_limit(
            parse_iso_date(date),
            parse_role(role, allow_all=False),
            coerce_max_allowed(max_allowed),
        )

    async def set_limits(self, entries: list[dict[str, Any]]) -> list[CapacityLimit]:
        """Bulk upsert. Every entry is validated before anything is written."""
        if not isinstance(entries, list):
            raise ValidationError("limits must be a list", field="limits")
        parsed = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise ValidationError(f"limits[{index}] must be an object", field="limits")
            parsed.append(
                (
                    parse_iso_date(entry.get("date"), field=f"limits[{index}].date"),
                    parse_role(entry.get("role"), field=f"limits[{index}].role", allow_all=False),
                    coerce_max_allowed(
                        entry.get("max_allowed"), field=f"limits[{index}].max_allowed"
                    ),
                )
            )
        return await self.lifecycle.set_limits(parsed)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def list_pending_requests(self) -> list[TimeOffRequest]:
        return await self.lifecycle.list_pending()

    async def get_month_availability(
        self, year: int, month: int, role_filter: str | Role = Role.ALL
    ) -> MonthView:
        year, month = parse_year_month(year, month)
        role = parse_role(role_filter, field="role_filter")
        dates = month_dates(year, month)
        start, end = dates[0], dates[-1]

        requests = await self.request_store.find_by_date_range(start, end)
        limits = await self._limits_for(start, end, role)
        days = compute_availability(
            requests, limits, role, dates=dates, default_limit=self.default_limit
        )
        logger.debug(
            "Month %04d-%02d (%s): %d requests, %d limits",
            year, month, role.value, len(requests), len(limits),
        )
        return MonthView(year=year, month=month, role=role, days=list(days.values()))

    async def get_date_detail(
        self, date: str | date, role_filter: str | Role = Role.ALL
    ) -> DateDetail:
        day = parse_iso_date(date)
        role = parse_role(role_filter, field="role_filter")
        requests = await self.request_store.find_by_date(day)
        limits = await self._limits_for(day, day, role)
        days = compute_availability(
            requests, limits, role, dates=[day], default_limit=self.default_limit
        )
        return DateDetail(date=day, role=role, availability=days[day])

    async def export_month_report(
        self,
        year: int,
        month: int,
        role_filter: str | Role = Role.ALL,
        filepath: str | Path | None = None,
    ) -> Path:
        view = await self.get_month_availability(year, month, role_filter)
        if filepath is None:
            out_dir = Path(self.settings.output_dir) / "vacation_calendar_output"
            out_dir.mkdir(parents=True, exist_ok=True)
            filepath = out_dir / f"vacation_{view.month_key}_{view.role.value}.xlsx"
        return write_month_report(filepath, view)

    async def _limits_for(self, start: date, end: date, role: Role) -> list[CapacityLimit]:
        # The unscoped view uses the default cap only.
        if role == Role.ALL:
            return []
        return await self.limit_store.find_by_date_range_and_role(start, end, role)
