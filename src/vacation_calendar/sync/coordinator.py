"""SyncCoordinator - keeps one consumer's month view consistent.

The backing store is eventually consistent and fetches overlap: the user
navigates months, switches role filters and selects dates while earlier
requests are still in flight. The coordinator makes the last issued fetch
win:

- every fetch carries a fresh token; issuing a new fetch on a channel
  cancels the one in flight, and any result whose token is no longer
  current is dropped instead of applied;
- a response that has no date in the requested month is stale and is
  retried with backoff, then reported as StaleDataError;
- a response that mixes months keeps the requested month's dates only;
- after a mutation the month is refreshed twice, once immediately and once
  after a settle delay, to absorb store lag.

Per-channel states::

    IDLE -> FETCHING -> SETTLED
                     -> STALE -> RETRYING -> SETTLED
                                          -> STALE -> ... -> FAILED

FAILED is not sticky: the next fetch gets a new token and starts over.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Protocol, TypeVar

from vacation_calendar.config import SchedulerSettings, get_settings
from vacation_calendar.errors import SchedulerError, StaleDataError, is_retryable
from vacation_calendar.models.availability import DateDetail, MonthView
from vacation_calendar.models.limit import CapacityLimit
from vacation_calendar.models.request import Role, TimeOffRequest
from vacation_calendar.sync.retry import RetryPolicy, Sleep
from vacation_calendar.validation import parse_role

logger = logging.getLogger(__name__)

T = TypeVar("T")

HISTORY_LIMIT = 64


class SyncState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SETTLED = "settled"
    STALE = "stale"
    RETRYING = "retrying"
    FAILED = "failed"


class CalendarBackend(Protocol):
    """What the coordinator needs from the API layer (CalendarService fits)."""

    async def get_month_availability(
        self, year: int, month: int, role_filter: Role
    ) -> MonthView: ...

    async def get_date_detail(self, date: date, role_filter: Role) -> DateDetail: ...

    async def submit_request(self, **fields: Any) -> TimeOffRequest: ...

    async def approve_request(self, request_id: str) -> TimeOffRequest: ...

    async def reject_request(self, request_id: str) -> TimeOffRequest: ...

    async def delete_request(
        self, request_id: str, is_admin: bool = False, supplied_secret: str | None = None
    ) -> TimeOffRequest: ...

    async def set_limit(self, date: date, role: Role, max_allowed: int) -> CapacityLimit: ...


@dataclass
class _Channel:
    """Token and in-flight task for one kind of fetch."""

    name: str
    token: int = 0
    task: asyncio.Task | None = None
    state: SyncState = SyncState.IDLE
    history: deque[SyncState] = field(
        default_factory=lambda: deque([SyncState.IDLE], maxlen=HISTORY_LIMIT)
    )

    def supersede(self, token: int) -> None:
        self.token = token
        if self.task is not None and not self.task.done():
            self.task.cancel()
        self.task = None

    def is_current(self, token: int) -> bool:
        return self.token == token

    def set_state(self, token: int, state: SyncState) -> None:
        if not self.is_current(token):
            return
        self.state = state
        self.history.append(state)


def accept_month(view: MonthView, year: int, month: int, role: Role) -> MonthView | None:
    """Keep the requested month's days, or return None if the response is stale."""
    if view.role != role:
        return None
    in_month = [d for d in view.days if (d.date.year, d.date.month) == (year, month)]
    if not in_month:
        return None
    if len(in_month) != len(view.days) or (view.year, view.month) != (year, month):
        dropped = len(view.days) - len(in_month)
        if dropped:
            logger.info("Dropped %d entries outside %04d-%02d", dropped, year, month)
        view = MonthView(year=year, month=month, role=role, days=in_month)
    return view


class SyncCoordinator:
    """Fetches and reconciles the month view for a single consumer."""

    def __init__(
        self,
        backend: CalendarBackend,
        policy: RetryPolicy | None = None,
        settle_delay: float | None = None,
        sleep: Sleep | None = None,
        settings: SchedulerSettings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.backend = backend
        self.policy = policy or RetryPolicy.from_settings(settings)
        self.settle_delay = settings.settle_delay if settle_delay is None else settle_delay
        self._sleep = sleep or asyncio.sleep
        self._tokens = itertools.count(1)
        self._month = _Channel("month")
        self._detail = _Channel("detail")

        self.year: int | None = None
        self.month: int | None = None
        self.role: Role = Role.ALL
        self.selected_date: date | None = None
        self.view: MonthView | None = None
        self.detail: DateDetail | None = None
        self.last_error: SchedulerError | None = None

    @property
    def state(self) -> SyncState:
        return self._month.state

    @property
    def detail_state(self) -> SyncState:
        return self._detail.state

    @property
    def history(self) -> list[SyncState]:
        return list(self._month.history)

    @property
    def month_key(self) -> str | None:
        if self.year is None or self.month is None:
            return None
        return f"{self.year:04d}-{self.month:02d}"

    # ------------------------------------------------------------------
    # Month view
    # ------------------------------------------------------------------
    async def load_month(
        self, year: int, month: int, role: Role | str | None = None
    ) -> MonthView | None:
        """Fetch a month, superseding whatever month fetch is in flight.

        Returns None if this fetch was itself superseded before it settled.
        """
        if role is not None:
            self.role = parse_role(role, field="role_filter")
        if (year, month) != (self.year, self.month):
            self._drop_selection()
        self.year, self.month = year, month
        return await self._run(
            self._month, lambda token: self._fetch_month(token, year, month, self.role)
        )

    async def refresh(self) -> MonthView | None:
        if self.year is None or self.month is None:
            raise ValueError("No month loaded yet; call load_month first")
        return await self.load_month(self.year, self.month)

    async def shift_month(self, delta: int) -> MonthView | None:
        """Navigate ``delta`` months forward (negative for backward)."""
        if self.year is None or self.month is None:
            raise ValueError("No month loaded yet; call load_month first")
        index = self.year * 12 + (self.month - 1) + delta
        return await self.load_month(index // 12, index % 12 + 1)

    async def set_role_filter(self, role: Role | str) -> MonthView | None:
        self.role = parse_role(role, field="role_filter")
        view = await self.refresh()
        if self.selected_date is not None:
            await self._load_detail(self.selected_date)
        return view

    # ------------------------------------------------------------------
    # Date selection
    # ------------------------------------------------------------------
    async def select_date(self, day: date) -> DateDetail | None:
        """Fetch the detail for ``day``. Selecting the selected date again clears it."""
        if self.selected_date == day:
            await self.clear_selection()
            return None
        self.selected_date = day
        return await self._load_detail(day)

    async def clear_selection(self) -> MonthView | None:
        """Drop the date detail and restore the month-wide view."""
        self._drop_selection()
        if self.year is None:
            return None
        return await self.refresh()

    def _drop_selection(self) -> None:
        self.selected_date = None
        self.detail = None
        self._detail.supersede(next(self._tokens))
        self._detail.set_state(self._detail.token, SyncState.IDLE)

    async def _load_detail(self, day: date) -> DateDetail | None:
        return await self._run(
            self._detail, lambda token: self._fetch_detail(token, day, self.role)
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    async def submit(self, **fields: Any) -> TimeOffRequest:
        return await self._mutate(self.backend.submit_request(**fields))

    async def approve(self, request_id: str) -> TimeOffRequest:
        return await self._mutate(self.backend.approve_request(request_id))

    async def reject(self, request_id: str) -> TimeOffRequest:
        return await self._mutate(self.backend.reject_request(request_id))

    async def delete(
        self, request_id: str, is_admin: bool = False, supplied_secret: str | None = None
    ) -> TimeOffRequest:
        return await self._mutate(
            self.backend.delete_request(
                request_id, is_admin=is_admin, supplied_secret=supplied_secret
            )
        )

    async def set_limit(self, day: date, role: Role | str, max_allowed: int) -> CapacityLimit:
        return await self._mutate(self.backend.set_limit(day, role, max_allowed))

    async def reconcile(self) -> MonthView | None:
        """Refresh now, then again after the settle delay."""
        if self.year is None:
            return None
        try:
            await self._refresh_all()
        except StaleDataError as exc:
            # The second pass decides what the caller sees.
            logger.warning("Immediate refresh after mutation failed: %s", exc.message)
        await self._sleep(self.settle_delay)
        await self._refresh_all()
        return self.view

    async def _mutate(self, mutation: Awaitable[T]) -> T:
        """Apply a mutation, then reconcile the view.

        The mutation is already persisted once it returns, so a stale view
        afterwards must not hide its result: the failure stays on
        ``last_error`` with the month channel in FAILED.
        """
        result = await mutation
        try:
            await self.reconcile()
        except StaleDataError as exc:
            logger.error("View not reconciled after mutation: %s", exc.message)
        return result

    async def _refresh_all(self) -> None:
        await self.refresh()
        if self.selected_date is not None:
            await self._load_detail(self.selected_date)

    # ------------------------------------------------------------------
    # Token discipline and retry
    # ------------------------------------------------------------------
    async def _run(
        self, channel: _Channel, factory: Callable[[int], Awaitable[T | None]]
    ) -> T | None:
        token = next(self._tokens)
        channel.supersede(token)
        task = asyncio.ensure_future(factory(token))
        channel.task = task
        try:
            return await task
        except asyncio.CancelledError:
            if not channel.is_current(token):
                logger.debug("%s fetch %d superseded", channel.name, token)
                return None
            raise
        finally:
            if channel.task is task:
                channel.task = None

    async def _fetch_month(
        self, token: int, year: int, month: int, role: Role
    ) -> MonthView | None:
        view = await self._fetch_with_retry(
            self._month,
            token,
            label=f"{year:04d}-{month:02d}",
            fetch=lambda: self.backend.get_month_availability(year, month, role),
            accept=lambda v: accept_month(v, year, month, role),
        )
        if view is not None and self._month.is_current(token):
            self.view = view
        return view

    async def _fetch_detail(self, token: int, day: date, role: Role) -> DateDetail | None:
        detail = await self._fetch_with_retry(
            self._detail,
            token,
            label=day.isoformat(),
            fetch=lambda: self.backend.get_date_detail(day, role),
            accept=lambda d: d if d.date == day and d.role == role else None,
        )
        if detail is not None and self._detail.is_current(token):
            self.detail = detail
        return detail

    async def _fetch_with_retry(
        self,
        channel: _Channel,
        token: int,
        label: str,
        fetch: Callable[[], Awaitable[T]],
        accept: Callable[[T], T | None],
    ) -> T | None:
        attempt = 0
        while True:
            attempt += 1
            channel.set_state(token, SyncState.FETCHING if attempt == 1 else SyncState.RETRYING)
            try:
                result = await fetch()
            except SchedulerError as exc:
                if not is_retryable(exc):
                    channel.set_state(token, SyncState.FAILED)
                    self.last_error = exc
                    raise
                reason = f"store unavailable: {exc.message}"
            else:
                if not channel.is_current(token):
                    return None
                accepted = accept(result)
                if accepted is not None:
                    channel.set_state(token, SyncState.SETTLED)
                    self.last_error = None
                    return accepted
                reason = f"response does not match {label}"

            if not channel.is_current(token):
                return None
            channel.set_state(token, SyncState.STALE)
            if attempt >= self.policy.max_attempts:
                error = StaleDataError(label, attempt, reason)
                channel.set_state(token, SyncState.FAILED)
                self.last_error = error
                logger.error("%s fetch for %s failed after %d attempts", channel.name, label, attempt)
                raise error

            delay = self.policy.delay_for(attempt)
            logger.warning(
                "%s fetch for %s attempt %d failed (%s); retrying in %.2fs",
                channel.name, label, attempt, reason, delay,
            )
            await self._sleep(delay)
            if not channel.is_current(token):
                return None
