"""Tests for SyncCoordinator: token supersession, stale retries and reconciliation."""

from __future__ import annotations

import asyncio
from datetime import date

import pytest

from vacation_calendar.errors import StaleDataError, TransientStoreError, ValidationError
from vacation_calendar.models.availability import MonthView
from vacation_calendar.models.request import Role
from vacation_calendar.service import CalendarService
from vacation_calendar.sync.coordinator import (
    HISTORY_LIMIT,
    SyncCoordinator,
    SyncState,
    accept_month,
)

MARCH_10 = date(2025, 3, 10)


class RecordingBackend(CalendarService):
    """CalendarService whose month reads can be scripted per call."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.month_calls: list[tuple[int, int, Role]] = []
        self.detail_calls: list[date] = []
        self.month_responses: list[MonthView | Exception] = []

    async def real_month(self, year, month, role=Role.ALL) -> MonthView:
        return await super().get_month_availability(year, month, role)

    async def get_month_availability(self, year, month, role_filter=Role.ALL):
        self.month_calls.append((year, month, role_filter))
        if self.month_responses:
            response = self.month_responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return await super().get_month_availability(year, month, role_filter)

    async def get_date_detail(self, date, role_filter=Role.ALL):
        self.detail_calls.append(date)
        return await super().get_date_detail(date, role_filter)


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def backend(request_store, limit_store, settings, clock) -> RecordingBackend:
    return RecordingBackend(
        request_store=request_store, limit_store=limit_store, settings=settings, clock=clock
    )


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def coordinator(backend, sleeper, settings) -> SyncCoordinator:
    return SyncCoordinator(backend, sleep=sleeper, settings=settings)


class TestAcceptMonth:
    @pytest.mark.asyncio
    async def test_wrong_month_is_stale(self, backend):
        april = await backend.real_month(2025, 4)
        assert accept_month(april, 2025, 5, Role.ALL) is None

    @pytest.mark.asyncio
    async def test_empty_response_is_stale(self):
        assert accept_month(MonthView(year=2025, month=5), 2025, 5, Role.ALL) is None

    @pytest.mark.asyncio
    async def test_role_mismatch_is_stale(self, backend):
        may = await backend.real_month(2025, 5, Role.CAREGIVER)
        assert accept_month(may, 2025, 5, Role.OFFICE) is None

    @pytest.mark.asyncio
    async def test_foreign_dates_dropped(self, backend):
        april = await backend.real_month(2025, 4)
        may = await backend.real_month(2025, 5)
        mixed = MonthView(year=2025, month=5, role=Role.ALL, days=april.days[-1:] + may.days)
        accepted = accept_month(mixed, 2025, 5, Role.ALL)
        assert len(accepted.days) == 31
        assert all(d.date.month == 5 for d in accepted.days)

    @pytest.mark.asyncio
    async def test_matching_view_passes_through(self, backend):
        may = await backend.real_month(2025, 5)
        assert accept_month(may, 2025, 5, Role.ALL) is may


class TestLoadMonth:
    @pytest.mark.asyncio
    async def test_settles(self, coordinator, backend):
        view = await coordinator.load_month(2025, 3, "caregiver")
        assert view.month_key == "2025-03"
        assert coordinator.view is view
        assert coordinator.state == SyncState.SETTLED
        assert coordinator.history == [SyncState.IDLE, SyncState.FETCHING, SyncState.SETTLED]
        assert backend.month_calls == [(2025, 3, Role.CAREGIVER)]

    @pytest.mark.asyncio
    async def test_stale_month_fails_after_bounded_retries(self, coordinator, backend, sleeper):
        april = await backend.real_month(2025, 4)
        backend.month_responses = [april, april, april]

        with pytest.raises(StaleDataError) as exc_info:
            await coordinator.load_month(2025, 5)

        assert exc_info.value.attempts == 3
        assert exc_info.value.month_key == "2025-05"
        assert len(backend.month_calls) == 3
        assert sleeper.delays == [0.5, 1.0]
        assert coordinator.state == SyncState.FAILED
        assert coordinator.view is None
        assert coordinator.history[1:] == [
            SyncState.FETCHING,
            SyncState.STALE,
            SyncState.RETRYING,
            SyncState.STALE,
            SyncState.RETRYING,
            SyncState.STALE,
            SyncState.FAILED,
        ]

        # FAILED is not sticky
        view = await coordinator.refresh()
        assert view.month_key == "2025-05"
        assert coordinator.state == SyncState.SETTLED
        assert coordinator.last_error is None

    @pytest.mark.asyncio
    async def test_recovers_within_budget(self, coordinator, backend, sleeper):
        april = await backend.real_month(2025, 4)
        backend.month_responses = [april]
        view = await coordinator.load_month(2025, 5)
        assert view.month_key == "2025-05"
        assert sleeper.delays == [0.5]
        assert coordinator.state == SyncState.SETTLED

    @pytest.mark.asyncio
    async def test_mixed_response_filtered(self, coordinator, backend):
        april = await backend.real_month(2025, 4)
        may = await backend.real_month(2025, 5)
        backend.month_responses = [
            MonthView(year=2025, month=5, role=Role.ALL, days=april.days[-3:] + may.days)
        ]
        view = await coordinator.load_month(2025, 5)
        assert view.dates == may.dates

    @pytest.mark.asyncio
    async def test_transient_error_retried(self, coordinator, backend, sleeper):
        backend.month_responses = [TransientStoreError("connection reset")]
        view = await coordinator.load_month(2025, 3)
        assert view is not None
        assert len(backend.month_calls) == 2
        assert sleeper.delays == [0.5]

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self, coordinator, backend, sleeper):
        backend.month_responses = [ValidationError("bad month", field="month")]
        with pytest.raises(ValidationError):
            await coordinator.load_month(2025, 3)
        assert len(backend.month_calls) == 1
        assert sleeper.delays == []
        assert coordinator.state == SyncState.FAILED

    @pytest.mark.asyncio
    async def test_shift_month_crosses_year(self, coordinator):
        await coordinator.load_month(2025, 12)
        view = await coordinator.shift_month(1)
        assert view.month_key == "2026-01"
        view = await coordinator.shift_month(-13)
        assert view.month_key == "2024-12"

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, coordinator):
        await coordinator.load_month(2025, 3)
        for _ in range(HISTORY_LIMIT):
            await coordinator.refresh()
        assert len(coordinator.history) == HISTORY_LIMIT
        assert coordinator.history[-1] == SyncState.SETTLED

    @pytest.mark.asyncio
    async def test_refresh_needs_a_month(self, coordinator):
        with pytest.raises(ValueError):
            await coordinator.refresh()
        with pytest.raises(ValueError):
            await coordinator.shift_month(1)

    @pytest.mark.asyncio
    async def test_role_filter_change(self, coordinator, backend):
        await coordinator.load_month(2025, 3)
        view = await coordinator.set_role_filter("office")
        assert view.role == Role.OFFICE
        assert backend.month_calls[-1] == (2025, 3, Role.OFFICE)

    @pytest.mark.asyncio
    async def test_bad_role_filter(self, coordinator):
        with pytest.raises(ValidationError):
            await coordinator.load_month(2025, 3, "nurse")


class GatedBackend(RecordingBackend):
    """Reads for gated months or dates block until released."""

    def __init__(self, swallow_cancel=False, **kwargs):
        super().__init__(**kwargs)
        self.gates: dict[tuple[int, int], asyncio.Event] = {}
        self.detail_gates: dict[date, asyncio.Event] = {}
        self.started = asyncio.Event()
        self.swallow_cancel = swallow_cancel

    async def get_month_availability(self, year, month, role_filter=Role.ALL):
        gate = self.gates.get((year, month))
        if gate is not None:
            self.started.set()
            try:
                await gate.wait()
            except asyncio.CancelledError:
                if not self.swallow_cancel:
                    raise
        return await super().get_month_availability(year, month, role_filter)

    async def get_date_detail(self, date, role_filter=Role.ALL):
        gate = self.detail_gates.get(date)
        if gate is not None:
            self.started.set()
            try:
                await gate.wait()
            except asyncio.CancelledError:
                if not self.swallow_cancel:
                    raise
        return await super().get_date_detail(date, role_filter)


@pytest.fixture(params=[False, True], ids=["cancel", "swallow-cancel"])
def gated_backend(request, request_store, limit_store, settings, clock) -> GatedBackend:
    return GatedBackend(
        swallow_cancel=request.param,
        request_store=request_store,
        limit_store=limit_store,
        settings=settings,
        clock=clock,
    )


class TestSupersession:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("swallow_cancel", [False, True])
    async def test_last_issued_fetch_wins(
        self, request_store, limit_store, settings, clock, sleeper, swallow_cancel
    ):
        backend = GatedBackend(
            swallow_cancel=swallow_cancel,
            request_store=request_store,
            limit_store=limit_store,
            settings=settings,
            clock=clock,
        )
        backend.gates[(2025, 3)] = asyncio.Event()
        coordinator = SyncCoordinator(backend, sleep=sleeper, settings=settings)

        first = asyncio.create_task(coordinator.load_month(2025, 3))
        await backend.started.wait()

        second = await coordinator.load_month(2025, 4)
        assert await first is None
        assert second.month_key == "2025-04"
        assert coordinator.view is second
        assert coordinator.month_key == "2025-04"
        assert coordinator.state == SyncState.SETTLED

    @pytest.mark.asyncio
    async def test_month_change_drops_selection(self, coordinator, backend):
        await coordinator.load_month(2025, 3)
        await coordinator.select_date(MARCH_10)
        await coordinator.load_month(2025, 4)
        assert coordinator.selected_date is None
        assert coordinator.detail is None
        assert coordinator.detail_state == SyncState.IDLE


class TestSelection:
    @pytest.mark.asyncio
    async def test_select_and_toggle(self, coordinator, backend):
        await coordinator.load_month(2025, 3)
        detail = await coordinator.select_date(MARCH_10)
        assert detail.date == MARCH_10
        assert coordinator.detail is detail
        assert coordinator.detail_state == SyncState.SETTLED

        calls_before = len(backend.month_calls)
        assert await coordinator.select_date(MARCH_10) is None
        assert coordinator.selected_date is None
        assert coordinator.detail is None
        # the month-wide view is restored
        assert len(backend.month_calls) == calls_before + 1

    @pytest.mark.asyncio
    async def test_selecting_another_date(self, coordinator):
        await coordinator.load_month(2025, 3)
        await coordinator.select_date(MARCH_10)
        detail = await coordinator.select_date(date(2025, 3, 11))
        assert detail.date == date(2025, 3, 11)
        assert coordinator.selected_date == date(2025, 3, 11)

    @pytest.mark.asyncio
    async def test_reclick_supersedes_detail_in_flight(self, gated_backend, sleeper, settings):
        coordinator = SyncCoordinator(gated_backend, sleep=sleeper, settings=settings)
        await coordinator.load_month(2025, 3)
        gate = gated_backend.detail_gates[MARCH_10] = asyncio.Event()

        pending = asyncio.create_task(coordinator.select_date(MARCH_10))
        await gated_backend.started.wait()

        assert await coordinator.select_date(MARCH_10) is None
        assert await pending is None

        gate.set()
        await asyncio.sleep(0)
        assert coordinator.selected_date is None
        assert coordinator.detail is None
        assert coordinator.detail_state == SyncState.IDLE
        assert coordinator.state == SyncState.SETTLED

    @pytest.mark.asyncio
    async def test_clear_supersedes_detail_in_flight(self, gated_backend, sleeper, settings):
        coordinator = SyncCoordinator(gated_backend, sleep=sleeper, settings=settings)
        await coordinator.load_month(2025, 3)
        gate = gated_backend.detail_gates[MARCH_10] = asyncio.Event()

        pending = asyncio.create_task(coordinator.select_date(MARCH_10))
        await gated_backend.started.wait()

        view = await coordinator.clear_selection()
        assert view.month_key == "2025-03"
        assert await pending is None

        gate.set()
        await asyncio.sleep(0)
        assert coordinator.detail is None
        assert coordinator.detail_state == SyncState.IDLE


class TestReconcile:
    @pytest.mark.asyncio
    async def test_mutation_refreshes_twice(self, coordinator, backend, sleeper):
        await coordinator.load_month(2025, 3, "caregiver")
        backend.month_calls.clear()

        request = await coordinator.submit(
            requester_name="Alice", date="2025-03-10", deletion_secret="pw", role="caregiver"
        )

        assert len(backend.month_calls) == 2
        assert sleeper.delays == [1.0]
        assert coordinator.view.get(MARCH_10).effective_count == 1
        assert coordinator.view.get(MARCH_10).requests[0].id == request.id

    @pytest.mark.asyncio
    async def test_selected_date_refreshed(self, coordinator, backend):
        await coordinator.load_month(2025, 3)
        await coordinator.select_date(MARCH_10)
        backend.detail_calls.clear()

        await coordinator.set_limit(MARCH_10, "caregiver", 1)
        assert backend.detail_calls == [MARCH_10, MARCH_10]

    @pytest.mark.asyncio
    async def test_first_pass_failure_absorbed(self, coordinator, backend, sleeper):
        await coordinator.load_month(2025, 3)
        april = await backend.real_month(2025, 4)
        backend.month_responses = [april, april, april]

        request = await coordinator.submit(
            requester_name="Alice", date="2025-03-10", deletion_secret="pw"
        )
        assert sleeper.delays == [0.5, 1.0, 1.0]
        assert coordinator.state == SyncState.SETTLED
        assert coordinator.view.get(MARCH_10).requests[0].id == request.id

    @pytest.mark.asyncio
    async def test_second_pass_failure_propagates(self, coordinator, backend):
        await coordinator.load_month(2025, 3)
        april = await backend.real_month(2025, 4)
        backend.month_responses = [april] * 6

        with pytest.raises(StaleDataError):
            await coordinator.reconcile()
        assert coordinator.state == SyncState.FAILED

    @pytest.mark.asyncio
    async def test_stored_mutation_returned_when_view_stays_stale(self, coordinator, backend):
        await coordinator.load_month(2025, 3)
        april = await backend.real_month(2025, 4)
        backend.month_responses = [april] * 6

        request = await coordinator.submit(
            requester_name="Alice", date="2025-03-10", deletion_secret="pw"
        )

        assert request.requester_name == "Alice"
        assert len(backend.request_store) == 1
        assert coordinator.state == SyncState.FAILED
        assert isinstance(coordinator.last_error, StaleDataError)

        await coordinator.refresh()
        assert coordinator.view.get(MARCH_10).requests[0].id == request.id

    @pytest.mark.asyncio
    async def test_approve_and_delete(self, coordinator, backend):
        request = await backend.submit_request(
            requester_name="Alice", date="2025-03-10", deletion_secret="pw", role="office"
        )
        await coordinator.load_month(2025, 3, "office")

        await coordinator.approve(request.id)
        assert coordinator.view.get(MARCH_10).effective_count == 1

        await coordinator.delete(request.id, supplied_secret="pw")
        assert coordinator.view.get(MARCH_10).effective_count == 0

    @pytest.mark.asyncio
    async def test_failed_mutation_skips_refresh(self, coordinator, backend):
        await coordinator.load_month(2025, 3)
        backend.month_calls.clear()
        with pytest.raises(ValidationError):
            await coordinator.reject(" ")
        assert backend.month_calls == []

    @pytest.mark.asyncio
    async def test_reconcile_without_month(self, coordinator, sleeper):
        assert await coordinator.reconcile() is None
        assert sleeper.delays == []
