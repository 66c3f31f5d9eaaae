"""Capacity engine: turns requests and limits into per-date availability.

Everything here is pure. Given the same requests, limits and role filter
the result is identical, so callers may recompute freely and throw away
stale results.
"""

from __future__ import annotations

import calendar
from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import date, timedelta

from vacation_calendar.models.availability import AvailabilityStatus, DayAvailability
from vacation_calendar.models.limit import DEFAULT_MAX_ALLOWED, CapacityLimit, LimitKey
from vacation_calendar.models.request import RequestStatus, Role, TimeOffRequest


def classify(count: int, limit: int) -> AvailabilityStatus:
    """Map a headcount against its cap. Reaching the cap exactly is ``full``."""
    if count < limit:
        return AvailabilityStatus.AVAILABLE
    if count == limit:
        return AvailabilityStatus.FULL
    return AvailabilityStatus.OVER


def matches_role(request: TimeOffRequest, role: Role) -> bool:
    """Whether a request falls inside a role scope.

    Unscoped requests (role ``all``) belong to every role bucket, and the
    unscoped filter sees everything.
    """
    return role == Role.ALL or request.role in (role, Role.ALL)


def counts_toward(request: TimeOffRequest, role: Role) -> bool:
    return request.is_counted and matches_role(request, role)


def index_limits(limits: Iterable[CapacityLimit]) -> dict[LimitKey, CapacityLimit]:
    """Key limits by (date, role). Later records win for a repeated key."""
    return {limit.key: limit for limit in limits}


def resolve_limit(
    limits_by_key: Mapping[LimitKey, CapacityLimit],
    day: date,
    role: Role,
    default_limit: int = DEFAULT_MAX_ALLOWED,
) -> int:
    # The unscoped view never sums or consults per-role caps.
    if role == Role.ALL:
        return default_limit
    limit = limits_by_key.get((day, role))
    return limit.max_allowed if limit is not None else default_limit


def month_dates(year: int, month: int) -> list[date]:
    _, num_days = calendar.monthrange(year, month)
    first = date(year, month, 1)
    return [first + timedelta(days=offset) for offset in range(num_days)]


def compute_day(
    day: date,
    requests: Iterable[TimeOffRequest],
    limits_by_key: Mapping[LimitKey, CapacityLimit],
    role: Role = Role.ALL,
    default_limit: int = DEFAULT_MAX_ALLOWED,
) -> DayAvailability:
    listed = [
        r
        for r in requests
        if r.date == day and r.status != RequestStatus.CANCELED and matches_role(r, role)
    ]
    listed.sort(key=lambda r: (r.created_at, r.id))
    count = sum(1 for r in listed if r.is_counted)
    limit = resolve_limit(limits_by_key, day, role, default_limit)
    return DayAvailability(
        date=day,
        role=role,
        effective_count=count,
        effective_limit=limit,
        status=classify(count, limit),
        requests=listed,
    )


def compute_availability(
    requests: Iterable[TimeOffRequest],
    limits: Iterable[CapacityLimit],
    role: Role = Role.ALL,
    dates: Iterable[date] | None = None,
    default_limit: int = DEFAULT_MAX_ALLOWED,
) -> dict[date, DayAvailability]:
    """Compute availability for every date that has requests or is listed in ``dates``.

    Args:
        requests: Requests to evaluate. Canceled ones are ignored entirely;
            rejected ones are listed for display but never counted.
        limits: Per-(date, role) caps. Missing caps fall back to ``default_limit``.
        role: Role filter. ``Role.ALL`` counts every request against the default cap.
        dates: Dates that must appear in the result even without requests.
        default_limit: Cap used when no limit record applies.

    Returns:
        Mapping of date to DayAvailability, ordered by date.
    """
    limits_by_key = index_limits(limits)

    by_date: dict[date, list[TimeOffRequest]] = defaultdict(list)
    for request in requests:
        by_date[request.date].append(request)

    all_dates = set(by_date)
    if dates is not None:
        all_dates.update(dates)

    return {
        day: compute_day(day, by_date.get(day, []), limits_by_key, role, default_limit)
        for day in sorted(all_dates)
    }
