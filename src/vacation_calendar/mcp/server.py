"""vacation-calendar MCP Server.

Exposes the time-off calendar as MCP tools so that agents and other
clients can submit, review and inspect requests via the Model Context
Protocol.

Usage:
    uv run python -m vacation_calendar.mcp          # stdio mode
    uv run fastmcp run vacation_calendar/mcp/server.py
"""

from __future__ import annotations

import logging
from typing import Any

from fastmcp import FastMCP

from vacation_calendar.errors import SchedulerError
from vacation_calendar.logging_setup import configure_logging
from vacation_calendar.models.request import TimeOffRequest
from vacation_calendar.service import CalendarService

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Server instance
# ---------------------------------------------------------------------------
mcp = FastMCP(
    name="vacation-calendar",
    instructions="""
    vacation-calendar manages staff time-off requests against per-date,
    per-role headcount caps (roles: caregiver, office; "all" is unscoped).

    Typical flow:
    1. get_month_availability -> see which dates are available / full / over
    2. submit_request -> request a day off (keep the deletion secret)
    3. list_pending_requests -> admin review queue
    4. approve_request / reject_request -> admin decision
    5. set_limit / set_limits -> adjust caps per date and role
    6. get_date_detail -> who is off on a given date
    7. export_month_report -> xlsx summary of a month
    """,
)

# ---------------------------------------------------------------------------
# In-memory service (per server process)
# ---------------------------------------------------------------------------
_server_state: dict[str, Any] = {}


def _get_service() -> CalendarService:
    if "service" not in _server_state:
        _server_state["service"] = CalendarService()
    return _server_state["service"]


def _error(exc: SchedulerError) -> dict[str, Any]:
    logger.info("Tool call rejected: %s", exc.message)
    return {"status": "error", **exc.to_dict()}


def _request_payload(request: TimeOffRequest) -> dict[str, Any]:
    payload = request.model_dump(mode="json")
    payload["reason"] = request.display_reason
    return payload


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------
@mcp.tool
async def submit_request(
    requester_name: str,
    date: str,
    deletion_secret: str,
    role: str = "all",
    kind: str = "regular",
    reason: str = "",
) -> dict[str, Any]:
    """Submit a time-off request for one date.

    Requests are accepted even when the date is already full; the date is
    then reported as "over" until an admin resolves it.

    Args:
        requester_name: Name of the staff member.
        date: Date in YYYY-MM-DD format.
        deletion_secret: Secret needed later to withdraw the request.
        role: "caregiver", "office" or "all".
        kind: "regular" or "mandatory" (mandatory requires a reason).
        reason: Free-text reason, optional for regular requests.

    Returns:
        The stored request.
    """
    try:
        request = await _get_service().submit_request(
            requester_name=requester_name,
            date=date,
            deletion_secret=deletion_secret,
            role=role,
            kind=kind,
            reason=reason,
        )
    except SchedulerError as exc:
        return _error(exc)
    return {"status": "ok", "request": _request_payload(request)}


@mcp.tool
async def approve_request(request_id: str) -> dict[str, Any]:
    """Approve a pending request (admin).

    Args:
        request_id: Id returned by submit_request.

    Returns:
        The updated request.
    """
    try:
        request = await _get_service().approve_request(request_id)
    except SchedulerError as exc:
        return _error(exc)
    return {"status": "ok", "request": _request_payload(request)}


@mcp.tool
async def reject_request(request_id: str) -> dict[str, Any]:
    """Reject a pending request (admin). Rejected requests stop counting.

    Args:
        request_id: Id returned by submit_request.

    Returns:
        The updated request.
    """
    try:
        request = await _get_service().reject_request(request_id)
    except SchedulerError as exc:
        return _error(exc)
    return {"status": "ok", "request": _request_payload(request)}


@mcp.tool
async def delete_request(
    request_id: str,
    deletion_secret: str | None = None,
    is_admin: bool = False,
) -> dict[str, Any]:
    """Permanently delete a request.

    The caller is trusted to set is_admin; admins skip the secret check.

    Args:
        request_id: Id returned by submit_request.
        deletion_secret: Secret chosen at submission (non-admin callers).
        is_admin: Whether the caller acts as an administrator.

    Returns:
        The id of the deleted request.
    """
    try:
        request = await _get_service().delete_request(
            request_id, is_admin=is_admin, supplied_secret=deletion_secret
        )
    except SchedulerError as exc:
        return _error(exc)
    return {"status": "ok", "deleted_id": request.id, "date": request.date.isoformat()}


@mcp.tool
async def list_pending_requests() -> dict[str, Any]:
    """List requests awaiting an admin decision, newest first.

    Returns:
        Pending requests and their count.
    """
    requests = await _get_service().list_pending_requests()
    return {
        "status": "ok",
        "requests": [_request_payload(r) for r in requests],
        "count": len(requests),
    }


# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------
@mcp.tool
async def set_limit(date: str, role: str, max_allowed: int | float | str) -> dict[str, Any]:
    """Set the headcount cap for one date and role (admin).

    Setting the same date and role again replaces the previous cap.

    Args:
        date: Date in YYYY-MM-DD format.
        role: "caregiver" or "office".
        max_allowed: Non-negative whole number.

    Returns:
        The stored limit.
    """
    try:
        limit = await _get_service().set_limit(date, role, max_allowed)
    except SchedulerError as exc:
        return _error(exc)
    return {"status": "ok", "limit": {"id": limit.limit_id, **limit.model_dump(mode="json")}}


@mcp.tool
async def set_limits(limits: list[dict[str, Any]]) -> dict[str, Any]:
    """Set several caps at once (admin). Nothing is written if any entry is invalid.

    Args:
        limits: Entries of the form {"date": "2025-03-10", "role": "caregiver", "max_allowed": 2}.

    Returns:
        The stored limits.
    """
    try:
        stored = await _get_service().set_limits(limits)
    except SchedulerError as exc:
        return _error(exc)
    return {
        "status": "ok",
        "limits": [{"id": limit.limit_id, **limit.model_dump(mode="json")} for limit in stored],
        "count": len(stored),
    }


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------
@mcp.tool
async def get_month_availability(
    year: int, month: int, role_filter: str = "all"
) -> dict[str, Any]:
    """Availability of every day in a month.

    Args:
        year: e.g. 2025
        month: 1-12
        role_filter: "caregiver", "office" or "all" (unscoped, default cap).

    Returns:
        Per-date count, limit and status (available / full / over).
    """
    try:
        view = await _get_service().get_month_availability(year, month, role_filter)
    except SchedulerError as exc:
        return _error(exc)
    return {
        "status": "ok",
        "month": view.month_key,
        "role": view.role.value,
        "days": [
            {
                "date": d.date.isoformat(),
                "count": d.effective_count,
                "limit": d.effective_limit,
                "remaining": d.remaining,
                "availability": d.status.value,
                "requests": [_request_payload(r) for r in d.requests],
            }
            for d in view.days
        ],
    }


@mcp.tool
async def get_date_detail(date: str, role_filter: str = "all") -> dict[str, Any]:
    """Requests and capacity for a single date.

    Args:
        date: Date in YYYY-MM-DD format.
        role_filter: "caregiver", "office" or "all".

    Returns:
        Count, limit, status and the requests (approved first).
    """
    try:
        detail = await _get_service().get_date_detail(date, role_filter)
    except SchedulerError as exc:
        return _error(exc)
    availability = detail.availability
    return {
        "status": "ok",
        "date": detail.date.isoformat(),
        "role": detail.role.value,
        "count": availability.effective_count,
        "limit": availability.effective_limit,
        "availability": availability.status.value,
        "requests": [_request_payload(r) for r in detail.requests],
    }


@mcp.tool
async def export_month_report(
    year: int,
    month: int,
    role_filter: str = "all",
    output_path: str | None = None,
) -> dict[str, Any]:
    """Write a month's availability to an Excel file.

    Args:
        year: e.g. 2025
        month: 1-12
        role_filter: "caregiver", "office" or "all".
        output_path: Target .xlsx path (defaults to the configured output directory).

    Returns:
        Path of the written file.
    """
    try:
        path = await _get_service().export_month_report(year, month, role_filter, output_path)
    except SchedulerError as exc:
        return _error(exc)
    return {"status": "ok", "filepath": str(path)}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
def main() -> None:
    configure_logging()
    mcp.run()


if __name__ == "__main__":
    main()
