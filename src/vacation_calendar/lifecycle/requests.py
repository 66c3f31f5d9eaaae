"""Request lifecycle: submission, approval, rejection, deletion and limit updates.

State machine::

    pending --approve--> approved
    pending --reject---> rejected
    any     --delete---> (removed)

Approved and rejected are terminal for the admin workflow; only deletion
is possible afterwards. Deletion is a hard delete, so ``canceled`` is never
written by this module; it is kept for records coming from older data.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Iterable
from datetime import date

from vacation_calendar.clock import Clock, utc_now
from vacation_calendar.errors import AuthorizationError, InvalidStateError, ValidationError
from vacation_calendar.models.limit import CapacityLimit
from vacation_calendar.models.request import (
    NewTimeOffRequest,
    RequestKind,
    RequestStatus,
    Role,
    TimeOffRequest,
)
from vacation_calendar.stores.base import LimitStore, RequestStore
from vacation_calendar.validation import require_text

logger = logging.getLogger(__name__)

TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.CANCELED: frozenset(),
}


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in TRANSITIONS[current]


class RequestLifecycle:
    """Applies lifecycle rules against the request and limit stores."""

    def __init__(
        self,
        request_store: RequestStore,
        limit_store: LimitStore,
        clock: Clock | None = None,
    ) -> None:
        self.request_store = request_store
        self.limit_store = limit_store
        self._clock = clock or utc_now

    async def submit(
        self,
        requester_name: str,
        day: date,
        role: Role,
        deletion_secret: str,
        kind: RequestKind | str = RequestKind.REGULAR,
        reason: str = "",
    ) -> TimeOffRequest:
        """Create a pending request.

        Capacity is not checked here: over-booking is accepted and shows up
        as an ``over`` day for an admin to resolve.
        """
        name = require_text(requester_name, "requester_name")
        if not isinstance(deletion_secret, str) or not deletion_secret.strip():
            raise ValidationError("deletion_secret is required", field="deletion_secret")
        if not isinstance(role, Role):
            raise ValidationError(f"role must be a Role, got {role!r}", field="role")
        reason = (reason or "").strip()
        if kind == RequestKind.MANDATORY and not reason:
            raise ValidationError("mandatory time off requires a reason", field="reason")

        now = self._clock()
        fields = NewTimeOffRequest(
            requester_name=name,
            date=day,
            role=role,
            kind=kind or RequestKind.REGULAR,
            reason=reason,
            status=RequestStatus.PENDING,
            created_at=now,
            updated_at=now,
            deletion_secret=deletion_secret,
        )
        request = await self.request_store.insert(fields)
        logger.info(
            "Submitted request %s: %s on %s (%s)",
            request.id, request.requester_name, request.date, request.role.value,
        )
        return request

    async def approve(self, request_id: str) -> TimeOffRequest:
        return await self._transition(request_id, RequestStatus.APPROVED)

    async def reject(self, request_id: str) -> TimeOffRequest:
        return await self._transition(request_id, RequestStatus.REJECTED)

    async def delete(
        self,
        request_id: str,
        is_admin: bool = False,
        supplied_secret: str | None = None,
    ) -> TimeOffRequest:
        """Permanently remove a request and return the removed record.

        Admins skip the secret check. Everyone else must supply the secret
        chosen at submission.
        """
        request = await self.request_store.get(request_id)
        if not is_admin:
            if not supplied_secret:
                raise ValidationError("deletion secret is required", field="supplied_secret")
            if not hmac.compare_digest(
                supplied_secret.encode("utf-8"), request.deletion_secret.encode("utf-8")
            ):
                logger.warning("Rejected delete of %s: secret mismatch", request_id)
                raise AuthorizationError()

        # A concurrent delete may win the race; the store then raises NotFoundError.
        await self.request_store.delete(request_id)
        logger.info("Deleted request %s (admin=%s)", request_id, is_admin)
        return request

    async def set_limit(self, day: date, role: Role, max_allowed: int) -> CapacityLimit:
        """Upsert the cap for (day, role). Authorization belongs to the caller."""
        if role == Role.ALL:
            raise ValidationError("limits are set per role: caregiver or office", field="role")
        if max_allowed < 0:
            raise ValidationError("max_allowed must not be negative", field="max_allowed")
        limit = await self.limit_store.upsert(day, role, max_allowed)
        logger.info("Set limit %s = %d", limit.limit_id, limit.max_allowed)
        return limit

    async def set_limits(
        self, entries: Iterable[tuple[date, Role, int]]
    ) -> list[CapacityLimit]:
        return [await self.set_limit(day, role, n) for day, role, n in entries]

    async def list_pending(self) -> list[TimeOffRequest]:
        """Pending requests, newest submission first."""
        pending = await self.request_store.find_by_status(RequestStatus.PENDING)
        return sorted(pending, key=lambda r: r.created_at, reverse=True)

    async def _transition(self, request_id: str, target: RequestStatus) -> TimeOffRequest:
        request = await self.request_store.get(request_id)
        if not can_transition(request.status, target):
            raise InvalidStateError(request_id, request.status.value, target.value)
        updated = await self.request_store.update_status(request_id, target, self._clock())
        logger.info("Request %s: %s -> %s", request_id, request.status.value, target.value)
        return updated
