"""Error taxonomy for the scheduling core.

Each error carries the HTTP-equivalent status code the API layer should
answer with. Only TransientStoreError is retried by the sync coordinator;
everything else is surfaced to the caller immediately.
"""

from __future__ import annotations

from typing import Any


class SchedulerError(Exception):
    """Base class for all scheduling errors."""

    http_status: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "http_status": self.http_status,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(SchedulerError):
    """Malformed or missing input."""

    http_status = 400

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.field = field


class NotFoundError(SchedulerError):
    """Unknown request id or date."""

    http_status = 404

    def __init__(
        self,
        resource_type: str,
        identifier: Any,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found", details)
        self.resource_type = resource_type
        self.identifier = identifier


class AuthorizationError(SchedulerError):
    """Deletion secret did not match on a non-admin delete."""

    http_status = 403

    def __init__(self, message: str = "Deletion secret does not match") -> None:
        super().__init__(message)


class InvalidStateError(SchedulerError):
    """The requested status transition is not allowed from the current status."""

    http_status = 409

    def __init__(self, request_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Request '{request_id}' cannot move from {current} to {target}",
            {"current": current, "target": target},
        )
        self.request_id = request_id
        self.current = current
        self.target = target


class TransientStoreError(SchedulerError):
    """Network or backend failure; safe to retry."""

    http_status = 503


class StaleDataError(SchedulerError):
    """The month view stayed mismatched after every retry attempt."""

    http_status = 409

    def __init__(self, month_key: str, attempts: int, reason: str = "") -> None:
        message = (
            f"Calendar data for {month_key} is out of date after {attempts} attempts. "
            "Please refresh manually."
        )
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, {"month": month_key, "attempts": attempts})
        self.month_key = month_key
        self.attempts = attempts


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, TransientStoreError)
