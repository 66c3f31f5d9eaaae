"""Bounded retry policy with capped exponential backoff."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from pydantic import BaseModel, Field

from vacation_calendar.config import SchedulerSettings

# Injected in place of asyncio.sleep so tests never wait on real timers.
Sleep = Callable[[float], Awaitable[None]]


class RetryPolicy(BaseModel):
    """How often and how patiently a fetch is retried."""

    max_attempts: int = Field(default=3, ge=1, description="Total attempts, first one included")
    base_delay: float = Field(default=0.5, ge=0.0, description="Seconds before the second attempt")
    max_delay: float = Field(default=4.0, ge=0.0, description="Upper bound for any single delay")

    @classmethod
    def from_settings(cls, settings: SchedulerSettings) -> RetryPolicy:
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-indexed)."""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    def delays(self) -> list[float]:
        """Every delay a fully failing fetch sleeps through."""
        return [self.delay_for(attempt) for attempt in range(1, self.max_attempts)]
