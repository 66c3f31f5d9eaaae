"""Per-(date, role) headcount cap."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vacation_calendar.models.request import Role

DEFAULT_MAX_ALLOWED = 3

LimitKey = tuple[date, Role]


class CapacityLimit(BaseModel):
    """Headcount cap for one role on one date.

    Role ``all`` never has a record of its own; unscoped views always use
    the default cap.
    """

    model_config = ConfigDict(frozen=True)

    date: date
    role: Role
    max_allowed: int = Field(ge=0)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("role")
    @classmethod
    def _role_must_be_scoped(cls, value: Role) -> Role:
        if value == Role.ALL:
            raise ValueError("limits are set per role: caregiver or office")
        return value

    @property
    def key(self) -> LimitKey:
        return (self.date, self.role)

    @property
    def limit_id(self) -> str:
        return f"{self.date.isoformat()}:{self.role.value}"
