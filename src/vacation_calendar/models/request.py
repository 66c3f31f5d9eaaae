"""Time-off request models."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

NO_REASON_LABEL = "not provided"


class Role(str, Enum):
    """Staff role a request or limit applies to."""

    CAREGIVER = "caregiver"
    OFFICE = "office"
    ALL = "all"


class RequestKind(str, Enum):
    """Kind of time off. Legacy values outside this enum are kept as strings."""

    REGULAR = "regular"
    MANDATORY = "mandatory"


class RequestStatus(str, Enum):
    """Lifecycle status of a request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELED = "canceled"


class NewTimeOffRequest(BaseModel):
    """Fields supplied at submission; the store assigns the id."""

    model_config = ConfigDict(frozen=True)

    requester_name: str = Field(min_length=1)
    date: date
    role: Role = Role.ALL
    kind: RequestKind | str = Field(default=RequestKind.REGULAR, union_mode="left_to_right")
    reason: str = ""
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime
    updated_at: datetime | None = None
    deletion_secret: str = Field(min_length=1, exclude=True, repr=False)


class TimeOffRequest(NewTimeOffRequest):
    """A stored time-off request.

    Records are frozen; status changes produce a new record through
    ``model_copy`` so id, date and created_at never change after creation.
    """

    id: str

    @property
    def display_reason(self) -> str:
        return self.reason.strip() or NO_REASON_LABEL

    @property
    def is_counted(self) -> bool:
        """True if this request occupies a capacity slot."""
        return self.status in (RequestStatus.PENDING, RequestStatus.APPROVED)

    def with_status(self, status: RequestStatus, updated_at: datetime) -> TimeOffRequest:
        return self.model_copy(update={"status": status, "updated_at": updated_at})
