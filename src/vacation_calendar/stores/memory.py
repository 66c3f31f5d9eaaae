"""In-memory stores. Used by the tool server and the test suite."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import date, datetime

from vacation_calendar.clock import Clock, utc_now
from vacation_calendar.errors import NotFoundError
from vacation_calendar.models.limit import CapacityLimit, LimitKey
from vacation_calendar.models.request import (
    NewTimeOffRequest,
    RequestStatus,
    Role,
    TimeOffRequest,
)
from vacation_calendar.stores.base import LimitStore, RequestStore

logger = logging.getLogger(__name__)


class InMemoryRequestStore(RequestStore):
    def __init__(self) -> None:
        self._records: dict[str, TimeOffRequest] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def find_by_date_range(self, start: date, end: date) -> list[TimeOffRequest]:
        async with self._lock:
            return [r for r in self._records.values() if start <= r.date <= end]

    async def find_by_date(self, day: date) -> list[TimeOffRequest]:
        return await self.find_by_date_range(day, day)

    async def find_by_status(self, status: RequestStatus) -> list[TimeOffRequest]:
        async with self._lock:
            return [r for r in self._records.values() if r.status == status]

    async def get(self, request_id: str) -> TimeOffRequest:
        async with self._lock:
            return self._get_locked(request_id)

    async def insert(self, fields: NewTimeOffRequest) -> TimeOffRequest:
        async with self._lock:
            request_id = uuid.uuid4().hex
            # model_dump() leaves out the excluded secret
            record = TimeOffRequest(
                id=request_id,
                deletion_secret=fields.deletion_secret,
                **fields.model_dump(),
            )
            self._records[request_id] = record
            logger.debug("Inserted request %s for %s", request_id, record.date)
            return record

    async def update_status(
        self, request_id: str, status: RequestStatus, updated_at: datetime
    ) -> TimeOffRequest:
        async with self._lock:
            record = self._get_locked(request_id).with_status(status, updated_at)
            self._records[request_id] = record
            return record

    async def delete(self, request_id: str) -> None:
        async with self._lock:
            if request_id not in self._records:
                raise NotFoundError("TimeOffRequest", request_id)
            del self._records[request_id]

    def _get_locked(self, request_id: str) -> TimeOffRequest:
        try:
            return self._records[request_id]
        except KeyError:
            raise NotFoundError("TimeOffRequest", request_id) from None


class InMemoryLimitStore(LimitStore):
    def __init__(self, clock: Clock | None = None) -> None:
        self._records: dict[LimitKey, CapacityLimit] = {}
        self._lock = asyncio.Lock()
        self._clock = clock or utc_now

    def __len__(self) -> int:
        return len(self._records)

    async def find_by_date_range_and_role(
        self, start: date, end: date, role: Role | None = None
    ) -> list[CapacityLimit]:
        async with self._lock:
            return [
                limit
                for limit in self._records.values()
                if start <= limit.date <= end and (role is None or limit.role == role)
            ]

    async def upsert(self, day: date, role: Role, max_allowed: int) -> CapacityLimit:
        async with self._lock:
            now = self._clock()
            existing = self._records.get((day, role))
            limit = CapacityLimit(
                date=day,
                role=role,
                max_allowed=max_allowed,
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            self._records[limit.key] = limit
            return limit
