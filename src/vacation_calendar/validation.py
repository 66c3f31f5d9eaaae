"""Boundary parsing for wire-format input.

Everything that arrives from callers passes through here before the core
sees it, so the engine and lifecycle only ever deal with typed values.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

from vacation_calendar.errors import ValidationError
from vacation_calendar.models.request import Role

_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


def parse_iso_date(value: Any, field: str = "date") -> date:
    """Parse a ``YYYY-MM-DD`` string. ``date`` objects pass through."""
    if isinstance(value, datetime):
        raise ValidationError(f"{field} must be a calendar date without a time", field=field)
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _ISO_DATE.fullmatch(value):
        raise ValidationError(
            f"{field} must use the YYYY-MM-DD format, got {value!r}", field=field
        )
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{field} is not a valid date: {value!r}", field=field) from None


def parse_role(value: Any, field: str = "role", allow_all: bool = True) -> Role:
    if value is None and allow_all:
        return Role.ALL
    try:
        role = Role(value)
    except ValueError:
        allowed = [r.value for r in Role if allow_all or r != Role.ALL]
        raise ValidationError(
            f"{field} must be one of {allowed}, got {value!r}", field=field
        ) from None
    if role == Role.ALL and not allow_all:
        raise ValidationError(f"{field} must be caregiver or office", field=field)
    return role


def coerce_max_allowed(value: Any, field: str = "max_allowed") -> int:
    """Accept non-negative integers, including integral floats and digit strings."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, str):
        text = value.strip()
        if not (text.isascii() and text.isdigit()):
            raise ValidationError(
                f"{field} must be a non-negative integer, got {value!r}", field=field
            )
        return int(text)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be a whole number, got {value}", field=field)
        value = int(value)
    if not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer, got {value!r}", field=field)
    if value < 0:
        raise ValidationError(f"{field} must not be negative, got {value}", field=field)
    return value


def parse_year_month(year: Any, month: Any) -> tuple[int, int]:
    if isinstance(year, bool) or not isinstance(year, int) or not 1 <= year <= 9999:
        raise ValidationError(f"year must be an integer between 1 and 9999, got {year!r}", field="year")
    if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
        raise ValidationError(f"month must be an integer between 1 and 12, got {month!r}", field="month")
    return year, month


def require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    return value.strip()
