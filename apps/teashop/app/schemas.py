from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .errors import ValidationError


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageOut(CamelModel):
    message: str


def parse_when(raw: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO date or datetime query value into an aware UTC datetime.

    A bare date means the start of that day, or its last instant when
    `end_of_day` is set.
    """
    if not raw:
        return None
    value = raw.strip()
    try:
        if len(value) == 10:
            d = date.fromisoformat(value)
            dt = datetime.combine(d, time.max if end_of_day else time.min)
        else:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid date: {raw}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def date_range(start: Optional[str], end: Optional[str]) -> Optional[tuple[datetime, datetime]]:
    """Both bounds or nothing, the way every list/report endpoint filters."""
    if not (start and end):
        return None
    return parse_when(start), parse_when(end, end_of_day=True)


def page_count(total: int, limit: int) -> int:
    return (total + limit - 1) // limit if limit > 0 else 0
