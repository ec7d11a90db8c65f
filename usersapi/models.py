"""Domain model for the users service."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Dict, Optional

MUTABLE_FIELDS = ("name", "dob", "address", "description")

_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")
_DAY_FIRST_DATE = re.compile(r"^\d{2}-\d{2}-\d{4}$")


@dataclass(frozen=True)
class User:
    """A user record as held by a store."""

    name: str
    id: str = ""
    dob: Optional[datetime] = None
    address: str = ""
    description: str = ""
    created_at: Optional[datetime] = None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC timestamp; naive values are taken as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: object) -> datetime:
    """Parse a birth date or timestamp supplied by a client or a document.

    Accepts datetimes, ISO-8601 date-times (sub-microsecond digits are
    truncated), ISO-8601 dates and day-first ``DD-MM-YYYY`` dates.
    """

    if isinstance(value, datetime):
        return ensure_utc(value)
    # YAML loads unquoted ISO dates as ``date`` objects.
    if isinstance(value, date):
        return datetime.combine(value, time(), tzinfo=timezone.utc)
    if not isinstance(value, str):
        raise ValueError("timestamp must be a string")

    text = value.strip()
    if not text:
        raise ValueError("timestamp must not be empty")

    if _DAY_FIRST_DATE.match(text):
        return datetime.strptime(text, "%d-%m-%Y").replace(tzinfo=timezone.utc)

    text = _EXCESS_FRACTION.sub(r"\1", text)
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"Unrecognised timestamp {value!r}") from exc
    return ensure_utc(parsed)


def user_from_dict(data: Dict[str, object]) -> User:
    """Build a :class:`User` from a stored document or seed mapping."""

    dob = data.get("dob")
    created_at = data.get("createdAt")
    return User(
        id=str(data.get("id") or ""),
        name=str(data.get("name") or ""),
        dob=parse_timestamp(dob) if dob else None,
        address=str(data.get("address") or ""),
        description=str(data.get("description") or ""),
        created_at=parse_timestamp(created_at) if created_at else None,
    )


__all__ = [
    "MUTABLE_FIELDS",
    "User",
    "ensure_utc",
    "parse_timestamp",
    "user_from_dict",
    "utc_now",
]
