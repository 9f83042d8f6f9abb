"""Timezone helpers: every stored instant is an aware UTC datetime"""

from datetime import datetime, timezone
from typing import Any, Optional

from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and convert aware ones"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(value: Any) -> datetime:
    """
    Coerce a stored timestamp into an aware UTC datetime.

    Accepts datetimes (including Firestore's DatetimeWithNanoseconds) and ISO-8601 strings.

    Raises:
        ValueError: If the value is missing or cannot be parsed
    """
    if value is None or value == "":
        raise ValueError("timestamp is missing")
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        try:
            return ensure_utc(isoparse(value))
        except (ValueError, OverflowError) as e:
            raise ValueError(f"unparseable timestamp: {value!r}") from e
    raise ValueError(f"unsupported timestamp type: {type(value).__name__}")


def add_months(value: datetime, months: int = 1) -> datetime:
    """Calendar month arithmetic, Jan 31 + 1 month is Feb 28/29"""
    return value + relativedelta(months=months)
