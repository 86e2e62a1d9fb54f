from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Optional, Union


_BARE_TIME = re.compile(r"^(\d{1,2}):(\d{2})$")


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_business_date(value: Union[str, date, datetime, None]) -> datetime:
    """
    Parse the business date of a transaction.

    Accepts a date, a datetime, "YYYY-MM-DD" or a full ISO timestamp.
    Raises ValueError when the value cannot be parsed.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        raise ValueError(f"Unsupported date value: {value!r}")

    parsed = parse_iso_datetime(value)
    if parsed is None:
        raise ValueError("Date is required")
    return parsed


def combine_date_time(business_date: datetime, time_value: Union[str, datetime, None]) -> datetime:
    """
    Resolve the transaction time.

    - None / "" -> now (UTC)
    - "HH:MM" -> combined with business_date
    - anything else -> parsed as a full ISO timestamp
    """
    if time_value is None:
        return utcnow()
    if isinstance(time_value, datetime):
        return parse_business_date(time_value)

    s = str(time_value).strip()
    if not s:
        return utcnow()

    match = _BARE_TIME.match(s)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            raise ValueError(f"Invalid time: {s}")
        return business_date.replace(hour=hours, minute=minutes, second=0, microsecond=0)

    parsed = parse_iso_datetime(s)
    if parsed is None:
        raise ValueError(f"Invalid time: {s}")
    return parsed


def day_bounds(value: datetime) -> tuple[datetime, datetime]:
    """Inclusive start and end of the calendar day containing value."""
    start = value.replace(hour=0, minute=0, second=0, microsecond=0)
    end = value.replace(hour=23, minute=59, second=59, microsecond=999999)
    return start, end


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
