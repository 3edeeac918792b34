"""Shared utilities used across the portal."""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

Instant = Union[datetime, str]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_instant(value: Instant) -> datetime:
    """Normalize a datetime or ISO-8601 string to an aware UTC datetime.

    Naive values are taken to be UTC. Two spellings of the same moment
    normalize to equal values.

    Examples:
        >>> normalize_instant("2025-03-10T14:00:00Z")
        datetime.datetime(2025, 3, 10, 14, 0, tzinfo=datetime.timezone.utc)
        >>> normalize_instant("2025-03-10T16:00:00+02:00") == normalize_instant("2025-03-10T14:00")
        True
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Not an ISO-8601 date-time: {value!r}") from None
    if not isinstance(value, datetime):
        raise TypeError(f"Expected datetime or ISO string, got {type(value).__name__}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(value: Any) -> Optional[datetime]:
    """Lenient variant for stored records: missing or malformed values yield None."""
    if value is None or value == "":
        return None
    try:
        return normalize_instant(value)
    except (TypeError, ValueError):
        return None


def local_date(instant: datetime, tz: ZoneInfo) -> date:
    return instant.astimezone(tz).date()


def week_bounds(now: datetime, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Return [Monday 00:00, next Monday 00:00) around ``now`` in ``tz``, as UTC."""
    local = now.astimezone(tz)
    start = (local - timedelta(days=local.weekday())).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    end = start + timedelta(days=7)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def day_bounds(now: datetime, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Return [00:00, next 00:00) of the local day containing ``now``, as UTC."""
    local = now.astimezone(tz)
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return start.astimezone(timezone.utc), (start + timedelta(days=1)).astimezone(timezone.utc)


def format_instant(instant: Optional[datetime], tz: Optional[ZoneInfo] = None) -> str:
    """Human-readable rendering used by views and reports."""
    if instant is None:
        return "n/a"
    if tz is not None:
        instant = instant.astimezone(tz)
    return instant.strftime("%a %d %b %Y %H:%M")
