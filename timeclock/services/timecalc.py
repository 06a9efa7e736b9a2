"""Timestamp helpers shared by the store, the clock and the aggregation views.

Instants are persisted as ISO-8601 UTC text (``2024-01-15T15:00:00.000Z``).
Calendar keys (``YYYY-MM-DD``) are always derived from an instant in the
viewer's zone through ``local_date_key`` so grouping never depends on a UTC
slice of the stored text.
"""

from __future__ import annotations

from datetime import date, datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

LOCAL_INPUT_FORMAT = "%Y-%m-%dT%H:%M"


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def resolve_tz(name: str | None, fallback: str = "UTC") -> ZoneInfo:
    """Return the zone called ``name``, or ``fallback`` when it is unknown or blank."""
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            pass
    return ZoneInfo(fallback)


def is_valid_tz(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def parse_iso(ts: str | None, tz: str | tzinfo = "UTC") -> datetime | None:
    """Parse an ISO-8601 timestamp string.
    If naive, attach the provided tz. Returns None if ts is falsy.
    """
    if not ts:
        return None
    dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(tz) if isinstance(tz, str) else tz)
    return dt


def to_iso(dt: datetime) -> str:
    """Serialize an aware instant as UTC text with millisecond precision."""
    if dt.tzinfo is None:
        raise ValueError("refusing to serialize a naive datetime")
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def local_date_key(dt: datetime, tz: tzinfo) -> str:
    return dt.astimezone(tz).date().isoformat()


def parse_date_key(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def parse_month_key(value: str | None) -> date | None:
    """``YYYY-MM`` to the first day of that month."""
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m").date()
    except ValueError:
        return None


def parse_local_input(value: str | None, tz: tzinfo) -> datetime | None:
    """Parse a ``datetime-local`` form value as wall-clock time in ``tz``."""
    if not value or not value.strip():
        return None
    naive = datetime.fromisoformat(value.strip())
    if naive.tzinfo is not None:
        return naive
    return naive.replace(tzinfo=tz)


def to_local_input(dt: datetime | None, tz: tzinfo) -> str:
    if dt is None:
        return ""
    return dt.astimezone(tz).strftime(LOCAL_INPUT_FORMAT)


def format_duration(ms: int) -> str:
    """``5400000`` -> ``1h 30m 0s``; negative values are not durations."""
    if ms < 0:
        return "N/A"
    seconds = ms // 1000
    hours, remainder = divmod(seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours}h {minutes}m {seconds}s"
