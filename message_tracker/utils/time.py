"""
UTC time utilities shared by the tracker and the storage adapters.
"""

from datetime import datetime, timedelta, timezone

from dateutil import parser as dateutil_parser

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ONE_MILLISECOND = timedelta(milliseconds=1)


def utc_now() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_now_naive() -> datetime:
    """Current UTC time without tzinfo, the form SQLite columns store."""
    return utc_now().replace(tzinfo=None)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Args:
        dt: Datetime to convert (naive values are assumed to be UTC already)

    Returns:
        Aware datetime in UTC
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def epoch_millis(dt: datetime) -> int:
    """
    Milliseconds since the Unix epoch.

    Integer arithmetic avoids float rounding, so the result always agrees
    with the millisecond ISO rendering of the same instant.
    """
    return (to_utc(dt) - EPOCH) // ONE_MILLISECOND


def from_epoch_millis(ms: int) -> datetime:
    """Epoch milliseconds -> aware UTC datetime."""
    return EPOCH + timedelta(milliseconds=ms)


def to_iso(dt: datetime) -> str:
    """
    Format a datetime as ISO-8601 UTC with millisecond precision.

    Example: 2024-05-01T08:30:00.123Z
    """
    return to_utc(dt).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Raises:
        ValueError: If the string is not a valid ISO-8601 timestamp
    """
    return to_utc(dateutil_parser.isoparse(value))
