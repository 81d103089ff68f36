"""Timestamp formatting shared by the projector and the read side."""

from datetime import UTC, datetime


def format_timestamp(value: datetime | str) -> str:
    """ISO-8601 in UTC with fixed microsecond precision.

    Fixed width keeps stored timestamps lexicographically ordered, which the
    keyset cursors rely on.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def utc_now() -> datetime:
    return datetime.now(UTC)
