"""Utility functions for Client Reports."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from datetime import date, datetime, time, timezone
from typing import TypeVar

T = TypeVar("T")

ISO_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def parse_datetime(value: str | date | datetime, *, end_of_day: bool = False) -> datetime:
    """Parse an ISO-8601 string, date or datetime into an aware UTC datetime.

    Args:
        value: Input value. Strings may use a trailing ``Z``.
        end_of_day: For date-only inputs, return 23:59:59 instead of midnight.

    Returns:
        Timezone-aware datetime in UTC.

    Raises:
        ValueError: If the string is not ISO-8601.
    """

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.max if end_of_day else time.min)
    else:
        raw = str(value).strip()
        if not raw:
            raise ValueError("empty date")
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        parsed = datetime.fromisoformat(raw)
        if end_of_day and len(raw) == 10:
            parsed = datetime.combine(parsed.date(), time.max)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_utc_iso(value: datetime) -> str:
    """Format a datetime the way message dates are stored (second precision, UTC, ``Z``)."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(ISO_FORMAT)


def normalize_date(value: str | datetime | None) -> str:
    """Best-effort normalization of a message date to the stored ISO form.

    Unparseable input is returned unchanged so that ingestion never drops a message
    just because of an odd date header.
    """

    if value is None:
        return ""
    try:
        return to_utc_iso(parse_datetime(value))
    except (TypeError, ValueError, OverflowError):
        return str(value)


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of ``items`` with at most ``size`` elements."""

    if size < 1:
        size = 1
    for start in range(0, len(items), size):
        yield items[start : start + size]


def truncate_error(exc: BaseException | str, limit: int = 150) -> str:
    """Render an exception for logs/results without dumping huge payloads."""

    message = str(exc) or exc.__class__.__name__
    if len(message) > limit:
        return f"{message[:limit]}... [truncated]"
    return message
