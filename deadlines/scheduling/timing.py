"""Deadline math: pure helpers for reminder and expiration instants.

Deadlines travel as ISO-8601 local date-times without an offset
(``2026-03-01T17:00:00``). Naive values are read in ``DEADLINE_TIMEZONE``;
every datetime handed out by this module is timezone-aware.
"""

from __future__ import annotations

import logging
import zoneinfo
from datetime import datetime, timedelta, tzinfo

from deadlines.config import settings

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


def deadline_tz() -> tzinfo:
    return zoneinfo.ZoneInfo(settings.deadline_timezone)


def current_time(tz: tzinfo | None = None) -> datetime:
    """Current time in the deadline timezone, at full precision.

    Whole seconds are only applied when a value is formatted for the wire.
    """
    return datetime.now(tz or deadline_tz())


def localize(value: datetime, tz: tzinfo | None = None) -> datetime:
    """Attach the deadline timezone to a naive datetime; convert aware ones."""
    tz = tz or deadline_tz()
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def parse_timestamp(value: str | None, *, task_id: str = "unknown") -> datetime | None:
    """Parse a stored timestamp. Returns None (and logs) instead of raising."""
    if value is None or not str(value).strip():
        return None
    try:
        return localize(datetime.fromisoformat(str(value).strip()))
    except ValueError:
        logger.error("Invalid timestamp format for taskId: %s: %r", task_id, value)
        return None


def format_timestamp(value: datetime | None) -> str | None:
    """Render a datetime in the wire format (deadline timezone, no offset)."""
    if value is None:
        return None
    return localize(value).strftime(TIMESTAMP_FORMAT)


def reminder_time(deadline: datetime, offset_minutes: int) -> datetime:
    return deadline - timedelta(minutes=offset_minutes)


def is_past(instant: datetime, now: datetime) -> bool:
    return instant < now


def is_future(instant: datetime, now: datetime) -> bool:
    """True only when *instant* is strictly after *now*."""
    return instant > now
