"""Tests for deadline math helpers."""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from deadlines.scheduling.timing import (
    current_time,
    format_timestamp,
    is_future,
    is_past,
    localize,
    parse_timestamp,
    reminder_time,
)

UTC = ZoneInfo("UTC")


# -- reminder_time -------------------------------------------------------------


def test_reminder_time_subtracts_offset() -> None:
    deadline = datetime(2025, 6, 1, 17, 0, tzinfo=UTC)
    assert reminder_time(deadline, 60) == datetime(2025, 6, 1, 16, 0, tzinfo=UTC)


def test_reminder_time_crosses_midnight() -> None:
    deadline = datetime(2025, 6, 2, 0, 30, tzinfo=UTC)
    assert reminder_time(deadline, 60) == datetime(2025, 6, 1, 23, 30, tzinfo=UTC)


def test_reminder_time_zero_offset() -> None:
    deadline = datetime(2025, 6, 1, 17, 0, tzinfo=UTC)
    assert reminder_time(deadline, 0) == deadline


# -- is_past / is_future -------------------------------------------------------


def test_is_past_and_future_are_strict() -> None:
    now = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)
    assert is_past(now, now) is False
    assert is_future(now, now) is False
    assert is_past(now - timedelta(seconds=1), now) is True
    assert is_future(now + timedelta(seconds=1), now) is True


# -- parse_timestamp -----------------------------------------------------------


def test_parse_naive_timestamp_uses_deadline_timezone() -> None:
    parsed = parse_timestamp("2025-06-01T17:00:00")
    assert parsed == datetime(2025, 6, 1, 17, 0, tzinfo=UTC)
    assert parsed.tzinfo is not None


def test_parse_timestamp_with_offset_is_converted() -> None:
    parsed = parse_timestamp("2025-06-01T19:00:00+02:00")
    assert parsed == datetime(2025, 6, 1, 17, 0, tzinfo=UTC)


@pytest.mark.parametrize("value", [None, "", "   ", "tomorrow", "2025-13-01T00:00:00"])
def test_parse_timestamp_invalid_returns_none(value) -> None:
    assert parse_timestamp(value, task_id="t1") is None


def test_parse_timestamp_respects_configured_timezone(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("deadlines.config.settings.deadline_timezone", "America/Chicago")
    parsed = parse_timestamp("2025-01-15T09:00:00")
    assert parsed is not None
    assert parsed.utcoffset() == timedelta(hours=-6)


# -- format_timestamp / localize -----------------------------------------------


def test_format_timestamp_has_no_offset() -> None:
    value = datetime(2025, 6, 1, 17, 0, 5, tzinfo=UTC)
    assert format_timestamp(value) == "2025-06-01T17:00:05"


def test_format_timestamp_none() -> None:
    assert format_timestamp(None) is None


def test_format_timestamp_converts_to_deadline_timezone() -> None:
    value = datetime(2025, 6, 1, 19, 0, tzinfo=ZoneInfo("Europe/Berlin"))
    assert format_timestamp(value) == "2025-06-01T17:00:00"


def test_localize_naive_and_aware() -> None:
    naive = datetime(2025, 6, 1, 9, 0)
    assert localize(naive).tzinfo is not None
    aware = datetime(2025, 6, 1, 9, 0, tzinfo=ZoneInfo("Europe/Berlin"))
    assert localize(aware) == aware


def test_current_time_is_aware() -> None:
    now = current_time()
    assert now.tzinfo is not None
    assert abs(now - datetime.now(UTC)) < timedelta(seconds=5)


def test_current_time_keeps_subsecond_precision() -> None:
    stamps = [current_time() for _ in range(5)]
    assert any(stamp.microsecond != 0 for stamp in stamps)


def test_fire_time_just_after_whole_second_deadline_is_past() -> None:
    deadline = parse_timestamp("2025-06-01T17:00:00")
    fired = deadline + timedelta(microseconds=1500)
    assert is_past(deadline, fired) is True
    assert format_timestamp(fired) == "2025-06-01T17:00:00"
