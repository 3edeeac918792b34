"""Tests for shared utility functions."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from learnbridge.utils import (
    day_bounds,
    format_instant,
    normalize_instant,
    parse_instant,
    week_bounds,
)

UTC = ZoneInfo("UTC")


class TestNormalizeInstant:
    def test_z_suffix(self):
        assert normalize_instant("2025-03-10T14:00:00Z") == datetime(
            2025, 3, 10, 14, 0, tzinfo=timezone.utc
        )

    def test_offset_converted_to_utc(self):
        assert normalize_instant("2025-03-10T16:00:00+02:00") == normalize_instant(
            "2025-03-10T14:00:00Z"
        )

    def test_naive_string_taken_as_utc(self):
        assert normalize_instant("2025-03-10T14:00") == normalize_instant("2025-03-10T14:00:00Z")

    def test_naive_datetime_taken_as_utc(self):
        value = normalize_instant(datetime(2025, 3, 10, 14, 0))
        assert value.tzinfo is not None
        assert value.hour == 14

    def test_whitespace_tolerated(self):
        assert normalize_instant("  2025-03-10T14:00:00Z ").minute == 0

    def test_garbage_raises_value_error(self):
        with pytest.raises(ValueError):
            normalize_instant("next tuesday")

    def test_wrong_type_raises_type_error(self):
        with pytest.raises(TypeError):
            normalize_instant(12345)  # type: ignore[arg-type]


class TestParseInstant:
    def test_missing_is_none(self):
        assert parse_instant(None) is None
        assert parse_instant("") is None

    def test_malformed_is_none(self):
        assert parse_instant("not a date") is None
        assert parse_instant({"seconds": 1}) is None

    def test_valid_value_parsed(self):
        assert parse_instant("2025-03-10T14:00:00Z").day == 10


class TestBounds:
    def test_week_bounds_start_on_monday(self):
        start, end = week_bounds(normalize_instant("2025-03-07T09:00:00Z"), UTC)
        assert start == normalize_instant("2025-03-03T00:00:00Z")
        assert end == normalize_instant("2025-03-10T00:00:00Z")

    def test_week_bounds_on_monday_midnight(self):
        start, _ = week_bounds(normalize_instant("2025-03-10T00:00:00Z"), UTC)
        assert start == normalize_instant("2025-03-10T00:00:00Z")

    def test_day_bounds(self):
        start, end = day_bounds(normalize_instant("2025-03-07T23:59:00Z"), UTC)
        assert start == normalize_instant("2025-03-07T00:00:00Z")
        assert end == normalize_instant("2025-03-08T00:00:00Z")

    def test_day_bounds_follow_local_zone(self):
        # 23:30 UTC is already the next day in Sydney.
        start, _ = day_bounds(normalize_instant("2025-03-07T23:30:00Z"), ZoneInfo("Australia/Sydney"))
        assert start.astimezone(ZoneInfo("Australia/Sydney")).day == 8


class TestFormatInstant:
    def test_none_renders_dash(self):
        assert format_instant(None) == "n/a"

    def test_renders_in_zone(self):
        text = format_instant(normalize_instant("2025-03-10T14:00:00Z"), ZoneInfo("Europe/Berlin"))
        assert text == "Mon 10 Mar 2025 15:00"
