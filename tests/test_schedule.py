"""Tests for weekday/weekend schedule resolution."""

import copy
from datetime import datetime

import pytest
from zoneinfo import ZoneInfo

from voicereply.config import DEFAULT_CONFIG
from voicereply.domain.models import TEXT, VOICE
from voicereply.schedule import in_range, parse_range, schedule_preference

SHANGHAI = ZoneInfo("Asia/Shanghai")


def _at(hour: int, minute: int = 0, day: int = 19) -> datetime:
    """2026-10-19 is a Monday; 24/25 are the weekend."""
    return datetime(2026, 10, day, hour, minute, tzinfo=SHANGHAI)


@pytest.fixture
def schedule():
    return copy.deepcopy(DEFAULT_CONFIG["rules"]["schedule"])


class TestParseRange:
    def test_valid(self):
        """A well-formed range should parse to minutes since midnight."""
        assert parse_range("07:00-08:30") == (420, 510)

    def test_whitespace_tolerated(self):
        """Whitespace around the parts should be tolerated."""
        assert parse_range(" 19:00 - 07:00 ") == (1140, 420)

    @pytest.mark.parametrize("bad", ["", "7-8", "07:00", "25:00-26:00", "07:60-08:00", "morning"])
    def test_invalid(self, bad):
        """Malformed or out-of-range ranges should be rejected."""
        assert parse_range(bad) is None

    def test_wraparound_membership(self):
        """19:00-07:00 spans midnight."""
        start, end = parse_range("19:00-07:00")
        assert in_range(23 * 60, start, end)
        assert in_range(2 * 60, start, end)
        assert not in_range(12 * 60, start, end)

    def test_end_exclusive(self):
        """The end minute should be exclusive."""
        start, end = parse_range("07:00-08:30")
        assert in_range(7 * 60, start, end)
        assert not in_range(8 * 60 + 30, start, end)


class TestWeekday:
    def test_morning_commute_is_voice(self, schedule):
        """08:00 falls in 07:00-08:30 -> voice."""
        assert schedule_preference(schedule, _at(8)) == (VOICE, "weekday 07:00-08:30")

    def test_work_morning_is_text(self, schedule):
        """09:00 falls in 08:30-12:00 -> text."""
        assert schedule_preference(schedule, _at(9)) == (TEXT, "weekday 08:30-12:00")

    def test_overnight_range(self, schedule):
        """23:00 and 02:00 both match 19:00-07:00."""
        assert schedule_preference(schedule, _at(23)) == (VOICE, "weekday 19:00-07:00")
        assert schedule_preference(schedule, _at(2)) == (VOICE, "weekday 19:00-07:00")

    def test_declaration_order_wins(self, schedule):
        """Overlapping ranges resolve by position, not by span."""
        schedule["weekday"] = {"08:00-18:00": "text", "09:00-10:00": "voice"}
        assert schedule_preference(schedule, _at(9, 30))[0] == TEXT
        schedule["weekday"] = {"09:00-10:00": "voice", "08:00-18:00": "text"}
        assert schedule_preference(schedule, _at(9, 30))[0] == VOICE

    def test_empty_schedule_defaults_to_voice(self, schedule):
        """No matching range should prefer voice."""
        schedule["weekday"] = {}
        assert schedule_preference(schedule, _at(10)) == (VOICE, "no matching range")

    def test_unparseable_range_skipped(self, schedule):
        """An unparseable range should be skipped."""
        schedule["weekday"] = {"whenever": "text", "09:00-10:00": "text"}
        assert schedule_preference(schedule, _at(9, 15))[0] == TEXT
        assert schedule_preference(schedule, _at(11))[0] == VOICE

    def test_converts_from_utc(self, schedule):
        """The clock is resolved in the configured timezone."""
        utc_now = datetime(2026, 10, 19, 1, 0, tzinfo=ZoneInfo("UTC"))  # 09:00 Shanghai
        assert schedule_preference(schedule, utc_now)[0] == TEXT

    def test_unknown_timezone_falls_back_to_utc(self, schedule):
        """An unknown timezone should fall back to UTC."""
        schedule["timezone"] = "Mars/Olympus"
        utc_now = datetime(2026, 10, 19, 9, 0, tzinfo=ZoneInfo("UTC"))
        assert schedule_preference(schedule, utc_now)[0] == TEXT


class TestWeekend:
    def test_weekend_preference(self, schedule):
        """Weekends should use the weekend preference."""
        assert schedule_preference(schedule, _at(10, day=24)) == (VOICE, "weekend")

    def test_weekend_text(self, schedule):
        """A text weekend preference should be honoured."""
        schedule["weekend"] = TEXT
        assert schedule_preference(schedule, _at(10, day=25)) == (TEXT, "weekend")
