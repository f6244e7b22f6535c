"""
Tests for time parsing and duration helpers.
"""

import pytest

from trimmer.services.time_utils import compute_duration, format_seconds, parse_time_to_seconds


class TestParseTimeToSeconds:
    """Tests for parse_time_to_seconds."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("00:03:01", 181),
            ("04:05", 245),
            ("1:00:00", 3600),
            ("59", 59),
            ("00:00:10.750", 10),
        ],
    )
    def test_parses_segments_right_to_left(self, text, expected):
        assert parse_time_to_seconds(text) == expected

    def test_empty_is_zero(self):
        """Empty and missing input count as zero seconds."""
        assert parse_time_to_seconds("") == 0
        assert parse_time_to_seconds(None) == 0

    def test_garbage_segment_counts_as_zero(self):
        """The parser never raises; bad segments contribute nothing."""
        assert parse_time_to_seconds("aa:10") == 10
        assert parse_time_to_seconds("xyz") == 0

    def test_fraction_in_minutes_segment(self):
        assert parse_time_to_seconds("01:02.5") == 62


class TestComputeDuration:
    """Tests for compute_duration."""

    def test_positive_window(self):
        assert compute_duration("00:03:01", "00:04:05") == 64

    def test_reversed_window_is_negative(self):
        assert compute_duration("00:02:00", "00:01:00") == -60

    def test_equal_times_are_zero(self):
        assert compute_duration("01:00", "01:00") == 0


class TestFormatSeconds:
    def test_formats_hours_minutes_seconds(self):
        assert format_seconds(3725) == "01:02:05"

    def test_negative_clamps_to_zero(self):
        assert format_seconds(-5) == "00:00:00"
