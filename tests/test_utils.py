"""
Tests for utils.py functions.

Tests utility functions for formatting and terminal output.
"""

import pytest

from message_archive.utils import Colors, format_item_count, format_timestamp, truncate


class TestColors:
    """Tests for Colors class."""

    def test_colors_are_ansi_escape_codes(self):
        for name in ("HEADER", "OKBLUE", "OKCYAN", "OKGREEN", "WARNING", "FAIL", "BOLD"):
            assert getattr(Colors, name).startswith("\033[")

    def test_endc_resets_formatting(self):
        assert Colors.ENDC == "\033[0m"


class TestFormatTimestamp:
    """Tests for format_timestamp function."""

    def test_unix_epoch(self):
        assert format_timestamp(0) == "1970-01-01 00:00:00"

    def test_known_date(self):
        """Timestamps are shown in UTC regardless of local timezone."""
        assert format_timestamp(1_705_312_800) == "2024-01-15 10:00:00"

    def test_apple_epoch(self):
        assert format_timestamp(978_307_200) == "2001-01-01 00:00:00"


class TestFormatItemCount:
    """Tests for format_item_count function."""

    @pytest.mark.parametrize(
        "count, expected",
        [
            (0, "0"),
            (999, "999"),
            (1000, "1.0K"),
            (1234, "1.2K"),
            (999_999, "1000.0K"),
            (1_000_000, "1.0M"),
            (3_460_000, "3.5M"),
        ],
    )
    def test_formatting(self, count, expected):
        assert format_item_count(count) == expected


class TestTruncate:
    """Tests for truncate function."""

    def test_short_text_unchanged(self):
        assert truncate("hello") == "hello"

    def test_long_text_gets_ellipsis(self):
        result = truncate("x" * 100, width=10)
        assert result == "xxxxxxx..."
        assert len(result) == 10

    def test_whitespace_collapsed(self):
        assert truncate("line one\n\nline   two") == "line one line two"

    def test_tiny_width(self):
        assert truncate("abcdef", width=2) == "..."
