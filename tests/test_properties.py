"""
Property-based tests using Hypothesis.

These tests verify invariant properties across a wide range of inputs,
helping to find edge cases that might be missed by example-based tests.
"""

from datetime import date, timedelta

import pytest

from hypothesis import assume, given, strategies as st

from message_archive.analysis import analyze_messages, longest_streak
from message_archive.etl.links import clean_url, dedup_key, extract_domain
from message_archive.etl.recovery import REJECT_MARKERS, recover_text
from message_archive.etl.timestamps import (
    APPLE_EPOCH_OFFSET,
    apple_to_unix,
    unix_to_apple_nanoseconds,
    unix_to_apple_seconds,
)
from message_archive.models import MessageRecord
from message_archive.utils import format_item_count, format_timestamp

# Characters that show up around URLs in lossily decoded archive blobs
NOISY_URL_ALPHABET = st.sampled_from(
    list("abcxyz019/:.?=&-_%$+@ ") + ["\x01", "\x84", "\ufffd", "https://", "__kIM", "www."]
)

unix_times = st.integers(
    min_value=APPLE_EPOCH_OFFSET - 500_000_000,
    max_value=APPLE_EPOCH_OFFSET + 2_000_000_000,
)


# =============================================================================
# URL Cleaning Properties
# =============================================================================


@pytest.mark.property
class TestCleanUrlProperties:
    """Property-based tests for URL cleaning."""

    @given(st.text(max_size=200))
    def test_clean_url_is_idempotent(self, url: str):
        """Cleaning an already cleaned URL changes nothing."""
        once = clean_url(url)
        assert clean_url(once) == once

    @given(st.lists(NOISY_URL_ALPHABET, max_size=60).map("".join))
    def test_clean_url_is_idempotent_on_noisy_urls(self, url: str):
        once = clean_url(url)
        assert clean_url(once) == once

    @given(st.text(max_size=200))
    def test_clean_url_output_is_substring(self, url: str):
        """Cleaning only ever removes characters from the ends."""
        assert clean_url(url) in url

    @given(st.lists(NOISY_URL_ALPHABET, max_size=60).map("".join))
    def test_extract_domain_never_crashes(self, url: str):
        assert isinstance(extract_domain(url), str)


@pytest.mark.property
class TestDedupKeyProperties:
    """Property-based tests for dedup_key."""

    @given(st.text(max_size=200))
    def test_key_is_prefix(self, url: str):
        assert url.startswith(dedup_key(url))

    @given(st.text(max_size=200))
    def test_key_is_idempotent(self, url: str):
        key = dedup_key(url)
        assert dedup_key(key) == key

    @given(st.text(alphabet="ab/", max_size=50))
    def test_key_has_at_most_five_slashes(self, url: str):
        assert dedup_key(url).count("/") <= 5


# =============================================================================
# Timestamp Properties
# =============================================================================


@pytest.mark.property
class TestTimestampProperties:
    """Property-based tests for Apple timestamp conversion."""

    @given(unix_times)
    def test_seconds_encoding_round_trips(self, unix_seconds: int):
        assert apple_to_unix(unix_to_apple_seconds(unix_seconds)) == unix_seconds

    @given(unix_times)
    def test_nanoseconds_encoding_round_trips(self, unix_seconds: int):
        # Within ten seconds of the epoch the nanosecond value is short
        # enough to read as seconds
        assume(abs(unix_seconds - APPLE_EPOCH_OFFSET) >= 10)
        assert apple_to_unix(unix_to_apple_nanoseconds(unix_seconds)) == unix_seconds

    @given(unix_times)
    def test_both_encodings_agree(self, unix_seconds: int):
        assume(abs(unix_seconds - APPLE_EPOCH_OFFSET) >= 10)
        assert apple_to_unix(unix_to_apple_seconds(unix_seconds)) == apple_to_unix(
            unix_to_apple_nanoseconds(unix_seconds)
        )

    @given(st.integers(min_value=-(10**19), max_value=10**19))
    def test_any_integer_converts(self, raw: int):
        assert isinstance(apple_to_unix(raw), int)


# =============================================================================
# Recovery Properties
# =============================================================================


@pytest.mark.property
class TestRecoverTextProperties:
    """Property-based tests for attributedBody recovery."""

    @given(st.binary(max_size=400))
    def test_never_raises_on_arbitrary_bytes(self, blob: bytes):
        result = recover_text(blob)
        assert result.ok == bool(result.text)

    @given(st.binary(max_size=100), st.binary(max_size=200), st.binary(max_size=100))
    def test_archive_shaped_blobs(self, head: bytes, payload: bytes, tail: bytes):
        blob = head + b"streamtyped" + b"NSString" + payload + b"NSDictionary" + tail
        result = recover_text(blob)

        if result.ok:
            assert result.text == result.text.strip()
            assert not any(marker in result.text for marker in REJECT_MARKERS)


# =============================================================================
# Analytics Properties
# =============================================================================

messages_strategy = st.lists(
    st.builds(
        MessageRecord,
        id=st.integers(min_value=1, max_value=10_000),
        contact_id=st.just(1),
        text=st.one_of(st.text(max_size=40), st.just('Loved "ok"')),
        timestamp=st.integers(min_value=1_600_000_000, max_value=1_700_000_000),
        is_from_me=st.booleans(),
    ),
    max_size=30,
)


@pytest.mark.property
class TestAnalyticsProperties:
    """Property-based tests for conversation analytics."""

    @given(messages_strategy, st.integers(min_value=0, max_value=20))
    def test_totals_add_up(self, messages, link_count: int):
        analytics = analyze_messages("Someone", messages, link_count)

        if not messages and not link_count:
            assert analytics is None
            return
        assert analytics.total_messages == analytics.sent_by_me + analytics.sent_by_them
        assert analytics.total_messages == len(messages) + link_count

    @given(st.lists(st.integers(min_value=0, max_value=60), max_size=40))
    def test_streak_bounded_by_distinct_days(self, offsets):
        days = [date(2024, 1, 1) + timedelta(days=n) for n in offsets]

        length, start, end = longest_streak(days)

        assert length <= len(set(days))
        if length:
            assert (end - start).days == length - 1


# =============================================================================
# Formatting Properties
# =============================================================================


@pytest.mark.property
class TestFormattingProperties:
    """Property-based tests for display helpers."""

    @given(st.integers(min_value=0, max_value=10**9))
    def test_item_count_is_non_empty(self, count: int):
        assert format_item_count(count)

    @given(st.integers(min_value=0, max_value=4_000_000_000))
    def test_timestamp_shape(self, timestamp: int):
        assert len(format_timestamp(timestamp)) == len("2024-01-15 10:00:00")
