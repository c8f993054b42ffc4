"""
Tests for the shared data model.
"""

from dataclasses import FrozenInstanceError

import pytest

from message_archive.models import (
    Contact,
    LinkCategory,
    LinkRecord,
    LinkType,
    MessageRecord,
)


class TestContact:
    """Tests for Contact display helpers."""

    def test_masked_handle(self):
        assert Contact(1, "Alice", "+14155551234").masked_handle == "********1234"

    def test_masked_short_handle(self):
        assert Contact(1, "Bob", "1234").masked_handle == "1234"

    def test_masked_empty_handle(self):
        assert Contact(1, "Nobody", "").masked_handle == "Unknown"

    def test_display_with_count(self):
        assert Contact(1, "Alice", "+1", item_count=42).display_with_count == "Alice (42)"


class TestMessageRecord:
    """Tests for MessageRecord."""

    def test_defaults(self):
        message = MessageRecord(1, 2, "hi", 0, False)

        assert message.service == "iMessage"
        assert message.guid is None

    def test_sent_at_is_utc(self):
        message = MessageRecord(1, 2, "hi", 1_705_312_800, True)

        assert message.sent_at.isoformat() == "2024-01-15T10:00:00+00:00"

    def test_immutable(self):
        message = MessageRecord(1, 2, "hi", 0, False)

        with pytest.raises(FrozenInstanceError):
            message.text = "changed"  # type: ignore[misc]


class TestLinkRecord:
    """Tests for LinkRecord."""

    def test_defaults(self):
        link = LinkRecord(1, 0, "https://example.com", "example.com")

        assert link.category == LinkCategory.OTHER
        assert link.type == LinkType.LINK
        assert link.id is None

    def test_enum_values_are_strings(self):
        """Category and type values are stored as plain text in the index."""
        assert LinkCategory.YOUTUBE.value == "YouTube"
        assert LinkCategory("Other") is LinkCategory.OTHER
        assert LinkType("Phone") is LinkType.PHONE
