"""
Data model shared by the parser, the index store and its consumers.

All records are plain dataclasses. Messages and links are produced once by
the parser and never mutated afterwards; a contact's item_count is derived
by the index store, never maintained by hand.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

# Placeholder used when a message has no recoverable text at all
ATTACHMENT_PLACEHOLDER = "[Attachment]"

# Service reported when the message store leaves it blank
DEFAULT_SERVICE = "iMessage"


class LinkCategory(str, Enum):
    """Consumer sites we group shared links by."""

    YOUTUBE = "YouTube"
    SPOTIFY = "Spotify"
    INSTAGRAM = "Instagram"
    TWITTER = "Twitter"
    REDDIT = "Reddit"
    OTHER = "Other"


class LinkType(str, Enum):
    """Kind of entity recorded in the links table."""

    LINK = "Link"
    PHONE = "Phone"


@dataclass(frozen=True)
class FileManifestEntry:
    """One row of the backup manifest's Files table."""

    file_id: str
    relative_path: str
    domain: str = ""


@dataclass
class Contact:
    """A conversation counterpart (one row of the message store's handle table)."""

    id: int
    display_name: str
    handle: str
    item_count: int = 0

    @property
    def masked_handle(self) -> str:
        """Handle with all but the last four characters replaced by '*'."""
        if not self.handle:
            return "Unknown"
        if len(self.handle) <= 4:
            return self.handle
        return "*" * (len(self.handle) - 4) + self.handle[-4:]

    @property
    def display_with_count(self) -> str:
        return f"{self.display_name} ({self.item_count})"


@dataclass(frozen=True)
class MessageRecord:
    """A single message with its text already resolved (never empty)."""

    id: int
    contact_id: int
    text: str
    timestamp: int  # Unix seconds
    is_from_me: bool
    service: str = DEFAULT_SERVICE
    guid: Optional[str] = None

    @property
    def sent_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)


@dataclass(frozen=True)
class LinkRecord:
    """A cleaned URL (or other entity) shared in a conversation."""

    contact_id: int
    timestamp: int  # Unix seconds
    url: str
    domain: str
    category: LinkCategory = LinkCategory.OTHER
    type: LinkType = LinkType.LINK
    id: Optional[int] = None  # Assigned by the index store
