"""
Extraction from the message store (sms.db).

This module reads contacts, messages and shared links from the message
store in a read-only, schema-defensive manner.

Design Decisions:
    1. We never trust the message store schema to be stable across OS versions:
       optional message columns are probed and selected as NULL when absent
    2. Timestamps are converted to Unix seconds immediately (see timestamps.py)
    3. Every message ends with non-empty text: plain text, then recovered
       attributedBody text, then the first link in attributedBody, then a
       placeholder
    4. Link URLs are cleaned before they leave this module; raw candidates
       never reach the index
    5. Recovery misses on a single row are never errors
"""

import sqlite3
from typing import Callable, Iterable, List, Optional, Set, Union
from pathlib import Path
import logging

from message_archive.config import Config
from message_archive.database import SourceDatabase
from message_archive.etl.links import (
    categorize_url,
    clean_url,
    extract_domain,
    find_blob_urls,
    find_phone_numbers,
    find_urls,
    unique_casefold,
)
from message_archive.etl.recovery import recover_text
from message_archive.etl.timestamps import apple_to_unix
from message_archive.exceptions import StoreUnavailableError
from message_archive.models import (
    ATTACHMENT_PLACEHOLDER,
    DEFAULT_SERVICE,
    Contact,
    LinkCategory,
    LinkRecord,
    LinkType,
    MessageRecord,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

# Domain recorded for extracted phone numbers
PHONE_DOMAIN = "Phone"

CONTACTS_QUERY = """
    SELECT
        h.ROWID,
        h.id,
        COALESCE(h.uncanonicalized_id, h.id) AS display,
        COUNT(m.ROWID) AS message_count
    FROM handle h
    LEFT JOIN message m ON h.ROWID = m.handle_id
    GROUP BY h.ROWID
    ORDER BY message_count DESC;
"""

CONTACTS_FALLBACK_QUERY = "SELECT ROWID, id FROM handle;"

MESSAGE_COLUMNS = (
    "handle_id",
    "text",
    "date",
    "is_from_me",
    "service",
    "guid",
    "attributedBody",
)

LINK_COLUMNS = ("handle_id", "text", "date", "attributedBody", "payload_data")


def decode_blob(value: Union[bytes, str, None]) -> Optional[str]:
    """Lossy UTF-8 decode of a binary column; invalid bytes become U+FFFD."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return bytes(value).decode("utf-8", errors="replace")


def resolve_message_text(text: Optional[str], attributed_body: Optional[bytes]) -> str:
    """
    Pick the display text of a message.

    Order: plain text column, text recovered from attributedBody, the first
    URL found in attributedBody, then the attachment placeholder.

    Args:
        text: message.text value.
        attributed_body: message.attributedBody value.

    Returns:
        Non-empty display text.
    """
    if text:
        return text

    if attributed_body:
        result = recover_text(attributed_body)
        if result.ok and result.text:
            return result.text

        for candidate in find_urls(decode_blob(attributed_body)):
            cleaned = clean_url(candidate)
            if cleaned:
                return cleaned

    return ATTACHMENT_PLACEHOLDER


def _select_list(available: Set[str], wanted: Iterable[str]) -> str:
    return ", ".join(col if col in available else f"NULL AS {col}" for col in wanted)


class MessageStoreParser:
    """
    Reads contacts, messages and links out of a message store file.

    Each call opens its own read-only connection; nothing is cached between
    calls, so a parser is cheap to create and safe to reuse.
    """

    def __init__(
        self,
        message_store_path: Union[str, Path],
        extract_phone_numbers: bool = False,
        progress_every: int = Config.PROGRESS_EVERY,
    ):
        self.message_store_path = Path(message_store_path)
        self.extract_phone_numbers = extract_phone_numbers
        self.progress_every = progress_every

    def _open(self) -> SourceDatabase:
        return SourceDatabase(self.message_store_path)

    def get_contacts(self) -> List[Contact]:
        """
        List every handle with its message count, busiest first.

        Falls back to a handle-only listing with zero counts when the primary
        query fails on an unfamiliar schema.

        Returns:
            List of Contact objects (possibly empty, never raises for schema
            differences).
        """
        with self._open() as db:
            try:
                rows = db.execute_query(CONTACTS_QUERY)
            except sqlite3.Error as e:
                logger.warning(f"Primary contacts query failed ({e}); using handle-only fallback")
                return self._get_contacts_fallback(db)

        contacts = [
            Contact(
                id=int(rowid),
                display_name=display or handle or "",
                handle=handle or "",
                item_count=int(count or 0),
            )
            for rowid, handle, display, count in rows
        ]
        logger.info(f"Extracted {len(contacts)} contacts from message store")
        return contacts

    def _get_contacts_fallback(self, db: SourceDatabase) -> List[Contact]:
        try:
            rows = db.execute_query(CONTACTS_FALLBACK_QUERY)
        except sqlite3.Error as e:
            logger.warning(f"Handle table unreadable ({e}); no contacts extracted")
            return []

        contacts = [
            Contact(id=int(rowid), display_name=handle or "", handle=handle or "")
            for rowid, handle in rows
        ]
        logger.info(f"Extracted {len(contacts)} contacts (fallback, zero counts)")
        return contacts

    def get_messages(self, progress: Optional[ProgressCallback] = None) -> List[MessageRecord]:
        """
        Read every message with resolved text and a Unix timestamp.

        Args:
            progress: Optional callback receiving coarse status lines.

        Returns:
            List of MessageRecord objects in table order.

        Raises:
            StoreUnavailableError: If the message table cannot be queried.
        """
        if progress:
            progress("Reading messages from database...")

        messages = []
        with self._open() as db:
            columns = db.get_columns_for_table("message")
            query = f"SELECT ROWID, {_select_list(columns, MESSAGE_COLUMNS)} FROM message;"
            try:
                for row in db.iter_query(query):
                    messages.append(self._to_message(row))
                    if progress and len(messages) % self.progress_every == 0:
                        progress(f"Processed {len(messages)} messages...")
            except sqlite3.Error as e:
                raise StoreUnavailableError(
                    f"Cannot read messages: {e}", self.message_store_path
                ) from e

        logger.info(f"Extracted {len(messages)} messages from message store")
        return messages

    @staticmethod
    def _to_message(row) -> MessageRecord:
        rowid, handle_id, text, date, is_from_me, service, guid, attributed_body = row
        return MessageRecord(
            id=int(rowid),
            contact_id=int(handle_id) if handle_id is not None else 0,
            text=resolve_message_text(text, attributed_body),
            timestamp=apple_to_unix(date),
            is_from_me=bool(is_from_me),
            service=service or DEFAULT_SERVICE,
            guid=guid,
        )

    def extract_links(self, progress: Optional[ProgressCallback] = None) -> List[LinkRecord]:
        """
        Collect cleaned links shared in every message.

        Candidates come from the text column and from the attributedBody and
        payload_data blobs. They are deduplicated case-insensitively per
        message before and after cleaning.

        Args:
            progress: Optional callback receiving coarse status lines.

        Returns:
            List of LinkRecord objects (ids unassigned).

        Raises:
            StoreUnavailableError: If the message table cannot be queried.
        """
        if progress:
            progress("Extracting links from messages...")

        links: List[LinkRecord] = []
        with self._open() as db:
            columns = db.get_columns_for_table("message")
            query = f"SELECT {_select_list(columns, LINK_COLUMNS)} FROM message;"
            try:
                for handle_id, text, date, attributed_body, payload_data in db.iter_query(query):
                    contact_id = int(handle_id) if handle_id is not None else 0
                    timestamp = apple_to_unix(date)
                    links.extend(
                        self._links_for_message(
                            contact_id, timestamp, text, attributed_body, payload_data
                        )
                    )
            except sqlite3.Error as e:
                raise StoreUnavailableError(
                    f"Cannot read links: {e}", self.message_store_path
                ) from e

        logger.info(f"Extracted {len(links)} links from message store")
        if progress:
            progress(f"Found {len(links)} items (links/entities)")
        return links

    def _links_for_message(
        self,
        contact_id: int,
        timestamp: int,
        text: Optional[str],
        attributed_body: Optional[bytes],
        payload_data: Optional[bytes],
    ) -> List[LinkRecord]:
        candidates = find_urls(text)
        candidates += find_blob_urls(decode_blob(attributed_body))
        candidates += find_blob_urls(decode_blob(payload_data))

        records = []
        for url in unique_casefold(clean_url(c) for c in unique_casefold(candidates)):
            if not url.strip():
                continue
            domain = extract_domain(url)
            records.append(
                LinkRecord(
                    contact_id=contact_id,
                    timestamp=timestamp,
                    url=url,
                    domain=domain,
                    category=categorize_url(domain),
                )
            )

        if self.extract_phone_numbers and text:
            for number in find_phone_numbers(text):
                records.append(
                    LinkRecord(
                        contact_id=contact_id,
                        timestamp=timestamp,
                        url=number,
                        domain=PHONE_DOMAIN,
                        category=LinkCategory.OTHER,
                        type=LinkType.PHONE,
                    )
                )
        return records
