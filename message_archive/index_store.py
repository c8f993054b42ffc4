"""
Local index store (vault.db).

IndexStore owns the single read-write connection to the index. The whole
ingestion pass and every reader go through one instance, strictly
sequentially; there is no locking here.

A read-only store never migrates or creates tables. It refuses an index
whose schema is stale or incomplete with StaleIndexError.

Writes:
    - contacts: INSERT OR REPLACE by id
    - messages: INSERT OR REPLACE by id, in batches of MESSAGE_BATCH_SIZE,
      one transaction per batch
    - links: plain appends, one transaction per call
    - contact counts: full recompute (messages + links), never incremental

Reads:
    - messages ascending by time, paginated in SQL
    - links descending by time, deduplicated by dedup_key() and then
      paginated in memory
    - search: substring match over message text, newest first, capped
"""

import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union
import logging

from message_archive.config import Config
from message_archive.etl.links import dedup_key
from message_archive.database import open_readonly
from message_archive.etl.schema import create_schema, verify_schema
from message_archive.exceptions import StaleIndexError, StoreUnavailableError
from message_archive.models import Contact, LinkCategory, LinkRecord, LinkType, MessageRecord

logger = logging.getLogger(__name__)

_MESSAGE_FIELDS = "id, contact_id, text, ts, is_from_me, service, guid"
_LINK_FIELDS = "id, contact_id, ts, url, domain, category, type"


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _chunks(items: Iterable[Any], size: int) -> Iterator[List[Any]]:
    batch: List[Any] = []
    for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


def _row_to_message(row) -> MessageRecord:
    rowid, contact_id, text, ts, is_from_me, service, guid = row
    return MessageRecord(
        id=rowid,
        contact_id=contact_id,
        text=text,
        timestamp=ts,
        is_from_me=bool(is_from_me),
        service=service,
        guid=guid,
    )


def _parse_enum(enum_cls, value, default):
    try:
        return enum_cls(value)
    except ValueError:
        return default


def _row_to_link(row) -> LinkRecord:
    rowid, contact_id, ts, url, domain, category, link_type = row
    return LinkRecord(
        id=rowid,
        contact_id=contact_id,
        timestamp=ts,
        url=url,
        domain=domain,
        category=_parse_enum(LinkCategory, category, LinkCategory.OTHER),
        type=_parse_enum(LinkType, link_type, LinkType.LINK),
    )


class IndexStore:
    """
    Read-write access to the local index.

    Usage:
        with IndexStore(path) as store:
            contacts = store.list_contacts()
    """

    def __init__(
        self,
        db_path: Optional[Union[str, Path]] = None,
        batch_size: int = Config.MESSAGE_BATCH_SIZE,
        read_only: bool = False,
    ):
        """
        Args:
            db_path: Index file. Defaults to the configured index path
                (~/.message_archive/vault.db unless overridden).
            batch_size: Messages per write transaction.
            read_only: Open without migrating; the file must already hold
                a current schema.
        """
        if db_path is None:
            db_path = Config().index_db_path
        self.db_path = Path(db_path).expanduser()
        self.batch_size = batch_size
        self.read_only = read_only
        self._connection: Optional[sqlite3.Connection] = None

    def __enter__(self) -> "IndexStore":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def initialize(self) -> None:
        """
        Open the index, migrating a stale schema and creating missing tables.

        Raises:
            StoreUnavailableError: If the index file cannot be opened.
            StaleIndexError: If a read-only index lacks the current schema.
        """
        if self._connection is not None:
            return
        if self.read_only:
            self._open_read_only()
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._connection = sqlite3.connect(str(self.db_path), check_same_thread=False)
            create_schema(self._connection)
        except sqlite3.Error as e:
            self.close()
            raise StoreUnavailableError(f"Cannot open index {self.db_path}: {e}", self.db_path) from e
        logger.info(f"Opened index: {self.db_path}")

    def _open_read_only(self) -> None:
        self._connection = open_readonly(self.db_path)
        try:
            current = verify_schema(self._connection)
        except sqlite3.Error as e:
            self.close()
            raise StoreUnavailableError(f"Cannot read index {self.db_path}: {e}", self.db_path) from e
        if not current:
            self.close()
            raise StaleIndexError(
                f"Index {self.db_path} predates the current schema", self.db_path
            )
        logger.info(f"Opened index read-only: {self.db_path}")

    def close(self) -> None:
        """Close the connection if open."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._connection is None:
            raise RuntimeError("Index not initialized. Call initialize() first.")
        return self._connection

    def _query(self, query: str, parameters: tuple = ()) -> List[tuple]:
        with closing(self.connection.cursor()) as cursor:
            cursor.execute(query, parameters)
            return cursor.fetchall()

    def _count(self, query: str, parameters: tuple = ()) -> int:
        rows = self._query(query, parameters)
        return int(rows[0][0]) if rows and rows[0][0] is not None else 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def clear_all(self) -> None:
        """Delete every row from every table."""
        with self.connection:
            for table in ("contacts", "messages", "links", "meta"):
                self.connection.execute(f"DELETE FROM {table};")
        logger.info("Cleared index")

    def set_meta(self, key: str, value: str) -> None:
        with self.connection:
            self.connection.execute(
                "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?);", (key, value)
            )

    def get_meta(self, key: str) -> Optional[str]:
        rows = self._query("SELECT value FROM meta WHERE key = ?;", (key,))
        return rows[0][0] if rows else None

    def insert_contacts(self, contacts: Iterable[Contact]) -> int:
        """Upsert contacts by id. Returns the number written."""
        rows = [(c.id, c.display_name, c.handle, c.item_count) for c in contacts]
        with self.connection:
            self.connection.executemany(
                "INSERT OR REPLACE INTO contacts (id, display, handle, message_count) "
                "VALUES (?, ?, ?, ?);",
                rows,
            )
        logger.info(f"Loaded {len(rows)} contacts")
        return len(rows)

    def insert_messages(self, messages: Iterable[MessageRecord]) -> int:
        """
        Upsert messages by id in fixed-size batches.

        Each batch is one transaction; a failure rolls back only the
        current batch.

        Returns:
            Number of messages written.
        """
        query = (
            "INSERT OR REPLACE INTO messages (id, contact_id, text, ts, is_from_me, service, guid) "
            "VALUES (?, ?, ?, ?, ?, ?, ?);"
        )
        total = 0
        for batch in _chunks(messages, self.batch_size):
            with self.connection:
                self.connection.executemany(
                    query,
                    [
                        (
                            m.id,
                            m.contact_id,
                            m.text,
                            m.timestamp,
                            1 if m.is_from_me else 0,
                            m.service,
                            m.guid,
                        )
                        for m in batch
                    ],
                )
            total += len(batch)
            logger.debug(f"Committed message batch ({total} so far)")
        logger.info(f"Loaded {total} messages")
        return total

    def insert_links(self, links: Iterable[LinkRecord]) -> int:
        """Append links in a single transaction. Returns the number written."""
        rows = [
            (link.contact_id, link.timestamp, link.url, link.domain, link.category.value, link.type.value)
            for link in links
        ]
        with self.connection:
            self.connection.executemany(
                "INSERT INTO links (contact_id, ts, url, domain, category, type) "
                "VALUES (?, ?, ?, ?, ?, ?);",
                rows,
            )
        logger.info(f"Loaded {len(rows)} links")
        return len(rows)

    def update_contact_counts(self) -> None:
        """Recompute every contact's item count as messages + links."""
        with self.connection:
            self.connection.execute(
                """
                UPDATE contacts SET message_count = (
                    SELECT COUNT(*) FROM messages WHERE messages.contact_id = contacts.id
                ) + (
                    SELECT COUNT(*) FROM links WHERE links.contact_id = contacts.id
                );
                """
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_contacts(self) -> List[Contact]:
        """All contacts, highest item count first."""
        rows = self._query(
            "SELECT id, display, handle, message_count FROM contacts "
            "ORDER BY message_count DESC;"
        )
        return [
            Contact(id=rowid, display_name=display or "", handle=handle or "", item_count=count or 0)
            for rowid, display, handle, count in rows
        ]

    def get_contact(self, contact_id: int) -> Optional[Contact]:
        rows = self._query(
            "SELECT id, display, handle, message_count FROM contacts WHERE id = ?;",
            (contact_id,),
        )
        if not rows:
            return None
        rowid, display, handle, count = rows[0]
        return Contact(id=rowid, display_name=display or "", handle=handle or "", item_count=count or 0)

    def list_messages(self, contact_id: int, page: int = 0, page_size: int = 100) -> List[MessageRecord]:
        """One page of a conversation, oldest first."""
        rows = self._query(
            f"SELECT {_MESSAGE_FIELDS} FROM messages WHERE contact_id = ? "
            "ORDER BY ts ASC LIMIT ? OFFSET ?;",
            (contact_id, page_size, page * page_size),
        )
        return [_row_to_message(row) for row in rows]

    def get_messages_for_analytics(self, contact_id: int) -> List[MessageRecord]:
        """Every message of a conversation, oldest first."""
        rows = self._query(
            f"SELECT {_MESSAGE_FIELDS} FROM messages WHERE contact_id = ? ORDER BY ts ASC;",
            (contact_id,),
        )
        return [_row_to_message(row) for row in rows]

    def get_message_count(self, contact_id: int, include_sent: bool = True) -> int:
        query = "SELECT COUNT(*) FROM messages WHERE contact_id = ?"
        if not include_sent:
            query += " AND is_from_me = 0"
        return self._count(query + ";", (contact_id,))

    def list_links(self, contact_id: int, page: int = 0, page_size: int = 50) -> List[LinkRecord]:
        """
        One page of a contact's links, newest first, near-duplicates removed.

        Links sharing a dedup_key() collapse to the most recent one. Paging
        applies to the deduplicated sequence.
        """
        rows = self._query(
            f"SELECT {_LINK_FIELDS} FROM links WHERE contact_id = ? ORDER BY ts DESC;",
            (contact_id,),
        )

        seen = set()
        unique = []
        for row in rows:
            link = _row_to_link(row)
            key = dedup_key(link.url)
            if key in seen:
                continue
            seen.add(key)
            unique.append(link)

        start = page * page_size
        return unique[start : start + page_size]

    def get_link_count(self, contact_id: int) -> int:
        return self._count("SELECT COUNT(*) FROM links WHERE contact_id = ?;", (contact_id,))

    def search_messages(self, text: str, limit: int = Config.SEARCH_LIMIT) -> List[MessageRecord]:
        """
        Messages whose text contains `text`, newest first.

        LIKE wildcards in the input are matched literally. A blank query
        matches nothing.
        """
        if not text or not text.strip():
            return []
        rows = self._query(
            f"SELECT {_MESSAGE_FIELDS} FROM messages WHERE text LIKE ? ESCAPE '\\' "
            "ORDER BY ts DESC LIMIT ?;",
            (f"%{_escape_like(text)}%", limit),
        )
        return [_row_to_message(row) for row in rows]

    def get_status(self) -> Dict[str, Any]:
        """Row counts and scan metadata for status displays."""
        return {
            "index_path": str(self.db_path),
            "contact_count": self._count("SELECT COUNT(*) FROM contacts;"),
            "message_count": self._count("SELECT COUNT(*) FROM messages;"),
            "link_count": self._count("SELECT COUNT(*) FROM links;"),
            "backup_path": self.get_meta("backup_path"),
            "last_scan": self.get_meta("last_scan"),
        }
