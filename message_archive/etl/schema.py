"""
Schema definitions for the local index (vault.db).

The index is a disposable cache rebuilt from a backup on every scan, never
a primary store. That drives two decisions:

    1. There is no version table. The schema version is implied by column
       presence: an index built before message_count / category existed is
       detected by those columns being absent.
    2. Migration is destructive: a stale index is dropped wholesale and
       recreated empty, instead of being altered in place and backfilled.
"""

import sqlite3
from contextlib import closing
from typing import Dict, Set
import logging

logger = logging.getLogger(__name__)

# Columns whose absence marks an index built by an older schema
REQUIRED_COLUMNS: Dict[str, str] = {
    "contacts": "message_count",
    "links": "category",
}

# Every data table an older schema may have left behind ("items" predates "links")
DATA_TABLES = ("contacts", "messages", "items", "links", "meta")

SCHEMA_DDL = """
-- =============================================================================
-- meta: pipeline bookkeeping (backup_path, last_scan); overwrite per key
-- =============================================================================
CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value TEXT
);

-- =============================================================================
-- contacts: one row per handle. message_count holds messages + links and is
-- only ever written by a full recompute
-- =============================================================================
CREATE TABLE IF NOT EXISTS contacts (
    id INTEGER PRIMARY KEY,
    display TEXT,
    handle TEXT,
    message_count INTEGER DEFAULT 0
);

-- =============================================================================
-- messages: id is the message store ROWID, so re-ingestion replaces in place
-- =============================================================================
CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY,
    contact_id INTEGER,
    text TEXT,
    ts INTEGER,
    is_from_me INTEGER DEFAULT 0,
    service TEXT,
    guid TEXT
);

-- =============================================================================
-- links: append-only; links have no natural identity to upsert against
-- =============================================================================
CREATE TABLE IF NOT EXISTS links (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    contact_id INTEGER,
    ts INTEGER,
    url TEXT,
    domain TEXT,
    category TEXT,
    type TEXT
);

CREATE INDEX IF NOT EXISTS idx_messages_contact ON messages(contact_id, ts ASC);
CREATE INDEX IF NOT EXISTS idx_links_contact ON links(contact_id, ts DESC);
"""


def get_columns(conn: sqlite3.Connection, table_name: str) -> Set[str]:
    """Column names of a table; empty for a table that doesn't exist."""
    with closing(conn.cursor()) as cursor:
        cursor.execute(f"PRAGMA table_info('{table_name}');")
        return {row[1] for row in cursor.fetchall()}


def is_stale(conn: sqlite3.Connection) -> bool:
    """
    Check whether the index was built by an older schema.

    A table that doesn't exist yet is not stale; it is simply created.
    """
    for table, column in REQUIRED_COLUMNS.items():
        columns = get_columns(conn, table)
        if columns and column not in columns:
            logger.info(f"Index table '{table}' lacks '{column}'")
            return True
    return False


def migrate_if_stale(conn: sqlite3.Connection) -> bool:
    """
    Drop every data table if the index predates the current schema.

    Args:
        conn: Read-write connection to the index.

    Returns:
        True if the tables were dropped.
    """
    if not is_stale(conn):
        return False

    logger.warning("Legacy index schema detected; dropping all tables for rebuild")
    conn.executescript("".join(f"DROP TABLE IF EXISTS {table};" for table in DATA_TABLES))
    conn.commit()
    return True


def create_schema(conn: sqlite3.Connection) -> None:
    """
    Migrate a stale index and create any missing tables and indexes.

    Idempotent: safe to call on every open.

    Raises:
        sqlite3.Error: If schema creation fails.
    """
    migrate_if_stale(conn)
    try:
        conn.executescript(SCHEMA_DDL)
        conn.commit()
    except sqlite3.Error as e:
        logger.error(f"Schema creation failed: {e}")
        raise
    logger.debug("Index schema created/verified")


def verify_schema(conn: sqlite3.Connection) -> bool:
    """True if every current table exists with its required columns."""
    for table in ("meta", "contacts", "messages", "links"):
        if not get_columns(conn, table):
            return False
    return not is_stale(conn)
