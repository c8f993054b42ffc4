"""
Pytest fixtures for Message Archive tests.

This module provides shared fixtures for testing backup access and the
ingestion pipeline, including synthetic backups with test data.

Fixture Categories:
    1. Message store fixtures (sample sms.db, legacy sms.db)
    2. Backup fixtures (sharded, flat, encrypted, scenario backups)
    3. Index fixtures (empty index path, populated IndexStore)

Design Notes:
    - Fixtures use tmp_path for isolation between tests
    - The sample sms.db mimics the device schema (handle, message, attachment)
    - Backups are built the way backup tools lay them out: Manifest.db plus
      blobs named by fileID
"""

import shutil
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple

import pytest

from message_archive.index_store import IndexStore
from message_archive.models import Contact, LinkCategory, LinkRecord, MessageRecord

# Apple's epoch: 2001-01-01 00:00:00 UTC
APPLE_EPOCH_OFFSET = 978307200

# fileID that backup tools assign to HomeDomain-Library/SMS/sms.db
SMS_DB_FILE_ID = "3d0d7e5fb2ce288813306e4d4636395e047a3d28"

# Blob used by the end-to-end scenario: text is NULL, body only in attributedBody
SCENARIO_FILE_ID = "abcd1234ef567890abcd1234ef567890abcd1234"
SCENARIO_BLOB = (
    b"...streamtyped...NSString\x01+*Check "
    b"https://example.com/a/b/c/d/e/f?x=1\x86\x84NSDictionary..."
)


def datetime_to_apple_ns(dt: datetime) -> int:
    """Convert datetime to the nanosecond `date` encoding."""
    return int(dt.timestamp() - APPLE_EPOCH_OFFSET) * 1_000_000_000


def datetime_to_apple_seconds(dt: datetime) -> int:
    """Convert datetime to the older seconds `date` encoding."""
    return int(dt.timestamp()) - APPLE_EPOCH_OFFSET


BASE_TIME = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)
BASE_UNIX = int(BASE_TIME.timestamp())


# =============================================================================
# Builders
# =============================================================================


def create_message_store(
    db_path: Path,
    handles: Sequence[Tuple] = (),
    messages: Sequence[Tuple] = (),
    attachments: int = 0,
    with_uncanonicalized_id: bool = True,
) -> Path:
    """
    Create an sms.db with the given rows.

    Args:
        db_path: File to create.
        handles: (ROWID, id, uncanonicalized_id) tuples; the last item is
            ignored when with_uncanonicalized_id is False.
        messages: (ROWID, handle_id, text, date, is_from_me, service, guid,
            attributedBody, payload_data) tuples.
        attachments: Number of attachment rows to create.
        with_uncanonicalized_id: Create the uncanonicalized_id column, which
            older OS versions lack.

    Returns:
        db_path.
    """
    extra_column = ",\n                uncanonicalized_id TEXT" if with_uncanonicalized_id else ""
    conn = sqlite3.connect(str(db_path))
    try:
        conn.executescript(
            f"""
            CREATE TABLE handle (
                ROWID INTEGER PRIMARY KEY,
                id TEXT NOT NULL,
                service TEXT{extra_column}
            );

            CREATE TABLE message (
                ROWID INTEGER PRIMARY KEY,
                guid TEXT,
                text TEXT,
                handle_id INTEGER,
                service TEXT,
                date INTEGER,
                is_from_me INTEGER DEFAULT 0,
                attributedBody BLOB,
                payload_data BLOB
            );

            CREATE TABLE attachment (
                ROWID INTEGER PRIMARY KEY,
                filename TEXT
            );
            """
        )
        if with_uncanonicalized_id:
            conn.executemany(
                "INSERT INTO handle (ROWID, id, uncanonicalized_id) VALUES (?, ?, ?)",
                handles,
            )
        else:
            conn.executemany(
                "INSERT INTO handle (ROWID, id) VALUES (?, ?)",
                [h[:2] for h in handles],
            )
        conn.executemany(
            "INSERT INTO message (ROWID, handle_id, text, date, is_from_me, service, guid, "
            "attributedBody, payload_data) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            messages,
        )
        conn.executemany(
            "INSERT INTO attachment (ROWID, filename) VALUES (?, ?)",
            [(i + 1, f"~/Library/SMS/Attachments/{i:02d}/IMG_{i}.jpg") for i in range(attachments)],
        )
        conn.commit()
    finally:
        conn.close()
    return db_path


def create_manifest(backup_root: Path, entries: Iterable[Tuple[str, str, str]]) -> Path:
    """
    Create Manifest.db with (fileID, domain, relativePath) rows.

    Returns:
        Path to Manifest.db.
    """
    manifest_path = backup_root / "Manifest.db"
    conn = sqlite3.connect(str(manifest_path))
    try:
        conn.executescript(
            """
            CREATE TABLE Files (
                fileID TEXT PRIMARY KEY,
                domain TEXT,
                relativePath TEXT,
                flags INTEGER,
                file BLOB
            );
            """
        )
        conn.executemany(
            "INSERT INTO Files (fileID, domain, relativePath, flags) VALUES (?, ?, ?, 1)",
            list(entries),
        )
        conn.commit()
    finally:
        conn.close()
    return manifest_path


def place_blob(backup_root: Path, file_id: str, source: Path, sharded: bool = True) -> Path:
    """Copy a file into the backup under its fileID."""
    target_dir = backup_root / file_id[:2] if sharded else backup_root
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / file_id
    shutil.copyfile(source, target)
    return target


def create_backup(
    backup_root: Path,
    message_store: Path,
    sharded: bool = True,
    file_id: str = SMS_DB_FILE_ID,
    relative_path: str = "Library/SMS/sms.db",
    domain: Optional[str] = "HomeDomain",
) -> Path:
    """Lay out a backup folder holding one message store."""
    backup_root.mkdir(parents=True, exist_ok=True)
    create_manifest(backup_root, [(file_id, domain, relative_path)])
    place_blob(backup_root, file_id, message_store, sharded=sharded)
    return backup_root


# =============================================================================
# Sample sms.db fixtures
# =============================================================================


SAMPLE_HANDLES = [
    (1, "+14155551234", "(415) 555-1234"),
    (2, "friend@example.com", None),
    (3, "+14155550000", None),  # No messages
]


def _sample_messages():
    ns = datetime_to_apple_ns
    day = 86400
    return [
        (1, 1, "Hello!", ns(BASE_TIME), 0, "iMessage", "guid-1", None, None),
        (2, 1, "Hi there!", ns(BASE_TIME) + 60 * 10**9, 1, "iMessage", "guid-2", None, None),
        (
            3,
            1,
            "Watch this https://www.youtube.com/watch?v=abc123",
            ns(BASE_TIME) + day * 10**9,
            0,
            "iMessage",
            "guid-3",
            None,
            None,
        ),
        # Older seconds encoding
        (4, 2, "Meeting tomorrow?", datetime_to_apple_seconds(BASE_TIME), 0, "SMS", "guid-4", None, None),
        (
            5,
            2,
            None,
            ns(BASE_TIME) + 2 * day * 10**9,
            1,
            None,
            "guid-5",
            b"streamtyped\x81\xe8\x03\x84\x01@\x84\x84\x84\x12NSAttributedString\x00\x84\x84"
            b"\x08NSObject\x00\x85\x92\x84\x84\x84\x08NSString\x01\x94\x84\x01+\x0bSee you soon"
            b"\x86\x84\x02iI\x01\x0c\x92\x84\x84\x84\x0cNSDictionary\x00",
            None,
        ),
        # No text, no blob: attachment only
        (6, 2, None, ns(BASE_TIME) + 3 * day * 10**9, 0, "iMessage", "guid-6", None, None),
    ]


@pytest.fixture
def sample_message_store(tmp_path: Path) -> Path:
    """
    Create a minimal sms.db with test data.

    Handle 1 has three messages (one with a YouTube link), handle 2 has
    three (one recovered from attributedBody, one attachment only) and
    handle 3 has none.

    Returns:
        Path to the sample sms.db file.
    """
    return create_message_store(
        tmp_path / "sms.db",
        handles=SAMPLE_HANDLES,
        messages=_sample_messages(),
        attachments=2,
    )


@pytest.fixture
def legacy_message_store(tmp_path: Path) -> Path:
    """sms.db whose handle table predates uncanonicalized_id."""
    return create_message_store(
        tmp_path / "legacy_sms.db",
        handles=SAMPLE_HANDLES,
        messages=_sample_messages(),
        with_uncanonicalized_id=False,
    )


@pytest.fixture
def empty_message_store(tmp_path: Path) -> Path:
    """sms.db with the schema but no rows."""
    return create_message_store(tmp_path / "empty_sms.db")


# =============================================================================
# Backup fixtures
# =============================================================================


@pytest.fixture
def sample_backup(tmp_path: Path, sample_message_store: Path) -> Path:
    """Backup folder in the sharded layout holding the sample sms.db."""
    return create_backup(tmp_path / "backup", sample_message_store)


@pytest.fixture
def flat_backup(tmp_path: Path, sample_message_store: Path) -> Path:
    """Backup folder in the older flat layout."""
    return create_backup(tmp_path / "flat_backup", sample_message_store, sharded=False)


@pytest.fixture
def encrypted_backup(tmp_path: Path) -> Path:
    """Backup whose sms.db blob does not start with the SQLite header."""
    ciphertext = tmp_path / "encrypted.bin"
    ciphertext.write_bytes(bytes(range(256)) * 4)
    return create_backup(tmp_path / "encrypted_backup", ciphertext)


@pytest.fixture
def scenario_backup(tmp_path: Path) -> Path:
    """
    Flat-layout backup with one message whose body lives only in attributedBody.

    The manifest records the store under the bare relative path, without a
    domain.
    """
    store = create_message_store(
        tmp_path / "scenario_sms.db",
        handles=[(1, "+15550001111", None)],
        messages=[
            (1, 1, None, 700_000_000_000_000_000, 0, "iMessage", "guid-s1", SCENARIO_BLOB, None),
        ],
    )
    return create_backup(
        tmp_path / "scenario_backup",
        store,
        sharded=False,
        file_id=SCENARIO_FILE_ID,
        domain=None,
    )


# =============================================================================
# Index fixtures
# =============================================================================


@pytest.fixture
def index_path(tmp_path: Path) -> Path:
    """Path for a fresh index (not created yet)."""
    return tmp_path / "index" / "vault.db"


@pytest.fixture
def populated_store(index_path: Path):
    """
    IndexStore with two contacts, a handful of messages and links.

    Yields:
        Initialized IndexStore; closed after the test.
    """
    store = IndexStore(index_path)
    store.initialize()

    store.insert_contacts(
        [
            Contact(id=1, display_name="Alice", handle="+14155551234"),
            Contact(id=2, display_name="bob@example.com", handle="bob@example.com"),
        ]
    )
    store.insert_messages(
        [
            MessageRecord(1, 1, "Hello Alice", BASE_UNIX, False),
            MessageRecord(2, 1, "Hi! 100% sure", BASE_UNIX + 60, True),
            MessageRecord(3, 1, "under_score test", BASE_UNIX + 120, False),
            MessageRecord(4, 2, "Hello Bob", BASE_UNIX + 30, True),
        ]
    )
    store.insert_links(
        [
            LinkRecord(1, BASE_UNIX, "https://example.com/a/b/c/d", "example.com"),
            LinkRecord(1, BASE_UNIX + 10, "https://example.com/a/b/x", "example.com"),
            LinkRecord(
                1,
                BASE_UNIX + 20,
                "https://youtu.be/xyz",
                "youtu.be",
                LinkCategory.YOUTUBE,
            ),
        ]
    )
    store.update_contact_counts()
    yield store
    store.close()
