"""
Ingestion from an iOS backup's message store into the local index.

    message store (sms.db, read-only)   ->   local index (vault.db)
    ├── handle                          ->   ├── contacts
    ├── message.text / attributedBody   ->   ├── messages
    └── message.* (text and blobs)      ->   ├── links
                                             └── meta

Key Design Decisions:
    1. The message store is treated as an unstable external schema (read-only)
    2. Binary blob recovery is heuristic and never raises
    3. Every scan is a full rebuild of a disposable index

The pipeline itself lives in message_archive.etl.pipeline; it depends on
the index store, which depends on this package, so it is not re-exported.
"""

from message_archive.etl.timestamps import apple_to_unix, APPLE_EPOCH_OFFSET
from message_archive.etl.recovery import recover_text, RecoveryResult, RecoveryStatus
from message_archive.etl.links import (
    clean_url,
    extract_domain,
    categorize_url,
    dedup_key,
)
from message_archive.etl.extractors import MessageStoreParser, resolve_message_text
from message_archive.etl.schema import create_schema, migrate_if_stale, verify_schema

__all__ = [
    # Timestamps
    "apple_to_unix",
    "APPLE_EPOCH_OFFSET",
    # Recovery
    "recover_text",
    "RecoveryResult",
    "RecoveryStatus",
    # Links
    "clean_url",
    "extract_domain",
    "categorize_url",
    "dedup_key",
    # Extraction
    "MessageStoreParser",
    "resolve_message_text",
    # Schema
    "create_schema",
    "migrate_if_stale",
    "verify_schema",
]
