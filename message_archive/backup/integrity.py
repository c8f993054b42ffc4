"""
Backup validation run before any ingestion.

Checks are applied in a fixed order and stop at the first failure:

    1. folder_exists       - the backup folder is present
    2. manifest_present    - Manifest.db is present
    3. store_resolved      - the manifest maps sms.db to an existing blob
    4. store_readable      - sms.db starts with the plain SQLite header
    5. entities_counted    - contacts/attachments counted for display

Step 4 only reads the first 16 bytes of the file. Opening an encrypted
file with sqlite3 fails deep inside the library with unhelpful errors,
while the header comparison is side-effect free. Step 5 is informational:
if counting fails the backup is still valid, with zero counts.
"""

import sqlite3
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Tuple, Union
import logging

from message_archive.backup.manifest import MANIFEST_DB_NAME, BackupManifestMap
from message_archive.database import SourceDatabase
from message_archive.exceptions import (
    BackupStructureError,
    EncryptedBackupError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

SQLITE_HEADER = b"SQLite format 3\x00"
HEADER_LENGTH = 16

FOLDER_NOT_FOUND = "The specified folder does not exist."
NOT_A_BACKUP = "Manifest.db was not found. The selected folder is not a valid iPhone backup."
STORE_NOT_FOUND = "Messages database not found. This backup may be incomplete."
ENCRYPTED = "This backup is encrypted. Encrypted backups are not supported."


class IntegrityStage(str, Enum):
    """Steps of the validation, in the order they run."""

    FOLDER_EXISTS = "folder_exists"
    MANIFEST_PRESENT = "manifest_present"
    STORE_RESOLVED = "store_resolved"
    STORE_READABLE = "store_readable"
    ENTITIES_COUNTED = "entities_counted"


@dataclass
class BackupInfo:
    """Validation outcome consumed by front-ends before ingestion."""

    path: Path
    is_valid: bool = False
    is_encrypted: bool = False
    error_message: Optional[str] = None
    conversation_count: int = 0
    attachment_count: int = 0
    failed_stage: Optional[IntegrityStage] = None
    message_store_path: Optional[Path] = None

    def raise_for_status(self) -> None:
        """
        Raise the matching exception if the backup is not usable.

        Raises:
            EncryptedBackupError: If the message store is encrypted.
            BackupStructureError: For any other validation failure.
        """
        if self.is_valid:
            return
        reason = self.error_message or "Backup error"
        if self.is_encrypted:
            raise EncryptedBackupError(reason)
        raise BackupStructureError(reason)

    def __str__(self) -> str:
        if self.is_valid:
            return (
                f"Valid backup: {self.conversation_count} conversations, "
                f"{self.attachment_count} attachments"
            )
        return f"Invalid backup ({self.failed_stage.value if self.failed_stage else '?'}): {self.error_message}"


def has_sqlite_header(path: Union[str, Path]) -> bool:
    """
    Check whether a file starts with the unencrypted SQLite signature.

    A short read or an I/O error counts as a mismatch.
    """
    try:
        with open(path, "rb") as fp:
            header = fp.read(HEADER_LENGTH)
    except OSError as e:
        logger.debug(f"Error reading SQLite header of {path}: {e}")
        return False

    if len(header) < HEADER_LENGTH:
        logger.debug(f"Could only read {len(header)} bytes from {path}")
        return False

    if header != SQLITE_HEADER:
        logger.debug(f"Header mismatch in {path}: {header[:15]!r}")
        return False
    return True


def count_entities(message_store_path: Union[str, Path]) -> Tuple[int, int]:
    """
    Count distinct handles and attachments in the message store.

    Returns:
        (conversation_count, attachment_count); (0, 0) if counting fails.
    """
    try:
        with SourceDatabase(message_store_path) as db:
            conversations = db.scalar("SELECT COUNT(DISTINCT id) FROM handle;")
            attachments = db.scalar("SELECT COUNT(*) FROM attachment;")
            return conversations, attachments
    except (sqlite3.Error, StoreUnavailableError) as e:
        logger.warning(f"Could not count entities in message store: {e}")
        return 0, 0


class BackupIntegrityCheck:
    """Validates a backup folder before it is ingested."""

    def __init__(self, manifest_map_factory=BackupManifestMap):
        self._manifest_map_factory = manifest_map_factory

    def validate(
        self,
        backup_path: Union[str, Path],
        progress: Optional[Callable[[str], None]] = None,
    ) -> BackupInfo:
        """
        Run all checks against a backup folder.

        Never raises for an unusable backup; the reason is reported in the
        returned BackupInfo instead.

        Args:
            backup_path: Path to the backup folder.
            progress: Optional callback passed to the manifest build.

        Returns:
            BackupInfo describing a valid backup, or the first failed check.
            A valid result carries the resolved message_store_path.
        """
        root = Path(backup_path).expanduser()
        info = BackupInfo(path=root)

        if not root.is_dir():
            return self._fail(info, IntegrityStage.FOLDER_EXISTS, FOLDER_NOT_FOUND)

        if not (root / MANIFEST_DB_NAME).is_file():
            return self._fail(info, IntegrityStage.MANIFEST_PRESENT, NOT_A_BACKUP)

        try:
            manifest_map = self._manifest_map_factory(root)
            manifest_map.build(progress)
            store_path = manifest_map.get_message_store_path()
        except StoreUnavailableError as e:
            return self._fail(
                info,
                IntegrityStage.STORE_RESOLVED,
                f"An error occurred while reading the backup: {e}",
            )

        if store_path is None or not Path(store_path).is_file():
            return self._fail(info, IntegrityStage.STORE_RESOLVED, STORE_NOT_FOUND)
        info.message_store_path = Path(store_path)

        if not has_sqlite_header(store_path):
            info.is_encrypted = True
            return self._fail(info, IntegrityStage.STORE_READABLE, ENCRYPTED)

        info.conversation_count, info.attachment_count = count_entities(store_path)
        info.is_valid = True
        logger.info(f"Backup validated: {root} ({info})")
        return info

    @staticmethod
    def _fail(info: BackupInfo, stage: IntegrityStage, message: str) -> BackupInfo:
        info.is_valid = False
        info.failed_stage = stage
        info.error_message = message
        logger.warning(f"Backup validation failed at {stage.value}: {message}")
        return info


def validate_backup(backup_path: Union[str, Path]) -> BackupInfo:
    """Convenience wrapper around BackupIntegrityCheck().validate()."""
    return BackupIntegrityCheck().validate(backup_path)
