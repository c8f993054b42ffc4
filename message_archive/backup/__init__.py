"""
Access to on-disk iOS backup folders.

    FileBlobResolver    fileID -> blob file (sharded or flat layout)
    BackupManifestMap   Manifest.db -> logical path lookup, sms.db location
    BackupIntegrityCheck  validation gate run before ingestion
"""

from message_archive.backup.blobs import FileBlobResolver
from message_archive.backup.manifest import (
    BackupManifestMap,
    read_manifest_entries,
    MANIFEST_DB_NAME,
    MESSAGE_STORE_FILENAME,
)
from message_archive.backup.integrity import (
    BackupIntegrityCheck,
    BackupInfo,
    IntegrityStage,
    has_sqlite_header,
    validate_backup,
)

__all__ = [
    "FileBlobResolver",
    "BackupManifestMap",
    "read_manifest_entries",
    "MANIFEST_DB_NAME",
    "MESSAGE_STORE_FILENAME",
    "BackupIntegrityCheck",
    "BackupInfo",
    "IntegrityStage",
    "has_sqlite_header",
    "validate_backup",
]
