"""
Exception types for Message Archive.

Only structural problems are raised. Schema differences between OS
versions and per-row recovery misses are handled where they occur and are
never surfaced as exceptions.
"""

from pathlib import Path
from typing import Optional, Union


class MessageArchiveError(Exception):
    """Base class for all Message Archive errors."""


class StoreUnavailableError(MessageArchiveError):
    """A backup database (manifest or message store) could not be opened or queried."""

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class BackupStructureError(MessageArchiveError):
    """The backup folder, its manifest or its message store is missing."""

    is_encrypted = False

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class EncryptedBackupError(BackupStructureError):
    """The message store does not carry a plain SQLite header."""

    is_encrypted = True


class StaleIndexError(MessageArchiveError):
    """The local index was built by an older schema and needs a rescan."""

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None
