"""
Configuration module for Message Archive.

Handles configuration settings including the backup folder and the
location of the local index database.

Paths:
    - backup folder: an unencrypted iOS device backup (read-only source)
    - vault.db: our local index database (read-write, disposable cache)

Heuristic tuning constants for link cleaning and batching also live here.
They were chosen empirically against real backups and are not semantic
requirements, so callers may override them.
"""

import os
from pathlib import Path
from typing import Optional


class Config:
    """Configuration class for Message Archive."""

    # Well-known per-user location of the local index
    DEFAULT_INDEX_PATH = Path.home() / ".message_archive"
    DEFAULT_INDEX_DB_NAME = "vault.db"

    # Environment overrides
    INDEX_PATH_ENV = "MESSAGE_ARCHIVE_INDEX_PATH"
    BACKUP_PATH_ENV = "MESSAGE_ARCHIVE_BACKUP_PATH"

    # Rows per transaction when writing messages
    MESSAGE_BATCH_SIZE = 1000

    # Link cleaning and grouping heuristics
    MAX_URL_PATH_SEGMENTS = 5
    MAX_QUERY_LENGTH = 100
    DEDUP_KEY_SLASHES = 5

    # Maximum rows returned by a message search
    SEARCH_LIMIT = 100

    # Emit a progress line every N parsed messages
    PROGRESS_EVERY = 10000

    def __init__(
        self,
        backup_path: Optional[str] = None,
        index_db_path: Optional[str] = None,
    ):
        """
        Initialize configuration.

        Args:
            backup_path: Optional path to the backup folder. Falls back to the
                    MESSAGE_ARCHIVE_BACKUP_PATH environment variable.
            index_db_path: Optional path to the index database. Falls back to
                    MESSAGE_ARCHIVE_INDEX_PATH, then ~/.message_archive/vault.db
        """
        self._backup_path: Optional[Path] = None
        if backup_path:
            self._backup_path = Path(backup_path)
        elif os.getenv(self.BACKUP_PATH_ENV):
            self._backup_path = Path(os.environ[self.BACKUP_PATH_ENV])

        self._index_db_path: Path
        if index_db_path:
            self._index_db_path = Path(index_db_path)
        elif os.getenv(self.INDEX_PATH_ENV):
            self._index_db_path = Path(os.environ[self.INDEX_PATH_ENV])
        else:
            self._index_db_path = self.DEFAULT_INDEX_PATH / self.DEFAULT_INDEX_DB_NAME

    @property
    def backup_path(self) -> Optional[Path]:
        """Get the backup folder path."""
        return self._backup_path

    @property
    def backup_path_str(self) -> Optional[str]:
        """Get the backup folder path as a string."""
        return str(self._backup_path) if self._backup_path else None

    @property
    def index_db_path(self) -> Path:
        """Get the index database path."""
        return self._index_db_path

    @property
    def index_db_path_str(self) -> str:
        """Get the index database path as a string."""
        return str(self._index_db_path)

    def validate(self) -> bool:
        """
        Check that the backup folder is configured and exists.

        This is only a cheap pre-check; BackupIntegrityCheck does the real work.

        Returns:
            True if the backup folder exists, False otherwise.
        """
        if not self._backup_path:
            return False
        return self._backup_path.is_dir()

    def ensure_index_dir(self) -> None:
        """Create the index database parent directory if it doesn't exist."""
        self._index_db_path.parent.mkdir(parents=True, exist_ok=True)


# Global configuration instance
_config: Optional[Config] = None


def get_config(backup_path: Optional[str] = None) -> Config:
    """
    Get or create the global configuration instance.

    Args:
        backup_path: Optional path to the backup folder.

    Returns:
        Config instance.
    """
    global _config
    if _config is None or backup_path is not None:
        _config = Config(backup_path)
    return _config


def set_config(config: Config) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Config instance to use.
    """
    global _config
    _config = config
