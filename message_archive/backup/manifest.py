"""
Manifest lookup for iOS backups.

Manifest.db lists every backed-up file as (fileID, domain, relativePath).
BackupManifestMap turns that table into a lookup from logical device path
to the blob file on disk, keyed both by the bare relative path and by
"<domain>-<relativePath>" because backup tools disagree on which form
they record. Keys compare case-insensitively.
"""

import sqlite3
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union
import logging

from message_archive.backup.blobs import FileBlobResolver
from message_archive.database import SourceDatabase
from message_archive.exceptions import StoreUnavailableError
from message_archive.models import FileManifestEntry

logger = logging.getLogger(__name__)

MANIFEST_DB_NAME = "Manifest.db"
MESSAGE_STORE_FILENAME = "sms.db"

# Checked in order before falling back to a filename scan
MESSAGE_STORE_KEYS = (
    "Library/SMS/sms.db",
    "HomeDomain-Library/SMS/sms.db",
)

ProgressCallback = Callable[[str], None]


def _fold(key: str) -> str:
    return key.casefold()


def read_manifest_entries(manifest_path: Union[str, Path]) -> List[FileManifestEntry]:
    """
    Read every manifest row that has a relative path.

    Args:
        manifest_path: Path to Manifest.db.

    Returns:
        Manifest entries in table order.

    Raises:
        StoreUnavailableError: If the manifest cannot be opened or queried.
    """
    query = """
        SELECT fileID, relativePath, domain
        FROM Files
        WHERE relativePath IS NOT NULL;
    """
    try:
        with SourceDatabase(manifest_path) as db:
            rows = db.execute_query(query)
    except sqlite3.Error as e:
        raise StoreUnavailableError(f"Cannot read backup manifest: {e}", manifest_path) from e

    entries = []
    for file_id, relative_path, domain in rows:
        if not relative_path or not file_id:
            continue
        entries.append(
            FileManifestEntry(
                file_id=str(file_id),
                relative_path=relative_path,
                domain=domain or "",
            )
        )
    return entries


class BackupManifestMap:
    """
    Logical path -> blob path lookup built from Manifest.db.

    The map is built once, lazily, on first lookup. Keys are compared
    case-insensitively, and later manifest rows overwrite earlier ones on
    key collisions (including the spelling reported for that key).
    """

    def __init__(
        self,
        backup_root: Union[str, Path],
        resolver: Optional[FileBlobResolver] = None,
    ):
        self.backup_root = Path(backup_root).expanduser().absolute()
        self.manifest_path = self.backup_root / MANIFEST_DB_NAME
        self.resolver = resolver or FileBlobResolver(self.backup_root)
        # casefolded key -> (spelling of the last row written, blob path)
        self._file_map: Optional[Dict[str, Tuple[str, Path]]] = None

    @property
    def is_built(self) -> bool:
        return self._file_map is not None

    def build(self, progress: Optional[ProgressCallback] = None) -> None:
        """
        Build the lookup table from the manifest. Safe to call repeatedly.

        Args:
            progress: Optional callback receiving coarse status lines.

        Raises:
            StoreUnavailableError: If the manifest cannot be read. No partial
                map is kept in that case.
        """
        if self._file_map is not None:
            return

        if progress:
            progress("Reading backup manifest...")

        file_map: Dict[str, Tuple[str, Path]] = {}
        missing = 0
        for entry in read_manifest_entries(self.manifest_path):
            absolute_path = self.resolver.resolve(entry.file_id)
            if absolute_path is None:
                missing += 1
                continue

            keys = [entry.relative_path]
            if entry.domain:
                keys.append(f"{entry.domain}-{entry.relative_path}")
            for key in keys:
                file_map[_fold(key)] = (key, absolute_path)

        self._file_map = file_map
        logger.info(
            f"Built manifest map: {len(file_map)} keys ({missing} entries without a blob)"
        )
        if progress:
            progress(f"Found {len(file_map)} files in manifest")

    def _map(self) -> Dict[str, Tuple[str, Path]]:
        if self._file_map is None:
            self.build()
        assert self._file_map is not None
        return self._file_map

    def __len__(self) -> int:
        return len(self._map())

    def __iter__(self) -> Iterator[str]:
        return (key for key, _ in self._map().values())

    def get_absolute_path(self, relative_path: str) -> Optional[Path]:
        """Look up a bare or domain-qualified relative path, ignoring case."""
        entry = self._map().get(_fold(relative_path))
        return entry[1] if entry else None

    def get_path_by_file_id(self, file_id: str) -> Optional[Path]:
        """Resolve a fileID directly, bypassing the manifest."""
        return self.resolver.resolve(file_id)

    def get_message_store_path(self) -> Optional[Path]:
        """
        Locate the message store (sms.db) blob.

        Well-known keys are tried first; after that any key ending with the
        message store filename (case-insensitive) is accepted, since manifest
        path conventions vary across backup tool versions.

        Returns:
            Path to the message store blob, or None if the backup has none.
        """
        for key in MESSAGE_STORE_KEYS:
            path = self.get_absolute_path(key)
            if path is not None:
                logger.debug(f"Found message store: {key} -> {path}")
                return path

        suffix = _fold(MESSAGE_STORE_FILENAME)
        for folded, (key, path) in self._map().items():
            if folded.endswith(suffix):
                logger.debug(f"Found message store via filename scan: {key} -> {path}")
                return path

        logger.warning("Could not find a message store in the manifest map")
        return None

    def get_attachment_paths(self) -> Dict[str, Path]:
        """
        Return a copy of the full lookup table, keyed by manifest spelling.

        Attachments live in several domains, so filtering is left to the
        caller, which knows which attachment rows it is looking for.
        """
        return {key: path for key, path in self._map().values()}
