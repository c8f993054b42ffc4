"""
Content-addressed blob lookup for iOS backup folders.

Backups name every file by a hash of its domain and relative path
(the "fileID"). Modern backup tools shard those files into sub-folders
named after the first two characters of the fileID; older tools keep
them all in the backup root.
"""

from pathlib import Path
from typing import Optional, Union
import logging

logger = logging.getLogger(__name__)


class FileBlobResolver:
    """Resolve a manifest fileID to the blob file on disk."""

    SHARD_PREFIX_LENGTH = 2

    def __init__(self, backup_root: Union[str, Path]):
        self.backup_root = Path(backup_root).expanduser().absolute()

    def sharded_path(self, file_id: str) -> Path:
        """Location of a blob in the sharded layout: <root>/<ab>/<abcd...>."""
        return self.backup_root / file_id[: self.SHARD_PREFIX_LENGTH] / file_id

    def flat_path(self, file_id: str) -> Path:
        """Location of a blob in the flat layout: <root>/<abcd...>."""
        return self.backup_root / file_id

    def resolve(self, file_id: Optional[str]) -> Optional[Path]:
        """
        Resolve a fileID to an absolute path.

        The sharded layout is tried first since it is by far the most common.
        A missing blob is not an error; callers treat None as "blob missing".

        Args:
            file_id: Opaque content-hash identifier from the manifest.

        Returns:
            Path to the existing blob file, or None if neither layout has it.
        """
        if not file_id:
            return None

        if len(file_id) >= self.SHARD_PREFIX_LENGTH:
            sharded = self.sharded_path(file_id)
            if sharded.is_file():
                return sharded

        flat = self.flat_path(file_id)
        if flat.is_file():
            return flat

        logger.debug(f"Blob missing for fileID {file_id}")
        return None
