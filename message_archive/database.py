"""
Read-only access to the SQLite databases inside a backup.

Both the manifest (Manifest.db) and the message store (sms.db) are opened
through SourceDatabase. The backup is never written to.
"""

import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, Iterator, List, Optional, Set, Tuple, Union
import logging

from message_archive.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


def open_readonly(path: Union[str, Path]) -> sqlite3.Connection:
    """
    Open a SQLite file in read-only mode.

    Args:
        path: Path to the database file.

    Returns:
        SQLite connection.

    Raises:
        StoreUnavailableError: If the file is missing or cannot be opened.
    """
    path = Path(path)
    if not path.is_file():
        raise StoreUnavailableError(f"Database file not found: {path}", path)

    uri = f"{path.absolute().as_uri()}?mode=ro"
    try:
        return sqlite3.connect(uri, uri=True)
    except sqlite3.Error as e:
        raise StoreUnavailableError(f"Cannot open database {path}: {e}", path) from e


class SourceDatabase:
    """
    Read-only connection manager for a database inside the backup.

    Usage:
        with SourceDatabase(path) as db:
            columns = db.get_columns_for_table("message")
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._connection: Optional[sqlite3.Connection] = None

    def __enter__(self) -> "SourceDatabase":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self) -> sqlite3.Connection:
        """
        Establish the read-only connection.

        Raises:
            StoreUnavailableError: If the database cannot be opened.
        """
        if self._connection is None:
            self._connection = open_readonly(self.path)
            logger.debug(f"Opened source database: {self.path}")
        return self._connection

    def close(self) -> None:
        """Close the connection if open."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._connection is None:
            raise RuntimeError("Database connection not established. Call connect() first.")
        return self._connection

    def get_table_names(self) -> List[str]:
        """Get all table names in the database."""
        with closing(self.connection.cursor()) as cursor:
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            return [row[0] for row in cursor.fetchall()]

    def get_columns_for_table(self, table_name: str) -> Set[str]:
        """
        Get the column names of a table.

        Returns an empty set for tables that don't exist, which lets callers
        probe schema differences between OS versions without try/except.
        """
        if table_name not in self.get_table_names():
            return set()
        with closing(self.connection.cursor()) as cursor:
            cursor.execute(f"PRAGMA table_info('{table_name}');")
            return {row[1] for row in cursor.fetchall()}

    def execute_query(
        self, query: str, parameters: Optional[Tuple[Any, ...]] = None
    ) -> List[Tuple[Any, ...]]:
        """Execute a query and return all rows."""
        with closing(self.connection.cursor()) as cursor:
            cursor.execute(query, parameters or ())
            return cursor.fetchall()

    def iter_query(
        self, query: str, parameters: Optional[Tuple[Any, ...]] = None
    ) -> Iterator[Tuple[Any, ...]]:
        """Execute a query and yield rows one at a time (for the large message table)."""
        with closing(self.connection.cursor()) as cursor:
            cursor.execute(query, parameters or ())
            yield from cursor

    def scalar(self, query: str, parameters: Optional[Tuple[Any, ...]] = None) -> int:
        """Execute a COUNT-style query and return its first column (0 when empty)."""
        rows = self.execute_query(query, parameters)
        if not rows or rows[0][0] is None:
            return 0
        return int(rows[0][0])
