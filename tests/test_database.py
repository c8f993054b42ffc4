"""
Tests for database.py SourceDatabase class.

Tests read-only connection management and query execution.
"""

import sqlite3
from pathlib import Path

import pytest

from message_archive.database import SourceDatabase, open_readonly
from message_archive.exceptions import StoreUnavailableError


@pytest.fixture
def sample_db(tmp_path: Path) -> Path:
    """Create a sample SQLite database for testing."""
    db_path = tmp_path / "test.db"
    conn = sqlite3.connect(str(db_path))
    try:
        conn.executescript(
            """
            CREATE TABLE message (
                rowid INTEGER PRIMARY KEY,
                text TEXT,
                date INTEGER
            );

            CREATE TABLE handle (
                rowid INTEGER PRIMARY KEY,
                id TEXT
            );

            INSERT INTO message (rowid, text, date) VALUES
                (1, 'Hello', 1000000000),
                (2, 'World', 2000000000);

            INSERT INTO handle (rowid, id) VALUES
                (1, '+14155551234');
        """
        )
        conn.commit()
    finally:
        conn.close()
    return db_path


class TestOpenReadonly:
    """Tests for open_readonly()."""

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(StoreUnavailableError) as exc_info:
            open_readonly(tmp_path / "missing.db")
        assert exc_info.value.path == tmp_path / "missing.db"

    def test_directory_is_not_a_database(self, tmp_path: Path):
        with pytest.raises(StoreUnavailableError):
            open_readonly(tmp_path)

    def test_writes_are_rejected(self, sample_db: Path):
        conn = open_readonly(sample_db)
        try:
            with pytest.raises(sqlite3.OperationalError):
                conn.execute("DELETE FROM message")
        finally:
            conn.close()


class TestSourceDatabaseConnection:
    """Tests for connect/close and the context manager."""

    def test_connection_before_connect(self, sample_db: Path):
        db = SourceDatabase(sample_db)

        with pytest.raises(RuntimeError):
            _ = db.connection

    def test_connect_is_reused(self, sample_db: Path):
        db = SourceDatabase(sample_db)
        try:
            assert db.connect() is db.connect()
        finally:
            db.close()

    def test_context_manager_closes(self, sample_db: Path):
        with SourceDatabase(sample_db) as db:
            assert db.connection is not None

        assert db._connection is None

    def test_close_twice(self, sample_db: Path):
        db = SourceDatabase(sample_db)
        db.connect()

        db.close()
        db.close()

    def test_missing_database(self, tmp_path: Path):
        with pytest.raises(StoreUnavailableError):
            with SourceDatabase(tmp_path / "sms.db"):
                pass


class TestSourceDatabaseQueries:
    """Tests for the query helpers."""

    def test_table_names(self, sample_db: Path):
        with SourceDatabase(sample_db) as db:
            assert set(db.get_table_names()) == {"message", "handle"}

    def test_columns(self, sample_db: Path):
        with SourceDatabase(sample_db) as db:
            assert db.get_columns_for_table("message") == {"rowid", "text", "date"}

    def test_columns_of_unknown_table(self, sample_db: Path):
        with SourceDatabase(sample_db) as db:
            assert db.get_columns_for_table("chat") == set()

    def test_execute_query_with_parameters(self, sample_db: Path):
        with SourceDatabase(sample_db) as db:
            rows = db.execute_query("SELECT text FROM message WHERE rowid = ?", (2,))

        assert rows == [("World",)]

    def test_iter_query(self, sample_db: Path):
        with SourceDatabase(sample_db) as db:
            texts = [row[0] for row in db.iter_query("SELECT text FROM message ORDER BY rowid")]

        assert texts == ["Hello", "World"]

    def test_scalar(self, sample_db: Path):
        with SourceDatabase(sample_db) as db:
            assert db.scalar("SELECT COUNT(*) FROM message") == 2
            assert db.scalar("SELECT MAX(date) FROM message WHERE rowid > 5") == 0
