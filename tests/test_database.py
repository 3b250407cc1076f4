"""
Tests for database/core.py - Schema creation, connections, and transactions
"""
import pytest
import sqlite3

from database import (
    get_db_connection,
    initialize_database,
    immediate_transaction,
)


@pytest.mark.unit
class TestDatabaseConnection:
    """Test database connection handling."""

    def test_get_db_connection_returns_connection(self, test_db_path, monkeypatch):
        """Test that get_db_connection returns a valid SQLite connection."""
        import database.core
        monkeypatch.setattr(database.core, 'DB_FILE', test_db_path)

        conn = get_db_connection()
        assert isinstance(conn, sqlite3.Connection)
        assert conn.row_factory == sqlite3.Row
        conn.close()

    def test_pragmas(self, db_connection):
        """Test that foreign keys and WAL are enabled."""
        assert db_connection.execute("PRAGMA foreign_keys").fetchone()[0] == 1
        assert db_connection.execute("PRAGMA journal_mode").fetchone()[0].lower() == 'wal'


@pytest.mark.unit
class TestDatabaseInitialization:
    """Test database schema creation."""

    def test_initialize_database_creates_tables(self, db_connection):
        tables = {row['name'] for row in db_connection.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        )}
        for table in ('images', 'image_metadata', 'tags', 'image_tags'):
            assert table in tables

    def test_initialize_is_idempotent(self, db_connection):
        initialize_database()
        initialize_database()
        assert db_connection.execute("SELECT COUNT(*) FROM images").fetchone()[0] == 0

    def test_tag_id_index_exists(self, db_connection):
        indexes = {row['name'] for row in db_connection.execute(
            "SELECT name FROM sqlite_master WHERE type='index' AND tbl_name='image_tags'"
        )}
        assert any('tag' in name for name in indexes)

    def test_unique_hash(self, db_connection):
        db_connection.execute(
            "INSERT INTO images (filename, s3_key, file_hash, created_at) VALUES ('a', 'k1', 'h', 'now')"
        )
        with pytest.raises(sqlite3.IntegrityError):
            db_connection.execute(
                "INSERT INTO images (filename, s3_key, file_hash, created_at) VALUES ('b', 'k2', 'h', 'now')"
            )

    def test_cascade_delete(self, db_connection):
        cur = db_connection.execute(
            "INSERT INTO images (filename, s3_key, file_hash, created_at) VALUES ('a', 'k', 'h', 'now')"
        )
        image_id = cur.lastrowid
        tag_id = db_connection.execute("INSERT INTO tags (name) VALUES ('cat')").lastrowid
        db_connection.execute(
            "INSERT INTO image_metadata (image_id, raw_comment) VALUES (?, '')", (image_id,)
        )
        db_connection.execute(
            "INSERT INTO image_tags (image_id, tag_id, source) VALUES (?, ?, 'prompt')",
            (image_id, tag_id)
        )
        db_connection.commit()

        db_connection.execute("DELETE FROM images WHERE id = ?", (image_id,))
        db_connection.commit()

        assert db_connection.execute("SELECT COUNT(*) FROM image_tags").fetchone()[0] == 0
        assert db_connection.execute("SELECT COUNT(*) FROM image_metadata").fetchone()[0] == 0
        # the tag itself survives
        assert db_connection.execute("SELECT COUNT(*) FROM tags").fetchone()[0] == 1


@pytest.mark.unit
class TestImmediateTransaction:
    """Test the BEGIN IMMEDIATE helper."""

    def test_commits(self, db_connection):
        with immediate_transaction(db_connection):
            db_connection.execute("INSERT INTO tags (name) VALUES ('a')")
        with get_db_connection() as other:
            assert other.execute("SELECT COUNT(*) FROM tags").fetchone()[0] == 1

    def test_rolls_back(self, db_connection):
        with pytest.raises(RuntimeError):
            with immediate_transaction(db_connection):
                db_connection.execute("INSERT INTO tags (name) VALUES ('a')")
                raise RuntimeError("boom")
        assert db_connection.execute("SELECT COUNT(*) FROM tags").fetchone()[0] == 0
