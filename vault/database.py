"""Database schema and connection management for SQLite."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from vault.config import DATABASE_PATH

BUSY_TIMEOUT_SECONDS = 30.0


def init_database() -> None:
    """
    Initialize database and create tables if they don't exist.
    """
    db_path = Path(DATABASE_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    with get_db_connection() as conn:
        cursor = conn.cursor()

        cursor.execute("PRAGMA journal_mode=WAL")

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS stored_files (
                file_id TEXT PRIMARY KEY,
                checksum TEXT NOT NULL,
                original_name TEXT NOT NULL,
                mime_type TEXT NOT NULL,
                size_bytes INTEGER NOT NULL,
                is_image INTEGER NOT NULL DEFAULT 0,
                has_optimized_variant INTEGER NOT NULL DEFAULT 0,
                optimized_size_bytes INTEGER,
                optimized_format TEXT,
                compression_ratio INTEGER,
                has_original_variant INTEGER NOT NULL DEFAULT 0,
                is_deleted INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                deleted_at TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS replication_records (
                file_id TEXT PRIMARY KEY,
                status TEXT NOT NULL DEFAULT 'PENDING',
                priority TEXT NOT NULL DEFAULT 'NORMAL',
                attempts INTEGER NOT NULL DEFAULT 0,
                last_error TEXT,
                next_attempt_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                synced_at TEXT,
                FOREIGN KEY(file_id) REFERENCES stored_files(file_id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_replication_queue
            ON replication_records(status, priority, updated_at)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_stored_files_checksum ON stored_files(checksum)
        """)

        conn.commit()


@contextmanager
def get_db_connection() -> Generator[sqlite3.Connection, None, None]:
    """
    Context manager for database connections.
    """
    conn = sqlite3.connect(DATABASE_PATH, timeout=BUSY_TIMEOUT_SECONDS)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def use_connection(conn: Optional[sqlite3.Connection] = None) -> Generator[sqlite3.Connection, None, None]:
    """
    Yield ``conn`` untouched when the caller owns a transaction, otherwise
    open a connection, commit on success and roll back on error.
    """
    if conn is not None:
        yield conn
        return

    with get_db_connection() as owned:
        try:
            yield owned
            owned.commit()
        except Exception:
            owned.rollback()
            raise
