"""SQLite database manager — connection, schema creation, and initialization.

A single key-value table holds the editor's durable state:
  kv (key TEXT PRIMARY KEY, value TEXT JSON)
"""

import sqlite3
from pathlib import Path

from app.constants import DB_FILENAME, KV_TABLE

_SCHEMA_SQL = f"""
-- Key-value store (JSON values)
CREATE TABLE IF NOT EXISTS {KV_TABLE} (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
"""

EXPECTED_TABLES = [KV_TABLE]


class DatabaseManager:
    """Manages SQLite database connection and schema lifecycle."""

    def __init__(self, db_path: Path | str | None = None):
        if db_path is None:
            db_path = Path.cwd() / DB_FILENAME
        self._db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    @property
    def db_path(self) -> Path:
        return self._db_path

    def connect(self) -> sqlite3.Connection:
        """Open (or return existing) database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self._db_path))
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def initialize_database(self) -> None:
        """Create all tables if they don't exist."""
        conn = self.connect()
        conn.executescript(_SCHEMA_SQL)
        conn.commit()

    def get_tables(self) -> list[str]:
        """Return list of table names in the database."""
        conn = self.connect()
        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        )
        return [row[0] for row in cursor.fetchall()]

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
