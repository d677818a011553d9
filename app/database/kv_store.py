"""Durable key-value store — JSON values in the ``kv`` table.

Storage failures are reported as StorageUnavailableError so callers can
fall back to in-memory state without crashing.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Any

from app.constants import KV_TABLE
from app.database.db_manager import DatabaseManager


class StorageUnavailableError(RuntimeError):
    """The durable store could not be opened, read or written."""


class DurableStore:
    """get/set of JSON-serializable values by key."""

    def __init__(self, db: DatabaseManager):
        self._db = db

    def initialize(self) -> None:
        """Open the database and create the schema.

        Raises:
            StorageUnavailableError: Database cannot be opened or created.
        """
        try:
            self._db.initialize_database()
        except (sqlite3.Error, OSError) as exc:
            raise StorageUnavailableError(
                f"Cannot open {self._db.db_path}: {exc}"
            ) from exc

    def close(self) -> None:
        self._db.close()

    def get(self, key: str, default: Any = None) -> Any:
        """Load a value.

        Args:
            key: Record key.
            default: Returned when the key is absent.

        Raises:
            StorageUnavailableError: Database error or undecodable value.
        """
        try:
            conn = self._db.connect()
            row = conn.execute(
                f"SELECT value FROM {KV_TABLE} WHERE key = ?", (key,)
            ).fetchone()
        except (sqlite3.Error, OSError) as exc:
            raise StorageUnavailableError(f"Failed to read {key!r}: {exc}") from exc
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as exc:
            raise StorageUnavailableError(f"Corrupt value for {key!r}") from exc

    def set(self, key: str, value: Any) -> None:
        """Insert or replace a value.

        Raises:
            StorageUnavailableError: Database error.
        """
        text = json.dumps(value, ensure_ascii=False)
        try:
            conn = self._db.connect()
            conn.execute(
                f"""INSERT INTO {KV_TABLE} (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE
                    SET value = excluded.value, updated_at = excluded.updated_at""",
                (key, text, datetime.now().isoformat()),
            )
            conn.commit()
        except (sqlite3.Error, OSError) as exc:
            raise StorageUnavailableError(f"Failed to write {key!r}: {exc}") from exc

