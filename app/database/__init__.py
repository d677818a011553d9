"""Database layer — SQLite connection, schema, and the key-value store."""

from app.database.db_manager import DatabaseManager
from app.database.kv_store import DurableStore, StorageUnavailableError

__all__ = [
    "DatabaseManager",
    "DurableStore",
    "StorageUnavailableError",
]
