"""Tests for DatabaseManager schema and DurableStore get/set."""

import pytest

from app.constants import KV_TABLE, SCENE_HISTORY_KEY
from app.database.db_manager import EXPECTED_TABLES, DatabaseManager
from app.database.kv_store import DurableStore, StorageUnavailableError


@pytest.fixture
def store(tmp_path):
    db = DatabaseManager(tmp_path / "test.db")
    s = DurableStore(db)
    s.initialize()
    yield s
    db.close()


class TestSchema:

    def test_tables_created(self, tmp_path):
        with DatabaseManager(tmp_path / "schema.db") as db:
            db.initialize_database()
            assert db.get_tables() == EXPECTED_TABLES

    def test_initialize_twice(self, tmp_path):
        db = DatabaseManager(tmp_path / "twice.db")
        db.initialize_database()
        db.initialize_database()
        assert KV_TABLE in db.get_tables()
        db.close()


class TestDurableStore:

    def test_missing_key_returns_default(self, store):
        assert store.get("nope") is None
        assert store.get("nope", {"entries": []}) == {"entries": []}

    def test_set_get_round_trip(self, store):
        payload = {"entries": [{"version": 1, "lights": [{"name": "Lumière"}], "cameras": []}],
                   "index": 0}
        store.set(SCENE_HISTORY_KEY, payload)
        assert store.get(SCENE_HISTORY_KEY) == payload

    def test_overwrite(self, store):
        store.set("k", 1)
        store.set("k", [2, 3])
        assert store.get("k") == [2, 3]

    def test_persists_across_connections(self, tmp_path):
        path = tmp_path / "persist.db"
        first = DurableStore(DatabaseManager(path))
        first.initialize()
        first.set("k", {"a": 1})
        first.close()

        second = DurableStore(DatabaseManager(path))
        second.initialize()
        assert second.get("k") == {"a": 1}
        second.close()

    def test_corrupt_value_raises(self, store, tmp_path):
        conn = DatabaseManager(tmp_path / "test.db").connect()
        conn.execute(f"INSERT INTO {KV_TABLE} (key, value) VALUES (?, ?)", ("bad", "{not json"))
        conn.commit()
        conn.close()
        with pytest.raises(StorageUnavailableError):
            store.get("bad")

    def test_unopenable_database(self, tmp_path):
        s = DurableStore(DatabaseManager(tmp_path / "missing" / "dir" / "x.db"))
        with pytest.raises(StorageUnavailableError):
            s.initialize()

    def test_missing_schema(self, tmp_path):
        s = DurableStore(DatabaseManager(tmp_path / "empty.db"))
        with pytest.raises(StorageUnavailableError):
            s.get("k")
        with pytest.raises(StorageUnavailableError):
            s.set("k", 1)
        s.close()
