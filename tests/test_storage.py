"""
Tests for storage backends and transaction support
"""

import pytest
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path

from retail_banking.storage import (
    InMemoryStorage, SQLiteStorage, create_storage, parse_datetime
)
from retail_banking.errors import StorageTimeoutError


# Test data
test_data = {
    "id": "test_001",
    "name": "Test Record",
    "amount": "100.50",
    "created_at": datetime.now(timezone.utc).isoformat(),
    "updated_at": datetime.now(timezone.utc).isoformat()
}


class TestStorageInterface:
    """Test basic CRUD on both backends"""

    def _exercise(self, storage):
        # Test save and load
        storage.save("test_table", "record_1", test_data)
        loaded = storage.load("test_table", "record_1")
        assert loaded == test_data

        # Test exists
        assert storage.exists("test_table", "record_1")
        assert not storage.exists("test_table", "non_existent")

        # Test load_all keeps insertion order
        storage.save("test_table", "record_2", {"id": "record_2", "data": "test"})
        all_records = storage.load_all("test_table")
        assert [r["id"] for r in all_records] == ["test_001", "record_2"]

        # Test find
        results = storage.find("test_table", {"id": "test_001"})
        assert len(results) == 1
        assert results[0]["id"] == "test_001"

        # Test count
        assert storage.count("test_table") == 2

        # Test delete
        assert storage.delete("test_table", "record_1")
        assert not storage.exists("test_table", "record_1")
        assert storage.count("test_table") == 1
        assert not storage.delete("test_table", "record_1")

        # Test find with several filters and with none
        storage.save("test_table", "record_3", {"id": "record_3", "data": "test", "n": 2})
        assert [r["id"] for r in storage.find("test_table", {"data": "test", "n": 2})] == ["record_3"]
        assert len(storage.find("test_table", {})) == 2
        assert storage.find("test_table", {"missing": "x"}) == []

    def test_in_memory_storage_basic_operations(self):
        storage = InMemoryStorage()
        self._exercise(storage)
        storage.close()

    def test_sqlite_storage_basic_operations(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = SQLiteStorage(Path(temp_dir) / "test.db")
            self._exercise(storage)
            storage.close()

    def test_in_memory_returns_copies(self):
        """Mutating a loaded record does not change the stored one"""
        storage = InMemoryStorage()
        storage.save("t", "1", {"id": "1", "balance": "10.00"})
        loaded = storage.load("t", "1")
        loaded["balance"] = "999.00"
        assert storage.load("t", "1")["balance"] == "10.00"

    def test_sqlite_persists_across_connections(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = Path(temp_dir) / "persist.db"
            storage = SQLiteStorage(db_path)
            storage.save("accounts", "a1", {"id": "a1", "balance": "50.00"})
            storage.close()

            reopened = SQLiteStorage(db_path)
            assert reopened.load("accounts", "a1") == {"id": "a1", "balance": "50.00"}
            reopened.close()

    def test_create_storage_picks_backend(self):
        assert isinstance(create_storage(":memory:"), InMemoryStorage)
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = create_storage(str(Path(temp_dir) / "bank.db"))
            assert isinstance(storage, SQLiteStorage)
            storage.close()

    def test_parse_datetime(self):
        now = datetime.now(timezone.utc)
        assert parse_datetime(now.isoformat()) == now
        assert parse_datetime(now) is now
        assert parse_datetime(None) is None


class TestAtomic:
    """Test atomic blocks: commit, rollback, nesting and lock timeout"""

    @pytest.fixture(params=["memory", "sqlite"])
    def storage(self, request, tmp_path):
        if request.param == "memory":
            backend = InMemoryStorage()
        else:
            backend = SQLiteStorage(tmp_path / "atomic.db")
        yield backend
        backend.close()

    def test_commit(self, storage):
        with storage.atomic():
            storage.save("t", "1", {"id": "1"})
        assert storage.exists("t", "1")
        assert not storage.in_transaction

    def test_rollback_on_error(self, storage):
        storage.save("t", "keep", {"id": "keep", "value": 1})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("t", "keep", {"id": "keep", "value": 2})
                storage.save("t", "new", {"id": "new"})
                raise RuntimeError("boom")

        assert storage.load("t", "keep") == {"id": "keep", "value": 1}
        assert not storage.exists("t", "new")
        assert not storage.in_transaction

    def test_nested_block_joins_outer(self, storage):
        with pytest.raises(ValueError):
            with storage.atomic():
                with storage.atomic():
                    storage.save("t", "inner", {"id": "inner"})
                assert storage.in_transaction
                raise ValueError("outer fails")

        assert not storage.exists("t", "inner")

    def test_lock_timeout(self, storage):
        holding = threading.Event()
        release = threading.Event()

        def hold_lock():
            with storage.atomic():
                holding.set()
                release.wait(5)

        worker = threading.Thread(target=hold_lock)
        worker.start()
        try:
            assert holding.wait(5)
            with pytest.raises(StorageTimeoutError):
                with storage.atomic(timeout=0.05):
                    pass
        finally:
            release.set()
            worker.join()

    def test_storage_timeout_is_internal_error(self):
        assert StorageTimeoutError.status_code == 500
