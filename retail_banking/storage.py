"""
Storage Backend Module

Provides abstract storage interface and implementations for in-memory (testing)
and SQLite (persistence). All monetary values stored as Decimal strings.

Writers serialize through ``atomic()``: the block holds the backend's
re-entrant lock from the first read to the commit, so a balance read inside
it cannot be overwritten by a concurrent writer before it is written back.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from decimal import Decimal
from datetime import datetime, timezone
from enum import Enum
import copy
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager

from .errors import StorageTimeoutError


def to_storable(value: Any) -> Any:
    """Convert a Python value, including nested dicts and lists, to its JSON-storable form"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: to_storable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_storable(item) for item in value]
    return value


def parse_datetime(value: Optional[Union[str, datetime]]) -> Optional[datetime]:
    """Parse an ISO timestamp produced by ``to_storable``"""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return to_storable(asdict(self))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from dictionary"""
        data = dict(data)
        data['created_at'] = parse_datetime(data['created_at'])
        data['updated_at'] = parse_datetime(data['updated_at'])
        return cls(**data)


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace the record stored under record_id"""

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Return a copy of the record, or None"""

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Every record of a table, oldest insert first"""

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Remove a record; False when there was nothing to remove"""

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Records whose top-level fields equal every filter value, in insertion order"""

    @abstractmethod
    def count(self, table: str) -> int:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def exists(self, table: str, record_id: str) -> bool:
        return self.load(table, record_id) is not None

    # Transaction hooks called by atomic() for the outermost block only
    def begin_transaction(self) -> None:
        pass

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass

    @property
    def in_transaction(self) -> bool:
        """True while an ``atomic()`` block is open on this backend"""
        return self._depth > 0

    @contextmanager
    def atomic(self, timeout: Optional[float] = None):
        """
        Context manager for atomic operations

        Holds the backend lock for the whole block. Nested blocks join the
        outermost transaction; only the outermost one commits or rolls back.

        Args:
            timeout: Seconds to wait for the lock (None waits forever)

        Raises:
            StorageTimeoutError: If the lock is not acquired within timeout
        """
        acquired = self._lock.acquire(timeout=-1 if timeout is None else timeout)
        if not acquired:
            raise StorageTimeoutError(
                f"Could not start a storage transaction within {timeout} seconds"
            )
        try:
            outermost = self._depth == 0
            if outermost:
                self.begin_transaction()
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if outermost:
                    self.rollback()
                raise
            else:
                self._depth -= 1
                if outermost:
                    self.commit()
        finally:
            self._lock.release()


def _matches(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    return all(key in record and record[key] == value for key, value in filters.items())


class InMemoryStorage(StorageInterface):
    """Dict-of-dicts backend used by tests and ``:memory:`` configurations"""

    def __init__(self):
        super().__init__()
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None

    def _rows(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._data.setdefault(table, {})

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            # Stored through JSON so callers never share mutable state with the table
            self._rows(table)[record_id] = json.loads(json.dumps(data, default=str))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._rows(table).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(list(self._rows(table).values()))

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._rows(table).pop(record_id, None) is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy([r for r in self._rows(table).values() if _matches(r, filters)])

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._rows(table))

    def begin_transaction(self) -> None:
        """Snapshot current data so a rollback can restore it"""
        self._snapshot = copy.deepcopy(self._data)

    def commit(self) -> None:
        """Drop the rollback snapshot"""
        self._snapshot = None

    def rollback(self) -> None:
        """Restore data to the snapshot taken at transaction start"""
        if self._snapshot is not None:
            self._data = self._snapshot
            self._snapshot = None

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class SQLiteStorage(StorageInterface):
    """
    SQLite backend: one table per record type holding the record as JSON

    ``find`` filters are evaluated by SQLite with ``json_extract`` so lookups
    such as accounts by number or ledger rows by account do not load the
    whole table into Python.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        super().__init__()
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._tables: set = set()

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    def _write_done(self) -> None:
        # Inside atomic() the outermost block commits
        if not self.in_transaction:
            self._connection.commit()

    def _table(self, table: str) -> str:
        if table not in self._tables:
            self._connection.execute(
                f"CREATE TABLE IF NOT EXISTS {table} ("
                "id TEXT PRIMARY KEY, data TEXT NOT NULL, "
                "created_at TEXT NOT NULL, updated_at TEXT NOT NULL)"
            )
            self._connection.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_created_at ON {table}(created_at)"
            )
            self._write_done()
            self._tables.add(table)
        return table

    def _select(self, table: str, where: str = "", params: tuple = ()) -> List[Dict[str, Any]]:
        with self._lock:
            rows = self._connection.execute(
                f"SELECT data FROM {self._table(table)} {where} ORDER BY created_at, rowid", params
            ).fetchall()
        return [json.loads(row['data']) for row in rows]

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            name = self._table(table)
            # Replacing a row keeps its first created_at so insertion order is stable
            self._connection.execute(
                f"INSERT OR REPLACE INTO {name} (id, data, created_at, updated_at) VALUES "
                f"(?, ?, COALESCE((SELECT created_at FROM {name} WHERE id = ?), ?), ?)",
                (record_id, json.dumps(data, default=str), record_id, now, now)
            )
            self._write_done()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        rows = self._select(table, "WHERE id = ?", (record_id,))
        return rows[0] if rows else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        return self._select(table)

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            cursor = self._connection.execute(
                f"DELETE FROM {self._table(table)} WHERE id = ?", (record_id,)
            )
            self._write_done()
            return cursor.rowcount > 0

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        if not filters:
            return self._select(table)
        # Field names come from code, values are bound
        clauses = " AND ".join(f"json_extract(data, '$.{key}') = ?" for key in filters)
        return self._select(table, f"WHERE {clauses}", tuple(filters.values()))

    def count(self, table: str) -> int:
        with self._lock:
            row = self._connection.execute(f"SELECT COUNT(*) AS n FROM {self._table(table)}").fetchone()
        return row['n']

    def commit(self) -> None:
        with self._lock:
            self._connection.commit()

    def rollback(self) -> None:
        with self._lock:
            self._connection.rollback()
            # Tables created inside the rolled-back transaction are gone
            self._tables.clear()

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(db_path: Union[str, Path]) -> StorageInterface:
    """Pick a backend for a configured database path"""
    if str(db_path) == ":memory:":
        return InMemoryStorage()
    return SQLiteStorage(db_path)
