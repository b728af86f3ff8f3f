"""
Storage Backend Module

Provides abstract storage interface and implementations for in-memory (testing)
and SQLite (persistence). Monetary values are stored as integer cents so that
balance changes are single-statement atomic adds.

The store is the only shared mutable resource in the system. Everything the
core needs from it is expressed here: point lookup, filtered scans ordered by
the store-assigned id, insert-with-assigned-id, atomic delta updates,
delete-by-filter, and an ``atomic()`` block for multi-statement units.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union, Tuple
import sqlite3
import json
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from contextlib import contextmanager

from .exceptions import StorageError, DuplicateRecordError
from .logging_config import get_logger


logger = get_logger("securebank.storage")


@dataclass(frozen=True)
class TableSchema:
    """Column layout and constraints of one table"""
    name: str
    columns: Tuple[str, ...]
    unique: Tuple[Tuple[str, ...], ...] = ()
    counters: Tuple[str, ...] = ()  # integer columns that accept delta updates


TABLES: Dict[str, TableSchema] = {
    "users": TableSchema(
        name="users",
        columns=(
            "email", "password_hash", "password_salt", "first_name", "last_name",
            "phone_number", "date_of_birth", "ssn_hash", "ssn_salt",
            "address", "city", "state", "zip_code", "created_at",
        ),
        unique=(("email",),),
    ),
    "accounts": TableSchema(
        name="accounts",
        columns=("user_id", "account_number", "account_type", "balance_cents", "status", "created_at"),
        unique=(("account_number",), ("user_id", "account_type")),
        counters=("balance_cents",),
    ),
    "transactions": TableSchema(
        name="transactions",
        columns=("account_id", "type", "amount_cents", "description", "status", "created_at", "processed_at"),
    ),
    "sessions": TableSchema(
        name="sessions",
        columns=("user_id", "token", "expires_at", "created_at"),
        unique=(("token",),),
    ),
}


SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    password_salt TEXT NOT NULL,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    phone_number TEXT NOT NULL,
    date_of_birth TEXT NOT NULL,
    ssn_hash TEXT NOT NULL,
    ssn_salt TEXT NOT NULL,
    address TEXT NOT NULL,
    city TEXT NOT NULL,
    state TEXT NOT NULL,
    zip_code TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS accounts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id),
    account_number TEXT NOT NULL UNIQUE,
    account_type TEXT NOT NULL,
    balance_cents INTEGER NOT NULL DEFAULT 0 CHECK (balance_cents >= 0),
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT NOT NULL,
    UNIQUE (user_id, account_type)
);

CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    account_id INTEGER NOT NULL REFERENCES accounts(id),
    type TEXT NOT NULL,
    amount_cents INTEGER NOT NULL CHECK (amount_cents > 0),
    description TEXT,
    status TEXT NOT NULL DEFAULT 'completed',
    created_at TEXT NOT NULL,
    processed_at TEXT
);

CREATE TABLE IF NOT EXISTS sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id),
    token TEXT NOT NULL UNIQUE,
    expires_at TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_accounts_user_id ON accounts(user_id);
CREATE INDEX IF NOT EXISTS idx_transactions_account_id ON transactions(account_id, id);
CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON sessions(user_id);
"""


_UNIQUE_FAILURE = re.compile(r"UNIQUE constraint failed: (.+)$")


def _schema(table: str) -> TableSchema:
    """Look up a table schema, rejecting unknown tables"""
    try:
        return TABLES[table]
    except KeyError:
        raise StorageError(f"Unknown table: {table}")


def _check_columns(schema: TableSchema, columns) -> None:
    """Reject column names that are not part of the schema"""
    allowed = set(schema.columns) | {"id"}
    unknown = [column for column in columns if column not in allowed]
    if unknown:
        raise StorageError(f"Unknown column(s) for {schema.name}: {', '.join(unknown)}")


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def insert(self, table: str, data: Dict[str, Any]) -> int:
        """Insert a record and return its store-assigned, strictly increasing id"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: int) -> Optional[Dict[str, Any]]:
        """Load a record by id"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Optional[Dict[str, Any]] = None,
             order_by: str = "id", descending: bool = False,
             limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Find records matching all filters, ordered by one column"""
        pass

    @abstractmethod
    def increment(self, table: str, record_id: int, column: str, delta: int) -> bool:
        """Atomically add delta to an integer column; False if the row is absent"""
        pass

    @abstractmethod
    def delete(self, table: str, filters: Dict[str, Any]) -> int:
        """Delete records matching all filters and return how many were removed"""
        pass

    @abstractmethod
    def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count records matching filters"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def find_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Return the lowest-id record matching filters, or None"""
        records = self.find(table, filters, limit=1)
        return records[0] if records else None

    def exists(self, table: str, filters: Dict[str, Any]) -> bool:
        """Check if any record matches filters"""
        return self.find_one(table, filters) is not None

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._data: Dict[str, Dict[int, Dict[str, Any]]] = {name: {} for name in TABLES}
        self._sequences: Dict[str, int] = {name: 0 for name in TABLES}
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshot = None
        self._closed = False

    @staticmethod
    def _copy(record: Dict[str, Any]) -> Dict[str, Any]:
        # Deep copy to prevent external mutation
        return json.loads(json.dumps(record, default=str))

    def _table(self, table: str) -> Dict[int, Dict[str, Any]]:
        if self._closed:
            raise StorageError("Storage is closed")
        _schema(table)
        return self._data[table]

    @staticmethod
    def _matches(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
        for key, value in filters.items():
            if record.get(key) != value:
                return False
        return True

    def insert(self, table: str, data: Dict[str, Any]) -> int:
        """Insert a record into memory"""
        schema = _schema(table)
        _check_columns(schema, data.keys())
        with self._lock:
            rows = self._table(table)
            record = {column: data.get(column) for column in schema.columns}

            for columns in schema.unique:
                values = tuple(record[column] for column in columns)
                if any(value is None for value in values):
                    continue
                for existing in rows.values():
                    if tuple(existing[column] for column in columns) == values:
                        qualified = ", ".join(f"{table}.{column}" for column in columns)
                        raise DuplicateRecordError(
                            f"UNIQUE constraint failed: {qualified}", table, columns
                        )

            self._sequences[table] += 1
            record_id = self._sequences[table]
            record["id"] = record_id
            rows[record_id] = self._copy(record)
            return record_id

    def load(self, table: str, record_id: int) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        with self._lock:
            record = self._table(table).get(record_id)
            if record:
                return self._copy(record)
            return None

    def find(self, table: str, filters: Optional[Dict[str, Any]] = None,
             order_by: str = "id", descending: bool = False,
             limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        schema = _schema(table)
        filters = filters or {}
        _check_columns(schema, list(filters) + [order_by])
        with self._lock:
            results = [
                self._copy(record)
                for record in self._table(table).values()
                if self._matches(record, filters)
            ]
        results.sort(key=lambda record: (record.get(order_by) is None, record.get(order_by), record["id"]),
                     reverse=descending)
        if limit is not None:
            results = results[:limit]
        return results

    def increment(self, table: str, record_id: int, column: str, delta: int) -> bool:
        """Add delta to an integer column under the store lock"""
        schema = _schema(table)
        if column not in schema.counters:
            raise StorageError(f"Column {table}.{column} does not accept delta updates")
        with self._lock:
            record = self._table(table).get(record_id)
            if record is None:
                return False
            if record[column] + delta < 0:
                raise StorageError(f"CHECK constraint failed: {table}.{column}")
            record[column] += delta
            return True

    def delete(self, table: str, filters: Dict[str, Any]) -> int:
        """Delete matching records from memory"""
        schema = _schema(table)
        _check_columns(schema, filters.keys())
        with self._lock:
            rows = self._table(table)
            doomed = [record_id for record_id, record in rows.items() if self._matches(record, filters)]
            for record_id in doomed:
                del rows[record_id]
            return len(doomed)

    def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count records in table"""
        filters = filters or {}
        with self._lock:
            return sum(1 for record in self._table(table).values() if self._matches(record, filters))

    def begin_transaction(self) -> None:
        """Hold the store lock and snapshot state for rollback"""
        self._lock.acquire()
        if self._depth == 0:
            self._snapshot = (json.dumps(self._data), dict(self._sequences))
        self._depth += 1

    def commit(self) -> None:
        """Release one level of the transaction"""
        try:
            self._depth -= 1
            if self._depth == 0:
                self._snapshot = None
        finally:
            self._lock.release()

    def rollback(self) -> None:
        """Restore the snapshot taken at the outermost begin"""
        try:
            self._depth -= 1
            if self._depth == 0 and self._snapshot is not None:
                data, sequences = self._snapshot
                self._data = {
                    table: {int(record_id): record for record_id, record in rows.items()}
                    for table, rows in json.loads(data).items()
                }
                self._sequences = sequences
                self._snapshot = None
        finally:
            self._lock.release()

    def close(self) -> None:
        """Close storage (marks the store unusable)"""
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._depth = 0
        try:
            # Autocommit mode; multi-statement units use explicit BEGIN IMMEDIATE
            self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
            self._connection.row_factory = sqlite3.Row

            # Enable WAL mode for better concurrent access
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
            self._connection.executescript(SQLITE_SCHEMA)
        except sqlite3.Error as exc:
            raise StorageError(f"Could not open SQLite database {self.db_path}: {exc}") from exc

        logger.info(f"SQLite storage opened at {self.db_path}")

    def _execute(self, sql: str, params: Tuple = ()) -> sqlite3.Cursor:
        """Run one statement, translating driver errors"""
        if self._connection is None:
            raise StorageError("Storage is closed")
        try:
            return self._connection.execute(sql, params)
        except sqlite3.IntegrityError as exc:
            match = _UNIQUE_FAILURE.search(str(exc))
            if match:
                qualified = [part.strip() for part in match.group(1).split(",")]
                table = qualified[0].split(".")[0]
                columns = tuple(part.split(".")[-1] for part in qualified)
                raise DuplicateRecordError(str(exc), table, columns) from exc
            raise StorageError(str(exc)) from exc
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc

    def insert(self, table: str, data: Dict[str, Any]) -> int:
        """Insert a record into SQLite"""
        schema = _schema(table)
        _check_columns(schema, data.keys())
        columns = [column for column in schema.columns if column in data]
        placeholders = ", ".join("?" for _ in columns)
        with self._lock:
            cursor = self._execute(
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                tuple(data[column] for column in columns),
            )
            return cursor.lastrowid

    def load(self, table: str, record_id: int) -> Optional[Dict[str, Any]]:
        """Load a record from SQLite"""
        _schema(table)
        with self._lock:
            row = self._execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,)).fetchone()
            if row:
                return dict(row)
            return None

    def find(self, table: str, filters: Optional[Dict[str, Any]] = None,
             order_by: str = "id", descending: bool = False,
             limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        schema = _schema(table)
        filters = filters or {}
        _check_columns(schema, list(filters) + [order_by])

        sql = f"SELECT * FROM {table}"
        params: List[Any] = []
        if filters:
            sql += " WHERE " + " AND ".join(f"{column} = ?" for column in filters)
            params.extend(filters.values())
        sql += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}"
        if order_by != "id":
            sql += f", id {'DESC' if descending else 'ASC'}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        with self._lock:
            return [dict(row) for row in self._execute(sql, tuple(params)).fetchall()]

    def increment(self, table: str, record_id: int, column: str, delta: int) -> bool:
        """Single-statement delta update; the add happens inside the store"""
        schema = _schema(table)
        if column not in schema.counters:
            raise StorageError(f"Column {table}.{column} does not accept delta updates")
        with self._lock:
            cursor = self._execute(
                f"UPDATE {table} SET {column} = {column} + ? WHERE id = ?",
                (delta, record_id),
            )
            return cursor.rowcount > 0

    def delete(self, table: str, filters: Dict[str, Any]) -> int:
        """Delete matching records from SQLite"""
        schema = _schema(table)
        if not filters:
            raise StorageError("Refusing to delete without filters")
        _check_columns(schema, filters.keys())
        where = " AND ".join(f"{column} = ?" for column in filters)
        with self._lock:
            cursor = self._execute(f"DELETE FROM {table} WHERE {where}", tuple(filters.values()))
            return cursor.rowcount

    def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count records in table"""
        schema = _schema(table)
        filters = filters or {}
        _check_columns(schema, filters.keys())
        sql = f"SELECT COUNT(*) AS count FROM {table}"
        if filters:
            sql += " WHERE " + " AND ".join(f"{column} = ?" for column in filters)
        with self._lock:
            return self._execute(sql, tuple(filters.values())).fetchone()["count"]

    def begin_transaction(self) -> None:
        """Start a write transaction; nested calls join the outer one"""
        self._lock.acquire()
        try:
            if self._depth == 0:
                self._execute("BEGIN IMMEDIATE")
        except BaseException:
            self._lock.release()
            raise
        self._depth += 1

    def commit(self) -> None:
        """Commit current transaction"""
        try:
            if self._depth == 1:
                try:
                    self._execute("COMMIT")
                except StorageError:
                    self._rollback_quietly()
                    raise
        finally:
            self._depth -= 1
            self._lock.release()

    def rollback(self) -> None:
        """Rollback current transaction"""
        try:
            if self._depth == 1:
                self._rollback_quietly()
        finally:
            self._depth -= 1
            self._lock.release()

    def _rollback_quietly(self) -> None:
        # Callers see the commit failure, not a secondary rollback failure
        try:
            if self._connection is not None and self._connection.in_transaction:
                self._connection.execute("ROLLBACK")
        except sqlite3.Error as exc:
            logger.error(f"Rollback failed: {exc}")

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None
                logger.info(f"SQLite storage closed at {self.db_path}")

    @property
    def closed(self) -> bool:
        return self._connection is None


def open_storage(database_url: str) -> StorageInterface:
    """
    Open the backend named by a database URL.

    Supported forms: ``memory://``, ``sqlite:///:memory:`` and
    ``sqlite:///<path>``.
    """
    if database_url.startswith("memory://"):
        return InMemoryStorage()
    if database_url.startswith("sqlite:///"):
        return SQLiteStorage(database_url[len("sqlite:///"):] or ":memory:")
    raise ValueError(f"Unsupported database_url: {database_url}")
