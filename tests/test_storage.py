"""
Tests for storage backends and transaction support
"""

import pytest
from concurrent.futures import ThreadPoolExecutor

from securebank.exceptions import DuplicateRecordError, StorageError
from securebank.storage import InMemoryStorage, SQLiteStorage, open_storage


def account_row(user_id=1, number="0000000001", account_type="checking", balance_cents=0):
    return {
        "user_id": user_id,
        "account_number": number,
        "account_type": account_type,
        "balance_cents": balance_cents,
        "status": "active",
        "created_at": "2024-01-01T00:00:00+00:00",
    }


def session_row(user_id, token):
    return {
        "user_id": user_id,
        "token": token,
        "expires_at": "2030-01-01T00:00:00+00:00",
        "created_at": "2024-01-01T00:00:00+00:00",
    }


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    if request.param == "memory":
        store = InMemoryStorage()
    else:
        store = SQLiteStorage(tmp_path / "test.db")
    yield store
    store.close()


class TestBasicOperations:
    """Insert, load, find, delete on both backends"""

    def test_insert_assigns_increasing_ids(self, storage):
        first = storage.insert("accounts", account_row(number="1"))
        second = storage.insert("accounts", account_row(number="2", account_type="savings"))
        assert second > first

        loaded = storage.load("accounts", first)
        assert loaded["id"] == first
        assert loaded["account_number"] == "1"

    def test_load_missing(self, storage):
        assert storage.load("accounts", 999) is None

    def test_find_filters_and_orders(self, storage):
        storage.insert("sessions", session_row(1, "a"))
        storage.insert("sessions", session_row(2, "b"))
        storage.insert("sessions", session_row(1, "c"))

        ascending = storage.find("sessions", {"user_id": 1})
        assert [row["token"] for row in ascending] == ["a", "c"]

        descending = storage.find("sessions", {"user_id": 1}, descending=True, limit=1)
        assert [row["token"] for row in descending] == ["c"]

        assert storage.find_one("sessions", {"token": "b"})["user_id"] == 2
        assert storage.exists("sessions", {"token": "b"})
        assert not storage.exists("sessions", {"token": "zzz"})
        assert storage.count("sessions") == 3
        assert storage.count("sessions", {"user_id": 1}) == 2

    def test_loaded_records_are_copies(self, storage):
        record_id = storage.insert("sessions", session_row(1, "a"))
        loaded = storage.load("sessions", record_id)
        loaded["token"] = "mutated"
        assert storage.load("sessions", record_id)["token"] == "a"

    def test_delete_returns_count(self, storage):
        storage.insert("sessions", session_row(1, "a"))
        storage.insert("sessions", session_row(1, "b"))
        storage.insert("sessions", session_row(2, "c"))

        assert storage.delete("sessions", {"user_id": 1}) == 2
        assert storage.delete("sessions", {"user_id": 1}) == 0
        assert storage.count("sessions") == 1

    def test_unknown_table_and_column(self, storage):
        with pytest.raises(StorageError):
            storage.load("nope", 1)
        with pytest.raises(StorageError):
            storage.find("sessions", {"bogus": 1})

    def test_ids_not_reused_after_delete(self, storage):
        first = storage.insert("sessions", session_row(1, "a"))
        storage.delete("sessions", {"id": first})
        second = storage.insert("sessions", session_row(1, "b"))
        assert second > first


class TestConstraints:
    """Uniqueness is enforced by the store"""

    def test_duplicate_account_number(self, storage):
        storage.insert("accounts", account_row(user_id=1, number="123"))
        with pytest.raises(DuplicateRecordError) as exc_info:
            storage.insert("accounts", account_row(user_id=2, number="123"))
        assert exc_info.value.columns == ("account_number",)

    def test_duplicate_owner_and_type(self, storage):
        storage.insert("accounts", account_row(user_id=1, number="1"))
        with pytest.raises(DuplicateRecordError) as exc_info:
            storage.insert("accounts", account_row(user_id=1, number="2"))
        assert exc_info.value.columns == ("user_id", "account_type")

    def test_duplicate_token(self, storage):
        storage.insert("sessions", session_row(1, "t"))
        with pytest.raises(DuplicateRecordError):
            storage.insert("sessions", session_row(2, "t"))


class TestIncrement:
    """Store-side delta updates"""

    def test_increment(self, storage):
        record_id = storage.insert("accounts", account_row())
        assert storage.increment("accounts", record_id, "balance_cents", 150)
        assert storage.increment("accounts", record_id, "balance_cents", 50)
        assert storage.load("accounts", record_id)["balance_cents"] == 200

    def test_increment_missing_row(self, storage):
        assert storage.increment("accounts", 42, "balance_cents", 1) is False

    def test_increment_rejects_non_counter(self, storage):
        record_id = storage.insert("accounts", account_row())
        with pytest.raises(StorageError):
            storage.increment("accounts", record_id, "user_id", 1)

    def test_concurrent_increments_are_not_lost(self, storage):
        record_id = storage.insert("accounts", account_row())

        def bump(_):
            return storage.increment("accounts", record_id, "balance_cents", 1)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(bump, range(200)))

        assert all(results)
        assert storage.load("accounts", record_id)["balance_cents"] == 200


class TestAtomic:
    """Multi-statement units commit or roll back together"""

    def test_commit(self, storage):
        with storage.atomic():
            record_id = storage.insert("accounts", account_row())
            storage.increment("accounts", record_id, "balance_cents", 10)
        assert storage.load("accounts", record_id)["balance_cents"] == 10

    def test_rollback_on_error(self, storage):
        record_id = storage.insert("accounts", account_row())

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.increment("accounts", record_id, "balance_cents", 10)
                storage.insert("sessions", session_row(1, "tok"))
                raise RuntimeError("boom")

        assert storage.load("accounts", record_id)["balance_cents"] == 0
        assert storage.count("sessions") == 0

    def test_nested_blocks_join_outer(self, storage):
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.insert("sessions", session_row(1, "outer"))
                with storage.atomic():
                    storage.insert("sessions", session_row(1, "inner"))
                raise RuntimeError("boom")
        assert storage.count("sessions") == 0

    def test_usable_after_rollback(self, storage):
        with pytest.raises(RuntimeError):
            with storage.atomic():
                raise RuntimeError("boom")
        storage.insert("sessions", session_row(1, "after"))
        assert storage.count("sessions") == 1


class TestSQLitePersistence:
    """SQLite-specific behavior"""

    def test_data_survives_reopen(self, tmp_path):
        path = tmp_path / "persist.db"
        store = SQLiteStorage(path)
        record_id = store.insert("sessions", session_row(1, "persisted"))
        store.close()

        reopened = SQLiteStorage(path)
        try:
            assert reopened.load("sessions", record_id)["token"] == "persisted"
        finally:
            reopened.close()

    def test_closed_store_raises(self, tmp_path):
        store = SQLiteStorage(tmp_path / "closed.db")
        store.close()
        assert store.closed
        with pytest.raises(StorageError):
            store.load("sessions", 1)

    def test_close_is_idempotent(self):
        store = SQLiteStorage()
        store.close()
        store.close()


class TestOpenStorage:
    """Backend selection by URL"""

    def test_memory_url(self):
        assert isinstance(open_storage("memory://"), InMemoryStorage)

    def test_sqlite_url(self, tmp_path):
        store = open_storage(f"sqlite:///{tmp_path / 'url.db'}")
        try:
            assert isinstance(store, SQLiteStorage)
            assert store.db_path.endswith("url.db")
        finally:
            store.close()

    def test_sqlite_memory_url(self):
        store = open_storage("sqlite:///:memory:")
        assert store.db_path == ":memory:"
        store.close()

    def test_unsupported_url(self):
        with pytest.raises(ValueError):
            open_storage("postgres://localhost/db")
