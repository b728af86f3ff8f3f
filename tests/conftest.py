"""
Shared fixtures
"""

import pytest

from securebank.config import SecureBankConfig
from securebank.storage import InMemoryStorage, SQLiteStorage


@pytest.fixture
def config():
    """Test configuration with an in-process store"""
    return SecureBankConfig(database_url="memory://", log_level="WARNING")


@pytest.fixture
def memory_storage():
    storage = InMemoryStorage()
    yield storage
    storage.close()


@pytest.fixture(params=["memory", "sqlite"])
def any_storage(request, tmp_path):
    """Both backends, for properties that must hold on each"""
    if request.param == "memory":
        storage = InMemoryStorage()
    else:
        storage = SQLiteStorage(tmp_path / "securebank_test.db")
    yield storage
    storage.close()
