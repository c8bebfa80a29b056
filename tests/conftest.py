"""
Pytest configuration for the sanitizer tests.

Provides an in-memory MongoDB (mongomock-motor) wired into a DatabaseManager, a fixed clock and
seeding helpers. File logging is switched off before any project module is imported.
"""

from datetime import datetime
import os
import sys
from unittest.mock import AsyncMock

import pytest

os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017/sanitizer_test")

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from mongomock_motor import AsyncMongoMockClient  # noqa: E402

from db_sanitizer.database import DatabaseManager  # noqa: E402
from db_sanitizer.registry import build_default_registry  # noqa: E402

TEST_DATABASE = "sanitizer_test"

# Naive UTC with whole seconds, the way timestamps come back from the store
FIXED_NOW = datetime(2025, 6, 1, 12, 0, 0)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def fixed_clock(now):
    return lambda: now


@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def mongo_client():
    return AsyncMongoMockClient()


@pytest.fixture
def database(mongo_client):
    return mongo_client[TEST_DATABASE]


@pytest.fixture
def db_manager(mongo_client, database):
    """DatabaseManager already "connected" to the in-memory store.

    connect/disconnect are replaced so connection() scopes can be exercised without a server.
    """
    manager = DatabaseManager(url=f"mongodb://localhost:27017/{TEST_DATABASE}", database_name=TEST_DATABASE)
    manager.client = mongo_client
    manager.database = database
    manager.connect = AsyncMock()
    manager.disconnect = AsyncMock()
    return manager


@pytest.fixture
def seed(database):
    """Insert documents into a collection and return their ids."""

    async def _seed(collection_name, documents):
        result = await database[collection_name].insert_many([dict(d) for d in documents])
        return result.inserted_ids

    return _seed
