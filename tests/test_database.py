"""
Tests for DatabaseManager: connection retries, scoped connection and collection helpers.
"""

from unittest.mock import AsyncMock, MagicMock, patch

from pymongo.errors import ConfigurationError, ConnectionFailure, OperationFailure, ServerSelectionTimeoutError
import pytest

from db_sanitizer import database as database_mod
from db_sanitizer.database import DatabaseManager
from db_sanitizer.exceptions import CollectionNotFound, DatabaseConnectionError, PredicateEvaluationError


def _client_with_ping(side_effect=None):
    client = MagicMock()
    client.admin.command = AsyncMock(side_effect=side_effect)
    return client


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_success(self):
        manager = DatabaseManager(url="mongodb://localhost:27017/shop", database_name="shop")
        client = _client_with_ping()
        with patch.object(database_mod, "AsyncIOMotorClient", return_value=client):
            await manager.connect()
        assert manager.client is client
        client.admin.command.assert_awaited_once_with("ping")

    @pytest.mark.asyncio
    async def test_connect_retries_with_backoff_then_fails(self):
        manager = DatabaseManager(url="mongodb://localhost:27017/shop", database_name="shop")
        manager._connection_retries = 3
        client = _client_with_ping(side_effect=ServerSelectionTimeoutError("no server"))
        sleep = AsyncMock()
        with patch.object(database_mod, "AsyncIOMotorClient", return_value=client), patch.object(
            database_mod.asyncio, "sleep", sleep
        ):
            with pytest.raises(DatabaseConnectionError) as exc_info:
                await manager.connect()

        assert client.admin.command.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1, 2]
        assert isinstance(exc_info.value.original_error, ConnectionFailure)
        assert manager.client is None
        assert manager.database is None

    @pytest.mark.asyncio
    async def test_connect_recovers_on_retry(self):
        manager = DatabaseManager(url="mongodb://localhost:27017/shop", database_name="shop")
        client = _client_with_ping(side_effect=[ConnectionFailure("flaky"), {"ok": 1}])
        with patch.object(database_mod, "AsyncIOMotorClient", return_value=client), patch.object(
            database_mod.asyncio, "sleep", AsyncMock()
        ):
            await manager.connect()
        assert manager.database is not None

    @pytest.mark.asyncio
    async def test_configuration_error_is_not_retried(self):
        manager = DatabaseManager(url="mongodb://localhost:27017/shop", database_name="shop")
        with patch.object(database_mod, "AsyncIOMotorClient", side_effect=ConfigurationError("bad uri")):
            with pytest.raises(DatabaseConnectionError, match="bad uri"):
                await manager.connect()


class TestConnectionScope:
    @pytest.mark.asyncio
    async def test_disconnect_without_connection_is_noop(self):
        manager = DatabaseManager()
        await manager.disconnect()
        assert manager.client is None

    @pytest.mark.asyncio
    async def test_connection_closes_on_error(self):
        manager = DatabaseManager()
        manager.connect = AsyncMock()
        manager.disconnect = AsyncMock()
        with pytest.raises(RuntimeError):
            async with manager.connection():
                raise RuntimeError("sweep blew up")
        manager.connect.assert_awaited_once()
        manager.disconnect.assert_awaited_once()


class TestCollectionHelpers:
    def test_get_collection_requires_connection(self):
        with pytest.raises(RuntimeError, match="not connected"):
            DatabaseManager().get_collection("users")

    @pytest.mark.asyncio
    async def test_require_collection(self, db_manager, seed):
        await seed("users", [{"email": "a@b.com"}])
        assert await db_manager.collection_exists("users")
        assert (await db_manager.require_collection("users")).name == "users"
        with pytest.raises(CollectionNotFound) as exc_info:
            await db_manager.require_collection("banners")
        assert exc_info.value.collection == "banners"

    @pytest.mark.asyncio
    async def test_count_documents_missing_collection_is_zero(self, db_manager, seed):
        await seed("posts", [{"title": "a"}, {"title": "b"}])
        assert await db_manager.count_documents("posts") == 2
        assert await db_manager.count_documents("posts", {"title": "a"}) == 1
        assert await db_manager.count_documents("banners") == 0

    @pytest.mark.asyncio
    async def test_listing_errors_are_mapped(self):
        manager = DatabaseManager()
        manager.database = MagicMock()
        manager.database.list_collection_names = AsyncMock(side_effect=OperationFailure("not authorized", 13))
        with pytest.raises(PredicateEvaluationError):
            await manager.collection_exists("users")

        manager.database.list_collection_names = AsyncMock(side_effect=ConnectionFailure("reset"))
        with pytest.raises(DatabaseConnectionError):
            await manager.require_collection("users")

    @pytest.mark.asyncio
    async def test_health_check_without_client(self):
        assert await DatabaseManager().health_check() is False


def test_query_logging_redacts_sensitive_fields():
    manager = DatabaseManager()
    sanitized = manager._sanitize_query_for_logging(
        {"email": "a@b.com", "password_hash": "x", "user": {"$nin": list(range(50))}, "$or": [{"token": "t"}]}
    )
    assert sanitized["email"] == "a@b.com"
    assert sanitized["password_hash"] == "[REDACTED]"
    assert sanitized["user"] == {"$nin": "[50 values]"}
    assert sanitized["$or"] == [{"token": "[REDACTED]"}]
