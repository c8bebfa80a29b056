"""Database module for the sanitizer."""

import asyncio
from contextlib import asynccontextmanager
import time
from typing import Any, AsyncIterator, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, PyMongoError

from db_sanitizer.config import settings
from db_sanitizer.exceptions import CollectionNotFound, DatabaseConnectionError, PredicateEvaluationError
from db_sanitizer.managers.logging_manager import get_logger

db_logger = get_logger(prefix="[DATABASE]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")
health_logger = get_logger(prefix="[DB_HEALTH]")

SENSITIVE_FIELDS = {
    "password",
    "password_hash",
    "token",
    "secret",
    "key",
    "credential",
    "private_key",
    "auth_token",
    "access_token",
    "refresh_token",
    "api_key",
    "session_token",
    "reset_token",
    "verification_token",
}


class DatabaseManager:
    """MongoDB database manager using Motor (async MongoDB driver)"""

    def __init__(self, url: str = None, database_name: str = None):
        self.url = url or settings.MONGODB_URL
        self.database_name = database_name or settings.database_name
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self._connection_retries = settings.MONGODB_CONNECT_RETRIES

    async def connect(self):
        """Connect to MongoDB with retry logic"""
        start_time = time.time()
        db_logger.info("Starting MongoDB connection process")

        for attempt in range(self._connection_retries):
            attempt_start = time.time()
            try:
                db_logger.info("Connection attempt %d/%d to MongoDB", attempt + 1, self._connection_retries)
                db_logger.info(
                    "MongoDB connection config - Database: %s, ServerTimeout: %dms, ConnTimeout: %dms",
                    self.database_name,
                    settings.MONGODB_SERVER_SELECTION_TIMEOUT,
                    settings.MONGODB_CONNECTION_TIMEOUT,
                )

                self.client = AsyncIOMotorClient(
                    self.url,
                    serverSelectionTimeoutMS=settings.MONGODB_SERVER_SELECTION_TIMEOUT,
                    connectTimeoutMS=settings.MONGODB_CONNECTION_TIMEOUT,
                )
                self.database = self.client[self.database_name]

                ping_start = time.time()
                await self.client.admin.command("ping")
                ping_duration = time.time() - ping_start

                total_duration = time.time() - start_time
                perf_logger.info(
                    "MongoDB connection established successfully in %.3fs (ping: %.3fs)", total_duration, ping_duration
                )
                db_logger.info("Successfully connected to MongoDB database: %s", self.database_name)
                return

            except ConnectionFailure as e:
                attempt_duration = time.time() - attempt_start
                perf_logger.warning("Connection attempt %d failed after %.3fs", attempt + 1, attempt_duration)
                db_logger.warning(
                    "Failed to connect to MongoDB (attempt %d/%d): %s", attempt + 1, self._connection_retries, e
                )
                self._reset_client()
                if attempt == self._connection_retries - 1:
                    total_duration = time.time() - start_time
                    db_logger.error("All connection attempts failed after %.3fs", total_duration)
                    raise DatabaseConnectionError(
                        f"Could not connect to MongoDB after {self._connection_retries} attempts", original_error=e
                    ) from e

                backoff_time = 2**attempt
                db_logger.info("Waiting %.1fs before retry (exponential backoff)", backoff_time)
                await asyncio.sleep(backoff_time)

            except (PyMongoError, ConnectionError, TimeoutError) as e:
                db_logger.error("Connection error connecting to MongoDB: %s", e)
                self._reset_client()
                raise DatabaseConnectionError(f"Could not connect to MongoDB: {e}", original_error=e) from e

    def _reset_client(self):
        if self.client is not None:
            self.client.close()
        self.client = None
        self.database = None

    async def disconnect(self):
        """Disconnect from MongoDB"""
        if self.client is None:
            db_logger.debug("Disconnect called but no active MongoDB connection found")
            return

        start_time = time.time()
        self.client.close()
        self.client = None
        self.database = None
        perf_logger.info("MongoDB disconnection completed in %.3fs", time.time() - start_time)
        db_logger.info("Disconnected from MongoDB")

    @asynccontextmanager
    async def connection(self) -> AsyncIterator["DatabaseManager"]:
        """Open the connection for the duration of the block; always closes it again."""
        await self.connect()
        try:
            yield self
        finally:
            await self.disconnect()

    async def health_check(self) -> bool:
        """Check database connection health"""
        if self.client is None:
            health_logger.warning("Health check failed: No database client available")
            return False
        try:
            await self.client.admin.command("ping")
            return True
        except PyMongoError as e:
            health_logger.error("Database health check failed: %s", e)
            return False

    def get_collection(self, collection_name: str) -> AsyncIOMotorCollection:
        """Get a collection from the database"""
        if self.database is None:
            db_logger.error("Cannot get collection '%s': Database not connected", collection_name)
            raise RuntimeError("Database not connected")
        return self.database[collection_name]

    async def list_collection_names(self) -> List[str]:
        if self.database is None:
            raise RuntimeError("Database not connected")
        try:
            return await self.database.list_collection_names()
        except ConnectionFailure as e:
            raise DatabaseConnectionError("Lost connection while listing collections", original_error=e) from e
        except PyMongoError as e:
            raise PredicateEvaluationError(f"Could not list collections: {e}", original_error=e) from e

    async def collection_exists(self, collection_name: str) -> bool:
        return collection_name in await self.list_collection_names()

    async def require_collection(self, collection_name: str) -> AsyncIOMotorCollection:
        """Return the collection, raising CollectionNotFound when it does not exist."""
        if not await self.collection_exists(collection_name):
            raise CollectionNotFound(f"Collection '{collection_name}' does not exist", collection=collection_name)
        return self.get_collection(collection_name)

    async def count_documents(self, collection_name: str, query: Optional[Dict[str, Any]] = None) -> int:
        """Count matching documents. A missing collection counts as 0."""
        query = query or {}
        if not await self.collection_exists(collection_name):
            return 0
        start_time = self.log_query_start(collection_name, "count_documents", query)
        try:
            count = await self.get_collection(collection_name).count_documents(query)
        except ConnectionFailure as e:
            self.log_query_error(collection_name, "count_documents", start_time, e, query)
            raise DatabaseConnectionError(
                f"Lost connection while counting '{collection_name}'", collection=collection_name, original_error=e
            ) from e
        self.log_query_success(collection_name, "count_documents", start_time, count)
        return count

    # Database operation logging utilities
    def log_query_start(
        self, collection_name: str, operation: str, query: Optional[Dict] = None, options: Optional[Dict] = None
    ) -> float:
        """Log the start of a database query and return start time for performance tracking"""
        start_time = time.time()
        safe_query = self._sanitize_query_for_logging(query) if query else {}
        safe_options = self._sanitize_query_for_logging(options) if options else {}
        db_logger.debug(
            "Starting %s operation on collection '%s' - Query: %s, Options: %s",
            operation,
            collection_name,
            safe_query,
            safe_options,
        )
        return start_time

    def log_query_success(
        self,
        collection_name: str,
        operation: str,
        start_time: float,
        result_count: Optional[int] = None,
    ):
        """Log successful completion of a database query with performance metrics"""
        duration = time.time() - start_time
        if result_count is not None:
            perf_logger.debug(
                "%s on '%s' completed successfully in %.3fs - %d records",
                operation,
                collection_name,
                duration,
                result_count,
            )
        else:
            perf_logger.debug("%s on '%s' completed successfully in %.3fs", operation, collection_name, duration)

    def log_query_error(
        self, collection_name: str, operation: str, start_time: float, error: Exception, query: Optional[Dict] = None
    ):
        """Log database query errors with context and performance metrics"""
        duration = time.time() - start_time
        safe_query = self._sanitize_query_for_logging(query) if query else {}
        perf_logger.error("%s on '%s' failed after %.3fs", operation, collection_name, duration)
        db_logger.error(
            "%s operation failed on collection '%s' after %.3fs - Error: %s, Query: %s",
            operation,
            collection_name,
            duration,
            error,
            safe_query,
        )

    def _sanitize_query_for_logging(self, query: Dict[str, Any]) -> Dict[str, Any]:
        """Sanitize database queries for safe logging by removing sensitive data"""
        if not isinstance(query, dict):
            return {}

        sanitized: Dict[str, Any] = {}
        for key, value in query.items():
            if any(sensitive_field in key.lower() for sensitive_field in SENSITIVE_FIELDS):
                sanitized[key] = "[REDACTED]"
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_query_for_logging(value)
            elif isinstance(value, list):
                if len(value) > 10:
                    sanitized[key] = f"[{len(value)} values]"
                else:
                    sanitized[key] = [
                        self._sanitize_query_for_logging(item) if isinstance(item, dict) else item for item in value
                    ]
            else:
                sanitized[key] = value

        return sanitized


# Global database manager instance
db_manager = DatabaseManager()
