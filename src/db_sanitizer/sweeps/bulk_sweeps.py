"""
Bulk sweeps for the danger modes: protected bulk delete, full wipe and schema reset.

None of these look at document content. Protected bulk still honours the protected role; the other
two do not.
"""

from typing import Any, Dict

from pymongo.errors import ConnectionFailure, PyMongoError

from db_sanitizer.exceptions import CollectionNotFound, DatabaseConnectionError, PredicateEvaluationError
from db_sanitizer.models import DeletionOutcome, DeletionStrategy, OutcomeStatus
from db_sanitizer.registry import CollectionDescriptor

from .base import BaseSweep


class ProtectedBulkSweep(BaseSweep):
    """Delete every document except those carrying the protected role (``--nuclear``)."""

    @property
    def strategy(self) -> DeletionStrategy:
        return DeletionStrategy.PROTECTED_BULK

    def describe(self) -> str:
        return "all documents except protected roles"

    def build_query(self, descriptor: CollectionDescriptor) -> Dict[str, Any]:
        if descriptor.protected_role is None:
            return {}
        return descriptor.protected_role.exclusion_filter()

    async def sweep(self, target: CollectionDescriptor) -> DeletionOutcome:
        return await self.two_phase_delete(target, self.build_query(target))


class FullWipeSweep(BaseSweep):
    """Delete every document in every registered collection (``--total-wipe``)."""

    @property
    def strategy(self) -> DeletionStrategy:
        return DeletionStrategy.FULL_WIPE

    def describe(self) -> str:
        return "every document, including protected roles"

    async def sweep(self, target: CollectionDescriptor) -> DeletionOutcome:
        if target.protected_role is not None:
            self.logger.warning(
                "'%s': documents with %s=%s will be deleted too",
                target.name,
                target.protected_role.field,
                target.protected_role.value,
            )
        return await self.two_phase_delete(target, {})


class SchemaResetSweep(BaseSweep):
    """Drop and recreate every registered collection (``--reset-collections``).

    Indexes and validators are dropped along with the data. Collections that do not exist are
    skipped rather than created.
    """

    @property
    def strategy(self) -> DeletionStrategy:
        return DeletionStrategy.SCHEMA_RESET

    def describe(self) -> str:
        return "drop and recreate every registered collection"

    async def sweep(self, target: CollectionDescriptor) -> DeletionOutcome:
        name = target.name
        try:
            collection = await self.db_manager.require_collection(name)
        except CollectionNotFound as e:
            self.logger.info("Collection '%s' does not exist, skipping", name)
            return DeletionOutcome.skipped(name, self.strategy, e.message)
        except PredicateEvaluationError as e:
            self.logger.error("'%s': %s", name, e.message)
            return DeletionOutcome.failed(name, self.strategy, e.message)

        count = 0
        start_time = self.db_manager.log_query_start(name, "schema_reset")
        try:
            count = await collection.count_documents({})
            if self.dry_run:
                self.logger.info("'%s': dry run, would drop %d documents", name, count)
                return DeletionOutcome(name, self.strategy, 0, count, OutcomeStatus.DRY_RUN)

            await self.db_manager.database.drop_collection(name)
            await self.db_manager.database.create_collection(name)
        except ConnectionFailure as e:
            self.db_manager.log_query_error(name, "schema_reset", start_time, e)
            raise DatabaseConnectionError(
                f"Lost connection while resetting '{name}'",
                collection=name,
                outcome=DeletionOutcome.failed(name, self.strategy, str(e), matched_count=count),
                original_error=e,
            ) from e
        except PyMongoError as e:
            self.db_manager.log_query_error(name, "schema_reset", start_time, e)
            self.logger.error("'%s': reset failed: %s", name, e)
            return DeletionOutcome.failed(name, self.strategy, f"Reset failed on '{name}': {e}", matched_count=count)

        self.db_manager.log_query_success(name, "schema_reset", start_time, count)
        self.logger.info("'%s': dropped and recreated (%d documents removed)", name, count)
        return DeletionOutcome(name, self.strategy, count, count)
