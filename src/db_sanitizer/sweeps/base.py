"""
Base class for cleanup sweeps.

A sweep is one detection strategy (or bulk operation) applied collection by collection. Every
destructive step goes through two_phase_delete(): enumerate the candidates for the log, then delete
with the very same filter object.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from pymongo.errors import ConnectionFailure, PyMongoError

from db_sanitizer.config import settings
from db_sanitizer.database import DatabaseManager
from db_sanitizer.exceptions import CollectionNotFound, DatabaseConnectionError, PredicateEvaluationError
from db_sanitizer.managers.logging_manager import get_logger
from db_sanitizer.models import DeletionOutcome, DeletionStrategy, OutcomeStatus
from db_sanitizer.registry import CollectionDescriptor, CollectionRegistry

SAMPLE_DISPLAY_FIELDS = ("name", "title", "email", "code", "orderCode", "description", "_id")


def describe_document(document: Dict[str, Any]) -> str:
    """One-line summary of a candidate document for the log."""
    parts = [f"{field}: {document[field]}" for field in SAMPLE_DISPLAY_FIELDS if document.get(field)]
    return ", ".join(parts) or "<no display fields>"


class BaseSweep(ABC):
    """Base class for all sweeps."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        registry: CollectionRegistry,
        dry_run: bool = False,
        sample_size: Optional[int] = None,
    ):
        self.db_manager = db_manager
        self.registry = registry
        self.dry_run = dry_run
        self.sample_size = settings.CLEANUP_SAMPLE_SIZE if sample_size is None else sample_size
        self.logger = get_logger(prefix=f"[{self.__class__.__name__}]")

    @property
    @abstractmethod
    def strategy(self) -> DeletionStrategy:
        """Strategy recorded on every outcome of this sweep."""
        pass

    @property
    def title(self) -> str:
        return self.strategy.value

    def describe(self) -> str:
        """Short description logged before the sweep starts."""
        return self.title

    def targets(self) -> Sequence[Any]:
        """Units of work for the controller, one outcome each. Defaults to every registered collection."""
        return list(self.registry)

    @abstractmethod
    async def sweep(self, target: Any) -> DeletionOutcome:
        """Run the sweep on one target and return its outcome.

        Raises:
            DatabaseConnectionError: the store became unreachable; ``outcome`` carries the partial result.
        """
        pass

    async def two_phase_delete(
        self, descriptor: CollectionDescriptor, query: Dict[str, Any], detail: Optional[str] = None
    ) -> DeletionOutcome:
        """Count and sample ``query`` on the collection, then delete with the identical ``query``."""
        name = descriptor.name
        try:
            collection = await self.db_manager.require_collection(name)
        except CollectionNotFound as e:
            self.logger.info("Collection '%s' does not exist, skipping", name)
            return DeletionOutcome.skipped(name, self.strategy, e.message)
        except PredicateEvaluationError as e:
            self.logger.error("'%s': %s", name, e.message)
            return DeletionOutcome.failed(name, self.strategy, e.message, detail=detail)

        matched = 0
        try:
            matched, samples = await self._enumerate(collection, name, query)
            if matched == 0:
                self.logger.info("'%s': no matching documents", name)
                return DeletionOutcome(name, self.strategy, 0, 0, detail=detail)

            self.logger.info("'%s': found %d matching documents", name, matched)
            self.log_samples(samples, matched)
            await self.inspect_candidates(descriptor, collection, query, matched)

            if self.dry_run:
                self.logger.info("'%s': dry run, %d documents left in place", name, matched)
                return DeletionOutcome(name, self.strategy, 0, matched, OutcomeStatus.DRY_RUN, detail=detail)

            deleted = await self._delete(collection, name, query, matched)
        except PredicateEvaluationError as e:
            self.logger.error("'%s': %s", name, e.message)
            return DeletionOutcome.failed(name, self.strategy, e.message, matched_count=matched, detail=detail)
        except DatabaseConnectionError as e:
            e.outcome = DeletionOutcome.failed(name, self.strategy, e.message, matched_count=matched, detail=detail)
            raise

        if deleted != matched:
            self.logger.warning(
                "'%s': found %d but deleted %d (collection changed between count and delete)", name, matched, deleted
            )
        self.logger.info("'%s': deleted %d documents", name, deleted)
        return DeletionOutcome(name, self.strategy, deleted, matched, detail=detail)

    async def _enumerate(self, collection, name: str, query: Dict[str, Any]):
        start_time = self.db_manager.log_query_start(name, f"{self.title}:count", query)
        try:
            matched = await collection.count_documents(query)
            samples: List[Dict[str, Any]] = []
            if matched and self.sample_size:
                cursor = collection.find(query, {field: 1 for field in SAMPLE_DISPLAY_FIELDS})
                samples = (await cursor.to_list(length=self.sample_size))[: self.sample_size]
        except ConnectionFailure as e:
            self.db_manager.log_query_error(name, f"{self.title}:count", start_time, e, query)
            raise DatabaseConnectionError(
                f"Lost connection while counting '{name}'", collection=name, original_error=e
            ) from e
        except PyMongoError as e:
            self.db_manager.log_query_error(name, f"{self.title}:count", start_time, e, query)
            raise PredicateEvaluationError(
                f"Could not evaluate {self.title} predicate on '{name}': {e}",
                collection=name,
                strategy=self.strategy.value,
                original_error=e,
            ) from e
        self.db_manager.log_query_success(name, f"{self.title}:count", start_time, matched)
        return matched, samples

    async def _delete(self, collection, name: str, query: Dict[str, Any], matched: int) -> int:
        start_time = self.db_manager.log_query_start(name, f"{self.title}:delete_many", query)
        try:
            result = await collection.delete_many(query)
        except ConnectionFailure as e:
            self.db_manager.log_query_error(name, f"{self.title}:delete_many", start_time, e, query)
            raise DatabaseConnectionError(
                f"Lost connection while deleting from '{name}' after matching {matched} documents",
                collection=name,
                original_error=e,
            ) from e
        except PyMongoError as e:
            self.db_manager.log_query_error(name, f"{self.title}:delete_many", start_time, e, query)
            raise PredicateEvaluationError(
                f"Delete failed on '{name}' after matching {matched} documents: {e}",
                collection=name,
                strategy=self.strategy.value,
                matched_count=matched,
                original_error=e,
            ) from e
        self.db_manager.log_query_success(name, f"{self.title}:delete_many", start_time, result.deleted_count)
        return result.deleted_count

    def log_samples(self, samples: List[Dict[str, Any]], matched: int):
        for index, document in enumerate(samples, start=1):
            self.logger.info("   %d. %s", index, describe_document(document))
        if matched > len(samples) and samples:
            self.logger.info("   ... and %d more", matched - len(samples))

    async def inspect_candidates(
        self, descriptor: CollectionDescriptor, collection, query: Dict[str, Any], matched: int
    ):
        """Hook for sweeps that want to look at the candidates before they are deleted."""
        pass
