"""
Orphan sweep: delete dependent documents whose parent reference no longer resolves.

A document is orphaned when, for any reference field checked on its collection, the field is
absent, null, or holds a value outside the parent's current identifier set. All reference fields
of one collection are evaluated in a single pass so a document is never counted twice.
"""

from typing import Any, Dict, List, Set, Tuple

from bson import ObjectId
from pymongo.errors import ConnectionFailure, PyMongoError

from db_sanitizer.exceptions import DatabaseConnectionError, PredicateEvaluationError
from db_sanitizer.models import DeletionOutcome, DeletionStrategy
from db_sanitizer.registry import CollectionDescriptor, ReferenceCheck

from .base import BaseSweep

ReferenceGroup = Tuple[CollectionDescriptor, Tuple[ReferenceCheck, ...]]


def valid_reference_values(identifiers: List[Any]) -> List[Any]:
    """Identifiers plus the 24-hex string form of every ObjectId, so string-stored references still resolve."""
    values: List[Any] = []
    seen: Set[Any] = set()
    for identifier in identifiers:
        candidates = [identifier, str(identifier)] if isinstance(identifier, ObjectId) else [identifier]
        for value in candidates:
            try:
                if value in seen:
                    continue
                seen.add(value)
            except TypeError:
                pass  # unhashable identifiers are kept as-is
            values.append(value)
    return values


def orphan_clause(field: str, valid_ids: List[Any]) -> Dict[str, Any]:
    return {
        "$or": [
            {field: {"$nin": valid_ids}},
            {field: {"$exists": False}},
            {field: None},
        ]
    }


class OrphanDetector(BaseSweep):
    """Referential-integrity sweep over the registry's reference checks."""

    @property
    def strategy(self) -> DeletionStrategy:
        return DeletionStrategy.ORPHAN

    def describe(self) -> str:
        checks = ", ".join(f"{c.dependent}.{c.field}->{c.parent}" for c in self.registry.reference_checks)
        return f"references that do not resolve ({checks})"

    def targets(self) -> List[ReferenceGroup]:
        return self.registry.reference_groups()

    async def fetch_valid_ids(self, parent: str, dependent: str) -> List[Any]:
        """Current identifier set of ``parent``. Fetched fresh for every group that needs it."""
        if not await self.db_manager.collection_exists(parent):
            self.logger.warning("Parent collection '%s' does not exist; every '%s' reference is orphaned", parent, dependent)
            return []

        start_time = self.db_manager.log_query_start(parent, "orphan:valid_ids")
        try:
            documents = await self.db_manager.get_collection(parent).find({}, {"_id": 1}).to_list(length=None)
        except ConnectionFailure as e:
            self.db_manager.log_query_error(parent, "orphan:valid_ids", start_time, e)
            raise DatabaseConnectionError(
                f"Lost connection while reading identifiers of '{parent}'", collection=dependent, original_error=e
            ) from e
        except PyMongoError as e:
            self.db_manager.log_query_error(parent, "orphan:valid_ids", start_time, e)
            raise PredicateEvaluationError(
                f"Could not read identifiers of '{parent}': {e}",
                collection=dependent,
                strategy=self.strategy.value,
                original_error=e,
            ) from e
        identifiers = [document["_id"] for document in documents]
        self.db_manager.log_query_success(parent, "orphan:valid_ids", start_time, len(identifiers))
        self.logger.info("Valid %s: %d", parent, len(identifiers))
        return identifiers

    async def build_query(self, descriptor: CollectionDescriptor, checks: Tuple[ReferenceCheck, ...]) -> Dict[str, Any]:
        clauses = []
        parent_ids: Dict[str, List[Any]] = {}
        for check in checks:
            if check.parent not in parent_ids:
                parent_ids[check.parent] = valid_reference_values(
                    await self.fetch_valid_ids(check.parent, descriptor.name)
                )
            clauses.append(orphan_clause(check.field, parent_ids[check.parent]))
        if len(clauses) == 1:
            return clauses[0]
        return {"$or": clauses}

    async def sweep(self, target: ReferenceGroup) -> DeletionOutcome:
        descriptor, checks = target
        detail = ", ".join(f"{c.field}->{c.parent}" for c in checks)
        self.logger.info("Checking orphaned %s (%s)", descriptor.name, detail)

        try:
            if not await self.db_manager.collection_exists(descriptor.name):
                self.logger.info("Collection '%s' does not exist, skipping", descriptor.name)
                return DeletionOutcome.skipped(
                    descriptor.name, self.strategy, f"Collection '{descriptor.name}' does not exist"
                )
            query = await self.build_query(descriptor, checks)
        except PredicateEvaluationError as e:
            self.logger.error("'%s': %s", descriptor.name, e.message)
            return DeletionOutcome.failed(descriptor.name, self.strategy, e.message, detail=detail)
        except DatabaseConnectionError as e:
            e.outcome = DeletionOutcome.failed(descriptor.name, self.strategy, e.message, detail=detail)
            raise
        return await self.two_phase_delete(descriptor, query, detail=detail)
