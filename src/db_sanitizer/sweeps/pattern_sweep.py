"""
Pattern sweep: delete documents that look like seeded or test data.

A document matches when any scannable text field matches any keyword pattern, or its email matches
an email-shaped pattern, or its email is one of the known test addresses.
"""

import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pymongo.errors import ConnectionFailure, PyMongoError

from db_sanitizer.database import DatabaseManager
from db_sanitizer.exceptions import DatabaseConnectionError
from db_sanitizer.models import DeletionOutcome, DeletionStrategy
from db_sanitizer.registry import CollectionDescriptor, CollectionRegistry

from .base import BaseSweep

TEST_KEYWORD_PATTERNS: Sequence[str] = (
    r"test",
    r"demo",
    r"sample",
    r"dummy",
    r"temp",
    r"debug",
    r"fake",
    r"mock",
    r"example",
)

TEST_EMAIL_PATTERNS: Sequence[str] = (
    r"test.*@.*\.com",
    r"demo.*@.*\.com",
    r"sample.*@.*\.com",
    r".*test.*@.*\.com",
    r"admin.*@shop\.com",
    r"customer.*@shop\.com",
)

# Accounts created by the seed and test-user scripts
KNOWN_TEST_EMAILS: Sequence[str] = (
    "customer1@shop.com",
    "customer2@shop.com",
    "customer3@shop.com",
    "admin1@shop.com",
    "admin2@shop.com",
    "test@test.com",
    "demo@demo.com",
    "testuser@example.com",
    "admin@test.com",
)

EMAIL_FIELD = "email"


def compile_patterns(patterns: Iterable[str]) -> List[re.Pattern]:
    return [re.compile(pattern, re.IGNORECASE) for pattern in patterns]


class PatternMatcher(BaseSweep):
    """Builds the "looks like test data" predicate and sweeps every registered collection with it."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        registry: CollectionRegistry,
        keyword_patterns: Iterable[str] = TEST_KEYWORD_PATTERNS,
        email_patterns: Iterable[str] = TEST_EMAIL_PATTERNS,
        known_emails: Iterable[str] = KNOWN_TEST_EMAILS,
        dry_run: bool = False,
        sample_size: Optional[int] = None,
    ):
        super().__init__(db_manager, registry, dry_run=dry_run, sample_size=sample_size)
        self.keyword_patterns = compile_patterns(keyword_patterns)
        self.email_patterns = compile_patterns(email_patterns)
        self.known_emails = list(known_emails)

    @property
    def strategy(self) -> DeletionStrategy:
        return DeletionStrategy.PATTERN

    def build_query(self, descriptor: CollectionDescriptor) -> Dict[str, Any]:
        clauses: List[Dict[str, Any]] = [
            {field: pattern} for field in descriptor.scannable_text_fields for pattern in self.keyword_patterns
        ]
        clauses.extend({EMAIL_FIELD: pattern} for pattern in self.email_patterns)
        if self.known_emails:
            clauses.append({EMAIL_FIELD: {"$in": self.known_emails}})

        if not clauses:
            # Nothing to look for must never turn into "match everything"
            return {"_id": {"$exists": False}}
        return {"$or": clauses}

    async def sweep(self, target: CollectionDescriptor) -> DeletionOutcome:
        return await self.two_phase_delete(target, self.build_query(target))

    async def inspect_candidates(self, descriptor, collection, query, matched):
        if descriptor.protected_role is None:
            return
        protected_query = {"$and": [query, descriptor.protected_role.selection_filter()]}
        try:
            protected = await collection.count_documents(protected_query)
        except ConnectionFailure as e:
            raise DatabaseConnectionError(
                f"Lost connection while inspecting '{descriptor.name}'", collection=descriptor.name, original_error=e
            ) from e
        except PyMongoError as e:
            self.logger.warning("'%s': could not count protected candidates: %s", descriptor.name, e)
            return
        if protected:
            self.logger.warning(
                "'%s': %d of %d candidates have %s=%s and match test-data patterns; they will be deleted",
                descriptor.name,
                protected,
                matched,
                descriptor.protected_role.field,
                descriptor.protected_role.value,
            )
