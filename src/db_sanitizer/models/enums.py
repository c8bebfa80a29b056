"""Enum definitions for the cleanup engine."""

from enum import Enum


class DeletionStrategy(str, Enum):
    """Detection strategy or bulk operation that produced a deletion."""

    PATTERN = "pattern"
    RECENCY = "recency"
    ORPHAN = "orphan"
    PROTECTED_BULK = "protectedBulk"
    FULL_WIPE = "fullWipe"
    SCHEMA_RESET = "schemaReset"


class OutcomeStatus(str, Enum):
    """How a strategy finished on one collection."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"
    DRY_RUN = "dryRun"


class CleanupMode(str, Enum):
    """Top-level mode of a run. Exactly one per invocation."""

    NORMAL = "normal"
    PROTECTED_BULK = "protectedBulk"
    FULL_WIPE = "fullWipe"
    SCHEMA_RESET = "schemaReset"
