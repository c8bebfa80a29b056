"""Data models for the cleanup engine."""

from .cleanup_models import DeletionOutcome, RunReport
from .enums import CleanupMode, DeletionStrategy, OutcomeStatus

__all__ = [
    "CleanupMode",
    "DeletionOutcome",
    "DeletionStrategy",
    "OutcomeStatus",
    "RunReport",
]
