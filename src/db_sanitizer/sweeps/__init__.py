"""Detection strategies and bulk operations applied by the cleanup controller."""

from .base import BaseSweep
from .bulk_sweeps import FullWipeSweep, ProtectedBulkSweep, SchemaResetSweep
from .orphan_sweep import OrphanDetector
from .pattern_sweep import PatternMatcher
from .recency_sweep import RecencyFilter

__all__ = [
    "BaseSweep",
    "FullWipeSweep",
    "OrphanDetector",
    "PatternMatcher",
    "ProtectedBulkSweep",
    "RecencyFilter",
    "SchemaResetSweep",
]
