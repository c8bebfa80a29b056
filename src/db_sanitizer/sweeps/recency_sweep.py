"""
Recency sweep: delete documents created or modified inside the recent window.

The window is [now - W, now] on ``createdAt`` or ``updatedAt``. Documents where both are absent or null
fall back to the creation time embedded in their ObjectId. Collections with a protected role (users)
always exclude that role here; callers cannot turn the exclusion off.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from bson import ObjectId

from db_sanitizer.config import settings
from db_sanitizer.database import DatabaseManager
from db_sanitizer.models import DeletionOutcome, DeletionStrategy
from db_sanitizer.registry import CollectionDescriptor, CollectionRegistry

from .base import BaseSweep

TIMESTAMP_FIELDS = ("createdAt", "updatedAt")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecencyFilter(BaseSweep):
    """Sweeps documents that appeared within the last ``hours`` hours."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        registry: CollectionRegistry,
        hours: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
        dry_run: bool = False,
        sample_size: Optional[int] = None,
    ):
        super().__init__(db_manager, registry, dry_run=dry_run, sample_size=sample_size)
        self.hours = settings.CLEANUP_RECENT_HOURS if hours is None else hours
        if self.hours <= 0:
            raise ValueError(f"Recency window must be positive (got {self.hours} hours)")
        self.clock = clock
        self._window: Optional[tuple] = None

    @property
    def strategy(self) -> DeletionStrategy:
        return DeletionStrategy.RECENCY

    @property
    def window(self) -> tuple:
        """(start, end) of the window. Fixed on first use so every collection sees the same cutoff."""
        if self._window is None:
            now = self.clock()
            self._window = (now - timedelta(hours=self.hours), now)
        return self._window

    def build_query(self, descriptor: CollectionDescriptor) -> Dict[str, Any]:
        start, end = self.window
        in_window = {"$gte": start, "$lte": end}
        recency: Dict[str, Any] = {
            "$or": [
                {"createdAt": in_window},
                {"updatedAt": in_window},
                {
                    "createdAt": None,
                    "updatedAt": None,
                    "_id": {"$gte": ObjectId.from_datetime(start)},
                },
            ]
        }
        if descriptor.protected_role is None:
            return recency
        return {"$and": [recency, descriptor.protected_role.exclusion_filter()]}

    def describe(self) -> str:
        start, end = self.window
        return f"documents created or updated between {start.isoformat()} and {end.isoformat()} ({self.hours}h)"

    async def sweep(self, target: CollectionDescriptor) -> DeletionOutcome:
        return await self.two_phase_delete(target, self.build_query(target))
