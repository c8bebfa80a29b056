"""
Value types produced by a cleanup run.

DeletionOutcome is appended once per (collection, strategy) pair and never mutated.
RunReport is rebuilt on every record() call; totals are always derived from its outcomes.
"""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from db_sanitizer.models.enums import CleanupMode, DeletionStrategy, OutcomeStatus


@dataclass(frozen=True)
class DeletionOutcome:
    """Result of one strategy on one collection."""

    collection: str
    strategy: DeletionStrategy
    deleted_count: int = 0
    matched_count: int = 0
    status: OutcomeStatus = OutcomeStatus.SUCCESS
    error: Optional[str] = None
    detail: Optional[str] = None

    def __post_init__(self):
        if self.deleted_count < 0:
            raise ValueError(f"deleted_count cannot be negative (got {self.deleted_count})")
        if self.matched_count < 0:
            raise ValueError(f"matched_count cannot be negative (got {self.matched_count})")

    @classmethod
    def skipped(cls, collection: str, strategy: DeletionStrategy, reason: str) -> "DeletionOutcome":
        return cls(collection=collection, strategy=strategy, status=OutcomeStatus.SKIPPED, error=reason)

    @classmethod
    def failed(
        cls, collection: str, strategy: DeletionStrategy, error: str, matched_count: int = 0, detail: str = None
    ) -> "DeletionOutcome":
        return cls(
            collection=collection,
            strategy=strategy,
            matched_count=matched_count,
            status=OutcomeStatus.FAILED,
            error=error,
            detail=detail,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["strategy"] = self.strategy.value
        data["status"] = self.status.value
        return data


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RunReport:
    """Reconciliation report for one invocation."""

    mode: CleanupMode = CleanupMode.NORMAL
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None
    dry_run: bool = False
    pre_run_counts: Dict[str, int] = field(default_factory=dict)
    post_run_counts: Dict[str, int] = field(default_factory=dict)
    outcomes: Tuple[DeletionOutcome, ...] = ()
    aborted: bool = False
    error: Optional[str] = None

    def record(self, outcome: DeletionOutcome) -> "RunReport":
        """Return a new report with ``outcome`` appended."""
        return replace(self, outcomes=self.outcomes + (outcome,))

    def with_pre_run_counts(self, counts: Dict[str, int]) -> "RunReport":
        return replace(self, pre_run_counts=dict(counts))

    def _now(self) -> datetime:
        # naive when started_at is naive
        now = _utcnow()
        return now.replace(tzinfo=None) if self.started_at.tzinfo is None else now

    def finish(self, post_run_counts: Dict[str, int], finished_at: datetime = None) -> "RunReport":
        return replace(self, post_run_counts=dict(post_run_counts), finished_at=finished_at or self._now())

    def abort(self, error: str, finished_at: datetime = None) -> "RunReport":
        return replace(self, aborted=True, error=error, finished_at=finished_at or self._now())

    @property
    def total_deleted(self) -> int:
        return sum(outcome.deleted_count for outcome in self.outcomes)

    @property
    def per_collection(self) -> Dict[str, List[DeletionOutcome]]:
        grouped: Dict[str, List[DeletionOutcome]] = {}
        for outcome in self.outcomes:
            grouped.setdefault(outcome.collection, []).append(outcome)
        return grouped

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def deleted_by(self, collection: str, strategy: DeletionStrategy) -> int:
        return sum(
            o.deleted_count for o in self.outcomes if o.collection == collection and o.strategy == strategy
        )

    def failed_outcomes(self) -> List[DeletionOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED]

    def count_deltas(self) -> Dict[str, int]:
        """pre - post per collection. Negative values mean something was written during the run."""
        return {
            name: pre - self.post_run_counts.get(name, 0)
            for name, pre in self.pre_run_counts.items()
            if name in self.post_run_counts
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "dry_run": self.dry_run,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "total_deleted": self.total_deleted,
            "pre_run_counts": dict(self.pre_run_counts),
            "post_run_counts": dict(self.post_run_counts),
            "per_collection": {
                name: [o.to_dict() for o in outcomes] for name, outcomes in self.per_collection.items()
            },
            "aborted": self.aborted,
            "error": self.error,
        }
