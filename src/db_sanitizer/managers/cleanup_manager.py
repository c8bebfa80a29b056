"""
Deletion mode controller.

Selects the strategies for one invocation, runs them in order collection by collection, and folds
every DeletionOutcome into an explicit RunReport. Modes are mutually exclusive; within Normal mode
the sub-flags restrict which of the three detection sweeps run.

Confirmation is NOT checked here. The CLI refuses to build a controller without it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from db_sanitizer.config import settings
from db_sanitizer.database import DatabaseManager
from db_sanitizer.exceptions import CleanupAborted, DatabaseConnectionError, InvalidOptions
from db_sanitizer.managers.logging_manager import get_logger
from db_sanitizer.managers.report_manager import ReportAggregator
from db_sanitizer.models import CleanupMode, DeletionOutcome, RunReport
from db_sanitizer.registry import CollectionRegistry, default_registry
from db_sanitizer.sweeps import (
    BaseSweep,
    FullWipeSweep,
    OrphanDetector,
    PatternMatcher,
    ProtectedBulkSweep,
    RecencyFilter,
    SchemaResetSweep,
)
from db_sanitizer.sweeps.recency_sweep import utcnow

logger = get_logger(prefix="[CleanupManager]")

BULK_SWEEPS = {
    CleanupMode.PROTECTED_BULK: ProtectedBulkSweep,
    CleanupMode.FULL_WIPE: FullWipeSweep,
    CleanupMode.SCHEMA_RESET: SchemaResetSweep,
}


@dataclass
class CleanupOptions:
    """Engine-level options for one run."""

    mode: CleanupMode = CleanupMode.NORMAL
    patterns_only: bool = False
    recent_only: bool = False
    recent_hours: int = field(default_factory=lambda: settings.CLEANUP_RECENT_HOURS)
    dry_run: bool = False

    def validate(self) -> "CleanupOptions":
        """Raise InvalidOptions for combinations that cannot run. Returns self for chaining."""
        if self.patterns_only and self.recent_only:
            raise InvalidOptions("--patterns-only and --recent-only cannot be combined", option="--recent-only")
        if self.mode != CleanupMode.NORMAL and (self.patterns_only or self.recent_only):
            option = "--patterns-only" if self.patterns_only else "--recent-only"
            raise InvalidOptions(f"{option} only applies to normal cleanup, not {self.mode.value}", option=option)
        if self.recent_hours <= 0:
            raise InvalidOptions(
                f"--recent-hours must be a positive number of hours (got {self.recent_hours})", option="--recent-hours"
            )
        return self


class DeletionModeController:
    """Runs exactly one cleanup mode against the registered collections."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        options: Optional[CleanupOptions] = None,
        registry: CollectionRegistry = default_registry,
        clock: Callable[[], datetime] = utcnow,
        report_aggregator: Optional[ReportAggregator] = None,
    ):
        self.db_manager = db_manager
        self.options = (options or CleanupOptions()).validate()
        self.registry = registry
        self.clock = clock
        self.report_aggregator = report_aggregator or ReportAggregator(db_manager, registry)
        self.logger = logger

    @property
    def mode(self) -> CleanupMode:
        return self.options.mode

    def plan(self) -> List[BaseSweep]:
        """Ordered sweeps for the configured mode."""
        common = {"dry_run": self.options.dry_run}
        if self.mode in BULK_SWEEPS:
            return [BULK_SWEEPS[self.mode](self.db_manager, self.registry, **common)]

        sweeps: List[BaseSweep] = []
        if not self.options.recent_only:
            sweeps.append(PatternMatcher(self.db_manager, self.registry, **common))
        if not self.options.patterns_only:
            sweeps.append(
                RecencyFilter(
                    self.db_manager, self.registry, hours=self.options.recent_hours, clock=self.clock, **common
                )
            )
            sweeps.append(OrphanDetector(self.db_manager, self.registry, **common))
        return sweeps

    async def run(self) -> RunReport:
        """Execute the plan and return the finished report.

        Raises:
            CleanupAborted: the store became unreachable; the exception carries the partial report.
        """
        report = RunReport(mode=self.mode, started_at=self.clock(), dry_run=self.options.dry_run)
        sweeps = self.plan()
        self.logger.info(
            "Starting %s cleanup%s: %s",
            self.mode.value,
            " (dry run)" if self.options.dry_run else "",
            ", ".join(sweep.title for sweep in sweeps),
        )

        try:
            report = report.with_pre_run_counts(await self.report_aggregator.capture_counts())
            for sweep in sweeps:
                self.logger.info("=== %s sweep: %s ===", sweep.title, sweep.describe())
                # Fold each outcome as soon as it exists so an abort keeps everything already deleted
                for target in sweep.targets():
                    outcome: DeletionOutcome = await sweep.sweep(target)
                    report = report.record(outcome)
            report = report.finish(await self.report_aggregator.capture_counts(), finished_at=self.clock())
        except DatabaseConnectionError as e:
            if e.outcome is not None:
                report = report.record(e.outcome)
            report = report.abort(e.message, finished_at=self.clock())
            self.logger.error("Cleanup aborted: %s", e.message)
            raise CleanupAborted(f"Cleanup aborted: {e.message}", report, original_error=e) from e

        self.logger.info("Cleanup finished: %d documents deleted", report.total_deleted)
        return report

