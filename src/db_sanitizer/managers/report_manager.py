"""
Report aggregator: document counts before and after a run, and the rendered reconciliation report.
"""

from typing import Dict, List

from pymongo.errors import ConnectionFailure, PyMongoError

from db_sanitizer.database import DatabaseManager
from db_sanitizer.exceptions import DatabaseConnectionError, PredicateEvaluationError
from db_sanitizer.managers.logging_manager import get_logger
from db_sanitizer.models import OutcomeStatus, RunReport
from db_sanitizer.registry import CollectionRegistry

logger = get_logger(prefix="[ReportManager]")

RECOMMENDATIONS_AFTER_DELETE = (
    "Consider running the seed script to restore the data the application needs",
    "Check that the application still behaves normally",
    "Watch application performance after the cleanup",
)


class ReportAggregator:
    def __init__(self, db_manager: DatabaseManager, registry: CollectionRegistry):
        self.db_manager = db_manager
        self.registry = registry
        self.logger = logger

    async def capture_counts(self) -> Dict[str, int]:
        """Document count per registered collection. Missing collections count as 0."""
        counts: Dict[str, int] = {}
        for name in self.registry.names:
            try:
                counts[name] = await self.db_manager.count_documents(name)
            except DatabaseConnectionError:
                raise
            except PredicateEvaluationError as e:
                self.logger.warning("Could not count '%s', reporting 0: %s", name, e.message)
                counts[name] = 0
            except ConnectionFailure as e:
                raise DatabaseConnectionError(
                    f"Lost connection while counting '{name}'", collection=name, original_error=e
                ) from e
            except PyMongoError as e:
                self.logger.warning("Could not count '%s', reporting 0: %s", name, e)
                counts[name] = 0
        return counts

    def format_report(self, report: RunReport) -> List[str]:
        lines: List[str] = []
        title = "CLEANUP REPORT (DRY RUN)" if report.dry_run else "CLEANUP REPORT"
        lines.append(f"=== {title} ===")
        lines.append(f"Mode: {report.mode.value}")
        lines.append(f"Total documents deleted: {report.total_deleted}")
        if report.duration_seconds is not None:
            lines.append(f"Duration: {report.duration_seconds:.2f}s")
        if report.aborted:
            lines.append(f"ABORTED: {report.error}")

        if report.outcomes:
            lines.append("Per collection:")
            for name, outcomes in report.per_collection.items():
                total = sum(o.deleted_count for o in outcomes)
                breakdown = []
                for o in outcomes:
                    entry = f"{o.strategy.value}: {o.deleted_count}"
                    if o.status == OutcomeStatus.DRY_RUN:
                        entry = f"{o.strategy.value}: {o.matched_count} would be deleted"
                    elif o.status == OutcomeStatus.SKIPPED:
                        entry += " (skipped)"
                    elif o.status == OutcomeStatus.FAILED:
                        entry += f" (FAILED after {o.matched_count} matched: {o.error})"
                    if o.detail:
                        entry += f" [{o.detail}]"
                    breakdown.append(entry)
                lines.append(f"   {name}: {total} total ({', '.join(breakdown)})")

        if report.pre_run_counts:
            lines.append("Document counts (before -> after):")
            deltas = report.count_deltas()
            for name, before in report.pre_run_counts.items():
                if name in report.post_run_counts:
                    lines.append(f"   {name}: {before} -> {report.post_run_counts[name]} ({-deltas[name]:+d})")
                else:
                    lines.append(f"   {name}: {before} -> ?")
            grew = sorted(name for name, delta in deltas.items() if delta < 0)
            if grew:
                lines.append(
                    "WARNING: document count grew during the run in "
                    + ", ".join(grew)
                    + " (another process was writing)"
                )

        lines.append("Recommendations:")
        if report.dry_run:
            lines.append("   Dry run only: re-run without --dry-run to delete the documents listed above")
        elif report.total_deleted > 0:
            lines.append("   Database cleanup completed")
            lines.extend(f"   {text}" for text in RECOMMENDATIONS_AFTER_DELETE)
        elif not report.aborted:
            lines.append("   No test data found, the database is already clean")
        if report.failed_outcomes():
            lines.append(
                f"   {len(report.failed_outcomes())} collection(s) failed; re-run once the errors above are fixed"
            )
        return lines

    def log_report(self, report: RunReport):
        for line in self.format_report(report):
            if line.startswith(("WARNING", "ABORTED")):
                self.logger.warning(line)
            else:
                self.logger.info(line)
