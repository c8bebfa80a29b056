"""
Sanitizer Exceptions

Error taxonomy for the cleanup engine. Only DatabaseConnectionError / CleanupAborted and the
boundary errors (ConfirmationMissing, InvalidOptions) are fatal for a run; CollectionNotFound and
PredicateEvaluationError are recorded against a single collection and the run continues.
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from db_sanitizer.models.cleanup_models import DeletionOutcome, RunReport


class SanitizerError(Exception):
    """Base sanitizer exception with enhanced context."""

    def __init__(self, message: str, error_code: str = None, context: Dict[str, Any] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "SANITIZER_ERROR"
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to a dictionary for reporting."""
        result = {
            "error": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.context:
            result["context"] = self.context
        return result


class DatabaseConnectionError(SanitizerError):
    """The document store is unreachable. Fatal for the whole run.

    When raised from inside a sweep, ``outcome`` holds the failed outcome for the
    collection being processed so the partial result can still be reported.
    """

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        outcome: Optional["DeletionOutcome"] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            "DATABASE_CONNECTION_ERROR",
            {"collection": collection, "original_error": str(original_error) if original_error else None},
        )
        self.collection = collection
        self.outcome = outcome
        self.original_error = original_error


class CollectionNotFound(SanitizerError):
    """A registered collection does not exist in the database."""

    def __init__(self, message: str, collection: str = None):
        super().__init__(message, "COLLECTION_NOT_FOUND", {"collection": collection})
        self.collection = collection


class PredicateEvaluationError(SanitizerError):
    """The store rejected a predicate or failed while applying it to one collection."""

    def __init__(
        self,
        message: str,
        collection: str = None,
        strategy: str = None,
        matched_count: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            "PREDICATE_EVALUATION_ERROR",
            {
                "collection": collection,
                "strategy": strategy,
                "matched_count": matched_count,
                "original_error": str(original_error) if original_error else None,
            },
        )
        self.collection = collection
        self.strategy = strategy
        self.matched_count = matched_count
        self.original_error = original_error


class ConfirmationMissing(SanitizerError):
    """A destructive run was requested without the explicit confirmation flag."""

    def __init__(self, message: str = "Refusing to run without --confirm"):
        super().__init__(message, "CONFIRMATION_MISSING")


class InvalidOptions(SanitizerError):
    """The requested combination of modes and flags cannot be executed."""

    def __init__(self, message: str, option: str = None):
        super().__init__(message, "INVALID_OPTIONS", {"option": option})


class CleanupAborted(SanitizerError):
    """A run stopped early; ``report`` holds every outcome recorded before the failure."""

    def __init__(self, message: str, report: "RunReport", original_error: Optional[Exception] = None):
        super().__init__(message, "CLEANUP_ABORTED", {"original_error": str(original_error) if original_error else None})
        self.report = report
        self.original_error = original_error
