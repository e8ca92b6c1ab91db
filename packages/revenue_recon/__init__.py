"""Public interface for the ``revenue_recon`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
"""

from .api import (
    discard_reconciliation,
    get_pending,
    load_result,
    reconcile,
    reconcile_csv_files,
    resume_reconciliation,
    submit_review,
)
from .errors import (
    FeedFormatError,
    PendingReconciliationNotFound,
    ReconError,
    RuleSetError,
    StorageError,
)
from .models import (
    CategoryRule,
    Classification,
    ComparisonRecord,
    FeedARow,
    FeedBRow,
    ProductRecord,
    ReconcileOutcome,
    ReconciliationResult,
    ReconSession,
    ReviewDecision,
)
from .settings import EngineSettings

__all__ = [
    # API
    "reconcile",
    "reconcile_csv_files",
    "get_pending",
    "submit_review",
    "resume_reconciliation",
    "discard_reconciliation",
    "load_result",
    # Configuration
    "EngineSettings",
    # Models / types
    "FeedARow",
    "FeedBRow",
    "CategoryRule",
    "Classification",
    "ProductRecord",
    "ReconSession",
    "ComparisonRecord",
    "ReconciliationResult",
    "ReconcileOutcome",
    "ReviewDecision",
    # Errors
    "ReconError",
    "FeedFormatError",
    "StorageError",
    "PendingReconciliationNotFound",
    "RuleSetError",
]
