"""End-to-end reconciliation workflows."""

from .reconcile_flow import (
    discard_reconciliation,
    get_pending,
    load_result,
    reconcile,
    resume_reconciliation,
    submit_review,
)

__all__ = [
    "discard_reconciliation",
    "get_pending",
    "load_result",
    "reconcile",
    "resume_reconciliation",
    "submit_review",
]
