"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the reconciliation domain models used by ``revenue_recon``.
"""

from .recon import (
    Base,
    CategoryItemRow,
    CategoryRuleRow,
    CategorySummaryRow,
    ChannelSummaryRow,
    CustomerComparisonRow,
    PendingReconciliationRow,
    ProductRow,
    ReconSessionRow,
)

__all__ = [
    "Base",
    "ReconSessionRow",
    "CustomerComparisonRow",
    "CategorySummaryRow",
    "CategoryItemRow",
    "ChannelSummaryRow",
    "ProductRow",
    "CategoryRuleRow",
    "PendingReconciliationRow",
]
