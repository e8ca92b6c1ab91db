"""recon_db: shared database library (SQLAlchemy/Alembic).

Public exports
--------------
- ``Base`` and ``metadata`` for Alembic autogenerate/targeting
- ORM models in ``recon_db.models.recon`` (re-exported for convenience)
- Engine/session helpers in ``recon_db.client``
"""

from __future__ import annotations

from .models.recon import (
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

# Re-export SQLAlchemy metadata for Alembic's env.py
metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "ReconSessionRow",
    "CustomerComparisonRow",
    "CategorySummaryRow",
    "CategoryItemRow",
    "ChannelSummaryRow",
    "ProductRow",
    "CategoryRuleRow",
    "PendingReconciliationRow",
]
