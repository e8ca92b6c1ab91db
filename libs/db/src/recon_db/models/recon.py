from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------
# Core: recon_sessions
# ---------------------------


class ReconSessionRow(Base):
    __tablename__ = "recon_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    period: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    # Feed-A total restricted to reconcilable channels.
    feed_a_total: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    feed_b_gross: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    feed_b_fees: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    feed_b_net: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    non_reconcilable_total: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    matched_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unmatched_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String, nullable=False, default="completed")
    # Set when the session was produced by resuming a pending reconciliation.
    origin_pending_id: Mapped[str | None] = mapped_column(String(36), nullable=True, unique=True)

    __table_args__ = (
        CheckConstraint("status in ('completed','archived')", name="ck_recon_sessions_status"),
    )


# ---------------------------
# Derived: per-session result sets
# ---------------------------


class CustomerComparisonRow(Base):
    __tablename__ = "recon_customer_comparisons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recon_sessions.id", ondelete="CASCADE"), nullable=False
    )
    # Ordering within the session (descending absolute difference).
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    identity: Mapped[str] = mapped_column(Text, nullable=False)
    feed_a_total: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    feed_b_gross: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    feed_b_fee: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    feed_b_net: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    difference: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    match_status: Mapped[str] = mapped_column(String, nullable=False)
    items: Mapped[str] = mapped_column(Text, nullable=False, default="")
    transaction_dates: Mapped[str] = mapped_column(Text, nullable=False, default="")
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint(
            "match_status in ('match','small_diff','large_diff','only_in_A','only_in_B')",
            name="ck_recon_comparisons_match_status",
        ),
        Index("ix_recon_comparisons_session", "session_id", "position"),
    )


class CategorySummaryRow(Base):
    __tablename__ = "recon_category_summaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recon_sessions.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    total_tax: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    ledger_code: Mapped[str] = mapped_column(String, nullable=False)
    group_tag: Mapped[str] = mapped_column(String, nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False)

    __table_args__ = (Index("ix_recon_category_summaries_session", "session_id", "position"),)


class CategoryItemRow(Base):
    __tablename__ = "recon_category_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recon_sessions.id", ondelete="CASCADE"), nullable=False
    )
    category: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    dates: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    special_handling: Mapped[str | None] = mapped_column(String, nullable=True)
    handling_periods: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        Index("ix_recon_category_items_session_category", "session_id", "category", "position"),
    )


class ChannelSummaryRow(Base):
    __tablename__ = "recon_channel_summaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recon_sessions.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    channel: Mapped[str] = mapped_column(Text, nullable=False)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False)
    settles_via_feed_b: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


# ---------------------------
# Product memory and ruleset overrides
# ---------------------------


class ProductRow(Base):
    __tablename__ = "recon_products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    ledger_code: Mapped[str] = mapped_column(String, nullable=False)
    special_handling: Mapped[str | None] = mapped_column(String, nullable=True)
    handling_periods: Mapped[int | None] = mapped_column(Integer, nullable=True)
    handling_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    handling_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    first_seen: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_seen: Mapped[date | None] = mapped_column(Date, nullable=True)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "special_handling IS NULL OR special_handling in ('accrual','spread')",
            name="ck_recon_products_special_handling",
        ),
        CheckConstraint(
            "tax_rate >= 0 AND tax_rate <= 1",
            name="ck_recon_products_tax_rate",
        ),
    )


class CategoryRuleRow(Base):
    __tablename__ = "recon_category_rules"

    name: Mapped[str] = mapped_column(Text, primary_key=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    keywords: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    exclusions: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    pattern: Mapped[str | None] = mapped_column(Text, nullable=True)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    ledger_code: Mapped[str] = mapped_column(String, nullable=False)
    group_tag: Mapped[str] = mapped_column(String, nullable=False)
    special_handling: Mapped[str | None] = mapped_column(String, nullable=True)
    handling_periods: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # The category a structural rule reports (defaults to ``name``).
    category: Mapped[str | None] = mapped_column(Text, nullable=True)


# ---------------------------
# Resumable workflow state
# ---------------------------


class PendingReconciliationRow(Base):
    __tablename__ = "recon_pending_reconciliations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    period: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    # Serialized rows of both feeds plus the candidate list (JSON document).
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    new_item_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String, nullable=False, default="awaiting_review")


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
