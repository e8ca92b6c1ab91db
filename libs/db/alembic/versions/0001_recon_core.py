# ruff: noqa: I001
"""Reconciliation core tables.

Revision ID: 0001_recon_core
Revises: None
Create Date: 2026-10-17
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_recon_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _money(name: str) -> sa.Column:
    return sa.Column(name, sa.Numeric(18, 4), nullable=False)


def upgrade() -> None:
    # recon_sessions
    op.create_table(
        "recon_sessions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("period", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        _money("feed_a_total"),
        _money("feed_b_gross"),
        _money("feed_b_fees"),
        _money("feed_b_net"),
        _money("non_reconcilable_total"),
        sa.Column("matched_count", sa.Integer(), nullable=False),
        sa.Column("unmatched_count", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("origin_pending_id", sa.String(36), nullable=True, unique=True),
        sa.CheckConstraint(
            "status in ('completed','archived')", name="ck_recon_sessions_status"
        ),
    )

    # recon_customer_comparisons
    op.create_table(
        "recon_customer_comparisons",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "session_id",
            sa.String(36),
            sa.ForeignKey("recon_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("identity", sa.Text(), nullable=False),
        _money("feed_a_total"),
        _money("feed_b_gross"),
        _money("feed_b_fee"),
        _money("feed_b_net"),
        _money("difference"),
        sa.Column("match_status", sa.String(), nullable=False),
        sa.Column("items", sa.Text(), nullable=False),
        sa.Column("transaction_dates", sa.Text(), nullable=False),
        sa.Column("transaction_count", sa.Integer(), nullable=False),
        sa.CheckConstraint(
            "match_status in ('match','small_diff','large_diff','only_in_A','only_in_B')",
            name="ck_recon_comparisons_match_status",
        ),
    )
    op.create_index(
        "ix_recon_comparisons_session",
        "recon_customer_comparisons",
        ["session_id", "position"],
    )

    # recon_category_summaries
    op.create_table(
        "recon_category_summaries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "session_id",
            sa.String(36),
            sa.ForeignKey("recon_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("category", sa.Text(), nullable=False),
        sa.Column("transaction_count", sa.Integer(), nullable=False),
        _money("total_amount"),
        _money("total_tax"),
        sa.Column("tax_rate", sa.Numeric(5, 4), nullable=False),
        sa.Column("ledger_code", sa.String(), nullable=False),
        sa.Column("group_tag", sa.String(), nullable=False),
        sa.Column("percentage", sa.Numeric(7, 2), nullable=False),
    )
    op.create_index(
        "ix_recon_category_summaries_session",
        "recon_category_summaries",
        ["session_id", "position"],
    )

    # recon_category_items
    op.create_table(
        "recon_category_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "session_id",
            sa.String(36),
            sa.ForeignKey("recon_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("category", sa.Text(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        _money("amount"),
        sa.Column("count", sa.Integer(), nullable=False),
        sa.Column("dates", sa.JSON(), nullable=False),
        sa.Column("special_handling", sa.String(), nullable=True),
        sa.Column("handling_periods", sa.Integer(), nullable=True),
    )
    op.create_index(
        "ix_recon_category_items_session_category",
        "recon_category_items",
        ["session_id", "category", "position"],
    )

    # recon_channel_summaries
    op.create_table(
        "recon_channel_summaries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "session_id",
            sa.String(36),
            sa.ForeignKey("recon_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("channel", sa.Text(), nullable=False),
        sa.Column("transaction_count", sa.Integer(), nullable=False),
        _money("total_amount"),
        sa.Column("percentage", sa.Numeric(7, 2), nullable=False),
        sa.Column("settles_via_feed_b", sa.Boolean(), nullable=False),
    )

    # recon_products
    op.create_table(
        "recon_products",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("description", sa.Text(), nullable=False, unique=True),
        sa.Column("category", sa.Text(), nullable=False),
        sa.Column("tax_rate", sa.Numeric(5, 4), nullable=False),
        sa.Column("ledger_code", sa.String(), nullable=False),
        sa.Column("special_handling", sa.String(), nullable=True),
        sa.Column("handling_periods", sa.Integer(), nullable=True),
        sa.Column("handling_start", sa.Date(), nullable=True),
        sa.Column("handling_end", sa.Date(), nullable=True),
        sa.Column("approved", sa.Boolean(), nullable=False),
        sa.Column("first_seen", sa.Date(), nullable=True),
        sa.Column("last_seen", sa.Date(), nullable=True),
        sa.Column("transaction_count", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "special_handling IS NULL OR special_handling in ('accrual','spread')",
            name="ck_recon_products_special_handling",
        ),
        sa.CheckConstraint(
            "tax_rate >= 0 AND tax_rate <= 1",
            name="ck_recon_products_tax_rate",
        ),
    )

    # recon_category_rules (operator overrides; empty table means defaults apply)
    op.create_table(
        "recon_category_rules",
        sa.Column("name", sa.Text(), primary_key=True),
        sa.Column("priority", sa.Integer(), nullable=False, unique=True),
        sa.Column("keywords", sa.JSON(), nullable=False),
        sa.Column("exclusions", sa.JSON(), nullable=False),
        sa.Column("pattern", sa.Text(), nullable=True),
        sa.Column("tax_rate", sa.Numeric(5, 4), nullable=False),
        sa.Column("ledger_code", sa.String(), nullable=False),
        sa.Column("group_tag", sa.String(), nullable=False),
        sa.Column("special_handling", sa.String(), nullable=True),
        sa.Column("handling_periods", sa.Integer(), nullable=True),
        sa.Column("category", sa.Text(), nullable=True),
    )

    # recon_pending_reconciliations
    op.create_table(
        "recon_pending_reconciliations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("period", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("new_item_count", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("recon_pending_reconciliations")
    op.drop_table("recon_category_rules")
    op.drop_table("recon_products")
    op.drop_table("recon_channel_summaries")
    op.drop_index(
        "ix_recon_category_items_session_category", table_name="recon_category_items"
    )
    op.drop_table("recon_category_items")
    op.drop_index(
        "ix_recon_category_summaries_session", table_name="recon_category_summaries"
    )
    op.drop_table("recon_category_summaries")
    op.drop_index("ix_recon_comparisons_session", table_name="recon_customer_comparisons")
    op.drop_table("recon_customer_comparisons")
    op.drop_table("recon_sessions")
