"""Data models and type aliases for ``revenue_recon``.

Engine values are frozen dataclasses; everything that crosses a trust or
persistence boundary (operator review decisions, the serialized pending
payload) is a pydantic model so it is validated on the way in.

All money is ``decimal.Decimal``. Feed rows keep the exported cell text for
amounts; the aggregator runs them through :func:`normalizers.parse_amount`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# ---------------------------------------------------------------------------
# Closed vocabularies
# ---------------------------------------------------------------------------

MatchStatus = Literal["match", "small_diff", "large_diff", "only_in_A", "only_in_B"]
"""Tier assigned to one identity by the matcher."""

SpecialHandlingKind = Literal["accrual", "spread"]
SessionStatus = Literal["completed", "archived"]
GroupTag = Literal["yoga", "horeca"]

UNKNOWN_CHANNEL = "Unknown"


# ---------------------------------------------------------------------------
# Feed rows
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FeedARow:
    """One booking-system line item."""

    channel: str
    description: str
    date: str
    amount: str
    tax: str = "0"
    identity: str = ""


@dataclass(frozen=True, slots=True)
class FeedBRow:
    """One payment-processor settlement row.

    ``status`` and ``reporting_category`` are both optional because the two
    known export layouts carry only one of them.
    """

    identity: str
    gross: str
    fee: str = "0"
    status: str = ""
    reporting_category: str = ""

    @property
    def is_completed_charge(self) -> bool:
        return (
            self.reporting_category.strip().lower() == "charge"
            or self.status.strip().lower() == "paid"
        )


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SpecialHandling:
    """Revenue-recognition treatment for a category or product.

    ``accrual`` defers revenue over ``periods`` (e.g. a 14-month training);
    ``spread`` divides it evenly (e.g. a yearly membership over 12 months).
    Explicit ``start``/``end`` dates replace ``periods`` when known.
    """

    kind: SpecialHandlingKind
    periods: int | None = None
    start: date | None = None
    end: date | None = None


@dataclass(frozen=True, slots=True)
class CategoryRule:
    """One entry of the ordered keyword ruleset.

    A rule with neither keywords nor a pattern is the catch-all. ``pattern`` is
    a structural regular expression matched against the whole (trimmed)
    description; ``category`` is the reported category when it differs from
    the rule's unique ``name`` (structural rules share a category with a
    keyword rule).
    """

    name: str
    priority: int
    tax_rate: Decimal
    ledger_code: str
    group_tag: str
    keywords: tuple[str, ...] = ()
    exclusions: tuple[str, ...] = ()
    pattern: str | None = None
    special_handling: SpecialHandling | None = None
    category: str | None = None

    @property
    def reported_category(self) -> str:
        return self.category or self.name

    @property
    def is_catch_all(self) -> bool:
        return not self.keywords and not self.pattern


@dataclass(frozen=True, slots=True)
class Classification:
    """Result of classifying one description."""

    category: str
    tax_rate: Decimal
    ledger_code: str
    special_handling: SpecialHandling | None = None
    group_tag: str = "yoga"
    # "product" when an approved Product Memory record decided, else "rule".
    source: Literal["product", "rule"] = "rule"


@dataclass(frozen=True, slots=True)
class ProductRecord:
    """Durable per-description classification override."""

    description: str
    category: str
    tax_rate: Decimal
    ledger_code: str
    special_handling: SpecialHandling | None = None
    approved: bool = False
    first_seen: date | None = None
    last_seen: date | None = None
    transaction_count: int = 0
    id: int | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Sessions and derived records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SessionTotals:
    feed_a_total: Decimal
    feed_b_gross: Decimal
    feed_b_fees: Decimal
    feed_b_net: Decimal
    non_reconcilable_total: Decimal
    matched_count: int
    unmatched_count: int


@dataclass(frozen=True, slots=True)
class ReconSession:
    id: str
    period: str
    created_at: datetime
    totals: SessionTotals
    status: SessionStatus = "completed"
    origin_pending_id: str | None = None


@dataclass(frozen=True, slots=True)
class ComparisonRecord:
    """Feed-A vs feed-B totals for one identity.

    ``difference`` is signed (feed-A total minus feed-B gross); ``items`` and
    ``transaction_dates`` are comma-joined in first-seen order.
    """

    identity: str
    feed_a_total: Decimal
    feed_b_gross: Decimal
    feed_b_fee: Decimal
    feed_b_net: Decimal
    difference: Decimal
    match_status: MatchStatus
    items: str = ""
    transaction_dates: str = ""
    transaction_count: int = 0


@dataclass(frozen=True, slots=True)
class CategorySummaryRecord:
    category: str
    transaction_count: int
    total_amount: Decimal
    total_tax: Decimal
    tax_rate: Decimal
    ledger_code: str
    group_tag: str
    percentage: Decimal


@dataclass(frozen=True, slots=True)
class CategoryItemDetail:
    """Drill-down line: one distinct description within a category."""

    description: str
    amount: Decimal
    count: int
    dates: tuple[str, ...] = ()
    special_handling: SpecialHandlingKind | None = None
    handling_periods: int | None = None


@dataclass(frozen=True, slots=True)
class ChannelSummaryRecord:
    channel: str
    transaction_count: int
    total_amount: Decimal
    percentage: Decimal
    settles_via_feed_b: bool


@dataclass(frozen=True, slots=True)
class ReconciliationResult:
    """A session plus every derived record set, as consumed by reporting."""

    session: ReconSession
    comparisons: list[ComparisonRecord]
    category_summaries: list[CategorySummaryRecord]
    category_items: dict[str, list[CategoryItemDetail]]
    channel_summaries: list[ChannelSummaryRecord]


# ---------------------------------------------------------------------------
# Review workflow
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NewItemCandidate:
    """A description without an approved Product Memory record.

    ``suggestion`` comes from the keyword ruleset only and is never applied
    without an operator decision.
    """

    description: str
    suggestion: Classification
    transaction_count: int
    total_amount: Decimal


class PendingPayload(BaseModel):
    """Serialized state of a suspended run (stored as JSON)."""

    model_config = ConfigDict(frozen=True)

    version: Literal[1] = 1
    feed_a: list[FeedARow]
    feed_b: list[FeedBRow]
    candidates: list[NewItemCandidate] = []


@dataclass(frozen=True, slots=True)
class PendingReconciliation:
    id: str
    period: str
    created_at: datetime
    payload: PendingPayload
    new_item_count: int
    status: Literal["awaiting_review"] = "awaiting_review"

    @property
    def candidates(self) -> list[NewItemCandidate]:
        return self.payload.candidates


class ReviewDecision(BaseModel):
    """An operator's classification for one description.

    A decision carries no counts; Product Memory counts only grow from the
    rows of finalized runs. Validation errors surface as
    ``pydantic.ValidationError``.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    description: str
    category: str
    tax_rate: Decimal
    ledger_code: str
    special_handling: SpecialHandlingKind | None = None
    handling_periods: int | None = None
    handling_start: date | None = None
    handling_end: date | None = None

    @field_validator("description", "category", "ledger_code")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("tax_rate")
    @classmethod
    def _rate_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 1:
            raise ValueError("tax_rate must be between 0 and 1")
        return v

    @field_validator("handling_periods")
    @classmethod
    def _positive_periods(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("handling_periods must be positive")
        return v

    @model_validator(mode="after")
    def _check_handling(self) -> ReviewDecision:
        if self.special_handling is None and (
            self.handling_periods is not None
            or self.handling_start is not None
            or self.handling_end is not None
        ):
            raise ValueError("handling parameters require special_handling")
        if (
            self.handling_start is not None
            and self.handling_end is not None
            and self.handling_start > self.handling_end
        ):
            raise ValueError("handling_start must not be after handling_end")
        return self

    def special(self) -> SpecialHandling | None:
        if self.special_handling is None:
            return None
        return SpecialHandling(
            kind=self.special_handling,
            periods=self.handling_periods,
            start=self.handling_start,
            end=self.handling_end,
        )


@dataclass(frozen=True, slots=True)
class ReconcileOutcome:
    """Either a finished result or a pending run awaiting review."""

    result: ReconciliationResult | None = None
    pending: PendingReconciliation | None = None

    @property
    def awaiting_review(self) -> bool:
        return self.pending is not None


__all__ = [
    "MatchStatus",
    "SpecialHandlingKind",
    "SessionStatus",
    "GroupTag",
    "UNKNOWN_CHANNEL",
    "FeedARow",
    "FeedBRow",
    "SpecialHandling",
    "CategoryRule",
    "Classification",
    "ProductRecord",
    "SessionTotals",
    "ReconSession",
    "ComparisonRecord",
    "CategorySummaryRecord",
    "CategoryItemDetail",
    "ChannelSummaryRecord",
    "ReconciliationResult",
    "NewItemCandidate",
    "PendingPayload",
    "PendingReconciliation",
    "ReviewDecision",
    "ReconcileOutcome",
]
