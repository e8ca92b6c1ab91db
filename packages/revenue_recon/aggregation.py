"""Feed aggregation: per-identity, per-category and per-channel accumulators.

Feed A (booking system)
    Every row is classified and counted into category and channel totals.
    Only rows on a reconcilable channel that carry an identity are summed
    per identity; rows on other channels add to ``non_reconcilable_total``.

Feed B (payment processor)
    Only completed charges with an identity are summed per identity.

Outputs are plain ordered structures so that aggregating the same input twice
yields identical results regardless of dict iteration details.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from .categories import DEFAULT_RULES, classify, rule_for_category
from .logging_setup import get_logger, log_event
from .models import (
    UNKNOWN_CHANNEL,
    CategoryItemDetail,
    CategoryRule,
    CategorySummaryRecord,
    ChannelSummaryRecord,
    Classification,
    FeedARow,
    FeedBRow,
    ProductRecord,
)
from .normalizers import ZERO, normalize_identity, parse_amount
from .settings import EngineSettings

logger = get_logger("revenue_recon.aggregation")

_CENT = Decimal("0.01")
_HUNDRED = Decimal(100)


def percentage(amount: Decimal, grand_total: Decimal) -> Decimal:
    """``amount / grand_total * 100`` to two places; ``0.00`` for a zero total."""

    if grand_total == 0:
        return Decimal("0.00")
    return (amount / grand_total * _HUNDRED).quantize(_CENT, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Accumulated values
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class IdentityTotalsA:
    total: Decimal
    items: tuple[str, ...]
    dates: tuple[str, ...]
    transaction_count: int


@dataclass(frozen=True, slots=True)
class IdentityTotalsB:
    gross: Decimal
    fee: Decimal

    @property
    def net(self) -> Decimal:
        return self.gross - self.fee


@dataclass(frozen=True, slots=True)
class FeedAggregates:
    feed_a_by_identity: dict[str, IdentityTotalsA]
    feed_b_by_identity: dict[str, IdentityTotalsB]
    category_summaries: list[CategorySummaryRecord]
    category_items: dict[str, list[CategoryItemDetail]]
    channel_summaries: list[ChannelSummaryRecord]
    non_reconcilable_total: Decimal
    feed_b_gross: Decimal
    feed_b_fees: Decimal
    # Feed-A row count per non-empty description.
    description_counts: dict[str, int]

    @property
    def feed_a_total(self) -> Decimal:
        return sum((v.total for v in self.feed_a_by_identity.values()), ZERO)

    @property
    def feed_b_net(self) -> Decimal:
        return self.feed_b_gross - self.feed_b_fees


@dataclass(slots=True)
class _IdentityAcc:
    total: Decimal = ZERO
    # dict keys keep first-seen order while deduplicating
    items: dict[str, None] = field(default_factory=dict)
    dates: dict[str, None] = field(default_factory=dict)
    count: int = 0


@dataclass(slots=True)
class _ItemAcc:
    classification: Classification
    amount: Decimal = ZERO
    count: int = 0
    dates: dict[str, None] = field(default_factory=dict)


@dataclass(slots=True)
class _CategoryAcc:
    classification: Classification
    total: Decimal = ZERO
    tax: Decimal = ZERO
    count: int = 0
    items: dict[str, _ItemAcc] = field(default_factory=dict)


@dataclass(slots=True)
class _ChannelAcc:
    reconcilable: bool
    total: Decimal = ZERO
    count: int = 0


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------


class FeedAggregator:
    """Accumulate both feeds of one run.

    Parameters
    ----------
    settings:
        Reconcilable channels (substring allowlist).
    rules:
        Resolved ruleset snapshot for the run.
    products:
        Product Memory records by exact description; approved ones override
        the ruleset.
    """

    def __init__(
        self,
        *,
        settings: EngineSettings | None = None,
        rules: Sequence[CategoryRule] = DEFAULT_RULES,
        products: Mapping[str, ProductRecord] | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.rules = tuple(rules)
        self.products = dict(products or {})

    def aggregate(
        self, feed_a: Iterable[FeedARow], feed_b: Iterable[FeedBRow]
    ) -> FeedAggregates:
        by_identity: dict[str, _IdentityAcc] = {}
        categories: dict[str, _CategoryAcc] = {}
        channels: dict[str, _ChannelAcc] = {}
        description_counts: dict[str, int] = {}
        classified: dict[str, Classification] = {}
        non_reconcilable = ZERO

        for row in feed_a:
            amount = parse_amount(row.amount)
            tax = parse_amount(row.tax)
            description = (row.description or "").strip()
            label = (row.channel or "").strip() or UNKNOWN_CHANNEL
            reconcilable = self.settings.is_reconcilable(row.channel)

            chan = channels.setdefault(label, _ChannelAcc(reconcilable=reconcilable))
            chan.count += 1
            chan.total += amount

            if reconcilable:
                identity = normalize_identity(row.identity)
                if identity:
                    acc = by_identity.setdefault(identity, _IdentityAcc())
                    acc.total += amount
                    acc.count += 1
                    if description:
                        acc.items[description] = None
                    if row.date:
                        acc.dates[row.date] = None
            else:
                non_reconcilable += amount

            cls = classified.get(description)
            if cls is None:
                cls = classify(description, rules=self.rules, products=self.products)
                classified[description] = cls
            cat = categories.setdefault(cls.category, _CategoryAcc(classification=cls))
            cat.count += 1
            cat.total += amount
            cat.tax += tax
            item_key = description or "(none)"
            item = cat.items.setdefault(item_key, _ItemAcc(classification=cls))
            item.amount += amount
            item.count += 1
            if row.date:
                item.dates[row.date] = None

            if description:
                description_counts[description] = description_counts.get(description, 0) + 1

        by_identity_b: dict[str, IdentityTotalsB] = {}
        gross_total = ZERO
        fee_total = ZERO
        skipped = 0
        for brow in feed_b:
            if not brow.is_completed_charge:
                continue
            identity = normalize_identity(brow.identity)
            if not identity:
                skipped += 1
                continue
            gross = parse_amount(brow.gross)
            fee = parse_amount(brow.fee)
            gross_total += gross
            fee_total += fee
            prev = by_identity_b.get(identity)
            by_identity_b[identity] = (
                IdentityTotalsB(gross=gross, fee=fee)
                if prev is None
                else IdentityTotalsB(gross=prev.gross + gross, fee=prev.fee + fee)
            )
        if skipped:
            log_event(
                logger, "aggregate:feed_b_skipped_no_identity", level=logging.DEBUG, rows=skipped
            )

        category_summaries, category_items = self._category_outputs(categories)
        return FeedAggregates(
            feed_a_by_identity={
                k: IdentityTotalsA(
                    total=v.total,
                    items=tuple(v.items),
                    dates=tuple(v.dates),
                    transaction_count=v.count,
                )
                for k, v in by_identity.items()
            },
            feed_b_by_identity=by_identity_b,
            category_summaries=category_summaries,
            category_items=category_items,
            channel_summaries=self._channel_outputs(channels),
            non_reconcilable_total=non_reconcilable,
            feed_b_gross=gross_total,
            feed_b_fees=fee_total,
            description_counts=description_counts,
        )

    def _category_outputs(
        self, categories: dict[str, _CategoryAcc]
    ) -> tuple[list[CategorySummaryRecord], dict[str, list[CategoryItemDetail]]]:
        grand = sum((c.total for c in categories.values()), ZERO)
        ordered = sorted(categories.items(), key=lambda kv: (-kv[1].total, kv[0]))
        summaries: list[CategorySummaryRecord] = []
        items: dict[str, list[CategoryItemDetail]] = {}
        for name, acc in ordered:
            cls = acc.classification
            # The ruleset entry states the category's rate; product-only
            # categories fall back to their first classification.
            rule = rule_for_category(self.rules, name)
            summaries.append(
                CategorySummaryRecord(
                    category=name,
                    transaction_count=acc.count,
                    total_amount=acc.total,
                    total_tax=acc.tax,
                    tax_rate=rule.tax_rate if rule else cls.tax_rate,
                    ledger_code=rule.ledger_code if rule else cls.ledger_code,
                    group_tag=cls.group_tag,
                    percentage=percentage(acc.total, grand),
                )
            )
            details: list[CategoryItemDetail] = []
            for desc, it in sorted(acc.items.items(), key=lambda kv: (-kv[1].amount, kv[0])):
                special = it.classification.special_handling
                details.append(
                    CategoryItemDetail(
                        description=desc,
                        amount=it.amount,
                        count=it.count,
                        dates=tuple(it.dates),
                        special_handling=special.kind if special else None,
                        handling_periods=special.periods if special else None,
                    )
                )
            items[name] = details
        return summaries, items

    @staticmethod
    def _channel_outputs(channels: dict[str, _ChannelAcc]) -> list[ChannelSummaryRecord]:
        grand = sum((c.total for c in channels.values()), ZERO)
        return [
            ChannelSummaryRecord(
                channel=label,
                transaction_count=acc.count,
                total_amount=acc.total,
                percentage=percentage(acc.total, grand),
                settles_via_feed_b=acc.reconcilable,
            )
            for label, acc in sorted(channels.items(), key=lambda kv: (-kv[1].total, kv[0]))
        ]


__all__ = [
    "FeedAggregates",
    "FeedAggregator",
    "IdentityTotalsA",
    "IdentityTotalsB",
    "percentage",
]
