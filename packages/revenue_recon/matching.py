"""Cross-feed matching and session totals."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal

from .aggregation import FeedAggregates, IdentityTotalsA, IdentityTotalsB
from .models import ComparisonRecord, MatchStatus, SessionTotals
from .normalizers import ZERO

MATCH_THRESHOLD = Decimal("1")
SMALL_DIFF_THRESHOLD = Decimal("5")

_EMPTY_B = IdentityTotalsB(gross=ZERO, fee=ZERO)


def match_status(feed_a_total: Decimal, feed_b_gross: Decimal) -> MatchStatus:
    """Tier for one identity; a pure function of the two totals."""

    if feed_a_total > 0 and feed_b_gross == 0:
        return "only_in_A"
    if feed_a_total == 0 and feed_b_gross > 0:
        return "only_in_B"
    diff = abs(feed_a_total - feed_b_gross)
    if diff < MATCH_THRESHOLD:
        return "match"
    if diff < SMALL_DIFF_THRESHOLD:
        return "small_diff"
    return "large_diff"


def build_comparisons(
    feed_a: Mapping[str, IdentityTotalsA],
    feed_b: Mapping[str, IdentityTotalsB],
    *,
    excluded_identities: Iterable[str] = (),
) -> list[ComparisonRecord]:
    """One record per identity seen in either feed, largest discrepancy first.

    Ties on the absolute difference are ordered by identity so the output is
    independent of accumulation order.
    """

    excluded = frozenset(excluded_identities)
    identities = (set(feed_a) | set(feed_b)) - excluded
    records: list[ComparisonRecord] = []
    for identity in identities:
        a = feed_a.get(identity)
        b = feed_b.get(identity, _EMPTY_B)
        a_total = a.total if a is not None else ZERO
        difference = a_total - b.gross
        records.append(
            ComparisonRecord(
                identity=identity,
                feed_a_total=a_total,
                feed_b_gross=b.gross,
                feed_b_fee=b.fee,
                feed_b_net=b.net,
                difference=difference,
                match_status=match_status(a_total, b.gross),
                items=", ".join(a.items) if a is not None else "",
                transaction_dates=", ".join(a.dates) if a is not None else "",
                transaction_count=a.transaction_count if a is not None else 0,
            )
        )
    records.sort(key=lambda r: (-abs(r.difference), r.identity))
    return records


def session_totals(
    aggregates: FeedAggregates, comparisons: Iterable[ComparisonRecord]
) -> SessionTotals:
    matched = 0
    unmatched = 0
    for record in comparisons:
        if record.match_status == "match":
            matched += 1
        else:
            unmatched += 1
    return SessionTotals(
        feed_a_total=aggregates.feed_a_total,
        feed_b_gross=aggregates.feed_b_gross,
        feed_b_fees=aggregates.feed_b_fees,
        feed_b_net=aggregates.feed_b_net,
        non_reconcilable_total=aggregates.non_reconcilable_total,
        matched_count=matched,
        unmatched_count=unmatched,
    )


__all__ = [
    "MATCH_THRESHOLD",
    "SMALL_DIFF_THRESHOLD",
    "build_comparisons",
    "match_status",
    "session_totals",
]
