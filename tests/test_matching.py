from decimal import Decimal

import pytest
from revenue_recon.aggregation import FeedAggregator, IdentityTotalsA, IdentityTotalsB
from revenue_recon.matching import build_comparisons, match_status, session_totals
from revenue_recon.models import FeedARow, FeedBRow

D = Decimal


@pytest.mark.parametrize(
    ("a", "b", "status"),
    [
        ("100.00", "100.00", "match"),
        ("100.00", "99.01", "match"),
        ("100.999", "100", "match"),
        ("100.00", "99.00", "small_diff"),
        ("100.00", "95.01", "small_diff"),
        ("100.00", "95.00", "large_diff"),
        ("95.00", "100.00", "large_diff"),
        ("10.00", "0", "only_in_A"),
        ("0", "10.00", "only_in_B"),
        ("0", "0", "match"),
    ],
)
def test_match_status_thresholds(a, b, status):
    assert match_status(D(a), D(b)) == status


def _a(total, items=(), dates=(), count=1):
    return IdentityTotalsA(total=D(total), items=tuple(items), dates=tuple(dates), transaction_count=count)


def _b(gross, fee="0"):
    return IdentityTotalsB(gross=D(gross), fee=D(fee))


def test_comparisons_cover_union_and_sort_by_absolute_difference():
    feed_a = {
        "alice@example.com": _a("100.00", ["Monthly Membership"], ["2024-05-02"]),
        "carol@example.com": _a("150.00", ["10 Class Pack"], ["2024-05-05"]),
        "bob@example.com": _a("35.00", ["Workshop", "Latte"], ["2024-05-04", "2024-05-06"], 2),
    }
    feed_b = {
        "alice@example.com": _b("98.00", "3.00"),
        "bob@example.com": _b("35.00", "1.00"),
        "dave@example.com": _b("20.00", "0.50"),
    }
    records = build_comparisons(feed_a, feed_b)

    assert [r.identity for r in records] == [
        "carol@example.com",
        "dave@example.com",
        "alice@example.com",
        "bob@example.com",
    ]
    by_id = {r.identity: r for r in records}

    alice = by_id["alice@example.com"]
    assert alice.difference == D("2.00")
    assert alice.match_status == "small_diff"
    assert alice.feed_b_net == D("95.00")

    dave = by_id["dave@example.com"]
    assert dave.match_status == "only_in_B"
    assert dave.feed_a_total == D("0")
    assert dave.difference == D("-20.00")
    assert dave.items == ""
    assert dave.transaction_count == 0

    carol = by_id["carol@example.com"]
    assert carol.match_status == "only_in_A"
    assert carol.feed_b_gross == D("0")

    bob = by_id["bob@example.com"]
    assert bob.match_status == "match"
    assert bob.items == "Workshop, Latte"
    assert bob.transaction_dates == "2024-05-04, 2024-05-06"
    assert bob.transaction_count == 2


def test_equal_differences_are_ordered_by_identity():
    feed_a = {"zed@x.nl": _a("10"), "amy@x.nl": _a("10")}
    records = build_comparisons(feed_a, {})
    assert [r.identity for r in records] == ["amy@x.nl", "zed@x.nl"]


def test_excluded_identities_are_left_out():
    feed_a = {"studio@x.nl": _a("10"), "amy@x.nl": _a("10")}
    feed_b = {"studio@x.nl": _b("500")}
    records = build_comparisons(feed_a, feed_b, excluded_identities={"studio@x.nl"})
    assert [r.identity for r in records] == ["amy@x.nl"]


def test_session_totals_count_matches():
    feed_a = [
        FeedARow("Card", "Monthly Membership", "2024-05-01", "100", identity="a@x.nl"),
        FeedARow("Card", "Latte", "2024-05-01", "4", identity="b@x.nl"),
        FeedARow("Cash", "Latte", "2024-05-01", "4"),
    ]
    feed_b = [
        FeedBRow("a@x.nl", "100", "2.90", reporting_category="charge"),
        FeedBRow("b@x.nl", "10", "0.30", reporting_category="charge"),
    ]
    aggregates = FeedAggregator().aggregate(feed_a, feed_b)
    comparisons = build_comparisons(aggregates.feed_a_by_identity, aggregates.feed_b_by_identity)
    totals = session_totals(aggregates, comparisons)

    assert totals.matched_count == 1
    assert totals.unmatched_count == 1
    assert totals.feed_a_total == D("104")
    assert totals.feed_b_gross == D("110")
    assert totals.feed_b_fees == D("3.20")
    assert totals.feed_b_net == D("106.80")
    assert totals.non_reconcilable_total == D("4")
