# ruff: noqa: I001
from __future__ import annotations

from datetime import date
from decimal import Decimal as D
from pathlib import Path

from revenue_recon.api import reconcile_csv_files, resume_reconciliation
from revenue_recon.review import decision_from_candidate
from revenue_recon.storage import SqlReconStorage

from tests.helpers.db import bootstrap_sqlite_db

MAY_31 = date(2024, 5, 31)
JUNE_30 = date(2024, 6, 30)


def _run(storage: SqlReconStorage, data_dir: Path, today: date):
    return reconcile_csv_files(
        storage,
        data_dir / "feed_a_may.csv",
        data_dir / "feed_b_may.csv",
        period="2024-05",
        today=today,
    )


def test_reconcile_review_resume_and_rerun(tmp_path: Path, data_dir: Path):
    url = bootstrap_sqlite_db(tmp_path / "e2e.sqlite3")
    storage = SqlReconStorage(url)

    outcome = _run(storage, data_dir, MAY_31)
    assert outcome.awaiting_review
    pending = outcome.pending
    assert [c.description for c in pending.candidates] == [
        "10 Class Pack",
        "Monthly Membership",
        "Workshop Breathwork",
        "Cappuccino",
    ]

    decisions = [decision_from_candidate(c) for c in pending.candidates]
    result = resume_reconciliation(storage, pending.id, decisions=decisions, today=MAY_31)

    totals = result.session.totals
    assert totals.feed_a_total == D("285.00")
    assert totals.feed_b_gross == D("153.00")
    assert totals.feed_b_fees == D("4.50")
    assert totals.feed_b_net == D("148.50")
    assert totals.non_reconcilable_total == D("3.50")
    assert totals.matched_count == 1
    assert totals.unmatched_count == 3
    assert result.session.origin_pending_id == pending.id

    by_identity = [(c.identity, c.match_status) for c in result.comparisons]
    assert by_identity == [
        ("carol@example.com", "only_in_A"),
        ("dave@example.com", "only_in_B"),
        ("alice@example.com", "small_diff"),
        ("bob@example.com", "match"),
    ]
    alice = result.comparisons[2]
    assert alice.difference == D("2.00")
    assert alice.feed_b_net == D("95.00")

    categories = {s.category: (s.total_amount, s.percentage) for s in result.category_summaries}
    assert categories == {
        "Rittenkaarten": (D("150.00"), D("51.99")),
        "Abonnementen": (D("100.00"), D("34.66")),
        "Workshops & Events": (D("35.00"), D("12.13")),
        "Omzet Drank Laag": (D("3.50"), D("1.21")),
    }

    channels = {c.channel: (c.total_amount, c.settles_via_feed_b) for c in result.channel_summaries}
    assert channels["Card"] == (D("250.00"), True)
    assert channels["iDEAL"] == (D("35.00"), True)
    assert channels["Cash"] == (D("3.50"), False)

    assert storage.get_pending_reconciliation(pending.id) is None
    products = {p.description: p for p in storage.list_products()}
    assert set(products) == {c.description for c in pending.candidates}
    assert all(p.approved and p.transaction_count == 1 for p in products.values())

    # Everything is known now: the second run completes without review.
    rerun = _run(storage, data_dir, JUNE_30)
    assert not rerun.awaiting_review
    assert rerun.result.session.totals.matched_count == 1
    assert len(storage.list_sessions()) == 2

    cappuccino = storage.get_product("Cappuccino")
    assert cappuccino.transaction_count == 2
    assert cappuccino.first_seen == MAY_31
    assert cappuccino.last_seen == JUNE_30
