# ruff: noqa: E402, I001
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path

import pytest

from revenue_recon.categories import DEFAULT_RULES
from revenue_recon.errors import StorageError
from revenue_recon.models import (
    CategoryItemDetail,
    CategorySummaryRecord,
    ChannelSummaryRecord,
    Classification,
    ComparisonRecord,
    FeedARow,
    FeedBRow,
    NewItemCandidate,
    PendingPayload,
    PendingReconciliation,
    ProductRecord,
    SessionTotals,
    SpecialHandling,
)
from revenue_recon.storage import InMemoryReconStorage, SqlReconStorage

from tests.helpers.db import bootstrap_sqlite_db

D = Decimal

TOTALS = SessionTotals(
    feed_a_total=D("285.00"),
    feed_b_gross=D("153.00"),
    feed_b_fees=D("4.50"),
    feed_b_net=D("148.50"),
    non_reconcilable_total=D("3.50"),
    matched_count=1,
    unmatched_count=3,
)


@pytest.fixture(params=["memory", "sql"])
def storage(request, tmp_path: Path):
    if request.param == "memory":
        return InMemoryReconStorage()
    url = bootstrap_sqlite_db(tmp_path / "recon.sqlite3")
    return SqlReconStorage(url)


def test_session_roundtrip_and_status(storage):
    session = storage.create_session("2024-05", TOTALS)
    got = storage.get_session(session.id)
    assert got is not None
    assert got.period == "2024-05"
    assert got.status == "completed"
    assert got.totals == TOTALS
    assert got.origin_pending_id is None

    archived = storage.set_session_status(session.id, "archived")
    assert archived.status == "archived"
    assert storage.get_session(session.id).status == "archived"

    assert storage.get_session("missing") is None
    with pytest.raises(KeyError):
        storage.set_session_status("missing", "archived")
    with pytest.raises(ValueError):
        storage.set_session_status(session.id, "deleted")


def test_list_sessions_and_find_by_origin(storage):
    first = storage.create_session("2024-04", TOTALS)
    second = storage.create_session("2024-05", TOTALS, origin_pending_id="pending-1")
    assert {s.id for s in storage.list_sessions()} == {first.id, second.id}

    found = storage.find_session_by_origin("pending-1")
    assert found is not None
    assert found.id == second.id
    assert storage.find_session_by_origin("pending-2") is None


def test_derived_records_keep_insertion_order(storage):
    session = storage.create_session("2024-05", TOTALS)
    comparisons = [
        ComparisonRecord(
            identity="carol@example.com",
            feed_a_total=D("150.00"),
            feed_b_gross=D("0"),
            feed_b_fee=D("0"),
            feed_b_net=D("0"),
            difference=D("150.00"),
            match_status="only_in_A",
            items="10 Class Pack",
            transaction_dates="2024-05-05",
            transaction_count=1,
        ),
        ComparisonRecord(
            identity="alice@example.com",
            feed_a_total=D("100.00"),
            feed_b_gross=D("98.00"),
            feed_b_fee=D("3.00"),
            feed_b_net=D("95.00"),
            difference=D("2.00"),
            match_status="small_diff",
            items="Monthly Membership",
            transaction_dates="2024-05-02",
            transaction_count=1,
        ),
    ]
    storage.put_comparisons(session.id, comparisons)
    assert storage.get_comparisons(session.id) == comparisons

    summaries = [
        CategorySummaryRecord(
            category="Rittenkaarten",
            transaction_count=1,
            total_amount=D("150.00"),
            total_tax=D("12.39"),
            tax_rate=D("0.09"),
            ledger_code="8110",
            group_tag="yoga",
            percentage=D("51.99"),
        ),
        CategorySummaryRecord(
            category="Abonnementen",
            transaction_count=1,
            total_amount=D("100.00"),
            total_tax=D("8.26"),
            tax_rate=D("0.09"),
            ledger_code="8100",
            group_tag="yoga",
            percentage=D("34.66"),
        ),
    ]
    storage.put_category_summaries(session.id, summaries)
    assert storage.get_category_summaries(session.id) == summaries

    items = [
        CategoryItemDetail(
            description="Teacher Training",
            amount=D("1000.00"),
            count=2,
            dates=("2024-05-01", "2024-05-03"),
            special_handling="accrual",
            handling_periods=14,
        ),
        CategoryItemDetail(description="Coach Certification", amount=D("900.00"), count=1),
    ]
    storage.put_category_items(session.id, "Opleidingen", items)
    assert storage.get_category_items(session.id, "Opleidingen") == items
    assert storage.get_category_items(session.id, "Abonnementen") == []

    channels = [
        ChannelSummaryRecord("Card", 2, D("250.00"), D("86.66"), True),
        ChannelSummaryRecord("Cash", 1, D("3.50"), D("1.21"), False),
    ]
    storage.put_channel_summaries(session.id, channels)
    assert storage.get_channel_summaries(session.id) == channels

    assert storage.get_comparisons("other") == []


def _product(description: str = "Teacher Training", **overrides) -> ProductRecord:
    fields = {
        "description": description,
        "category": "Opleidingen",
        "tax_rate": D("0.21"),
        "ledger_code": "8300",
        "special_handling": SpecialHandling(kind="accrual", periods=14),
        "approved": True,
        "first_seen": date(2024, 5, 1),
        "last_seen": date(2024, 5, 1),
        "transaction_count": 2,
    }
    fields.update(overrides)
    return ProductRecord(**fields)


def test_product_upsert_keeps_identity_and_overwrites_fields(storage):
    created = storage.upsert_product(_product())
    assert created.id is not None
    assert created.updated_at is not None

    updated = storage.upsert_product(
        _product(transaction_count=5, last_seen=date(2024, 6, 1), category="Workshops & Events")
    )
    assert updated.id == created.id
    assert updated.transaction_count == 5

    got = storage.get_product("Teacher Training")
    assert got is not None
    assert got.category == "Workshops & Events"
    assert got.tax_rate == D("0.21")
    assert got.special_handling == SpecialHandling(kind="accrual", periods=14)
    assert got.first_seen == date(2024, 5, 1)
    assert got.last_seen == date(2024, 6, 1)
    assert got.approved is True

    assert storage.get_product("teacher training") is None


def test_product_list_and_delete(storage):
    latte = storage.upsert_product(_product("Latte", special_handling=None))
    storage.upsert_product(_product("Brownie", special_handling=None))
    assert [p.description for p in storage.list_products()] == ["Brownie", "Latte"]

    assert storage.delete_product(latte.id) is True
    assert storage.delete_product(latte.id) is False
    assert [p.description for p in storage.list_products()] == ["Brownie"]


def test_rule_overrides_roundtrip(storage):
    assert storage.get_category_rule_overrides() is None
    storage.save_category_rule_overrides(DEFAULT_RULES)
    assert storage.get_category_rule_overrides() == list(DEFAULT_RULES)

    storage.save_category_rule_overrides(DEFAULT_RULES[-3:])
    assert [r.name for r in storage.get_category_rule_overrides()] == [
        r.name for r in DEFAULT_RULES[-3:]
    ]

    storage.reset_category_rule_overrides()
    assert storage.get_category_rule_overrides() is None


def _pending(pending_id: str = "pending-1") -> PendingReconciliation:
    candidate = NewItemCandidate(
        description="Teacher Training",
        suggestion=Classification(
            category="Opleidingen",
            tax_rate=D("0.21"),
            ledger_code="8300",
            special_handling=SpecialHandling(kind="accrual", periods=14),
        ),
        transaction_count=1,
        total_amount=D("500.00"),
    )
    payload = PendingPayload(
        feed_a=[FeedARow("Card", "Teacher Training", "2024-05-01", "500,00", identity="a@x.nl")],
        feed_b=[FeedBRow("a@x.nl", "500.00", "7.50", reporting_category="charge")],
        candidates=[candidate],
    )
    return PendingReconciliation(
        id=pending_id,
        period="2024-05",
        created_at=datetime.now(UTC),
        payload=payload,
        new_item_count=1,
    )


def test_pending_roundtrip_and_delete(storage):
    storage.save_pending_reconciliation(_pending())
    got = storage.get_pending_reconciliation("pending-1")
    assert got is not None
    assert got.period == "2024-05"
    assert got.new_item_count == 1
    assert got.status == "awaiting_review"
    assert got.payload.feed_a[0].amount == "500,00"
    assert got.payload.feed_b[0].fee == "7.50"
    cand = got.candidates[0]
    assert cand.description == "Teacher Training"
    assert cand.total_amount == D("500.00")
    assert cand.suggestion.special_handling == SpecialHandling(kind="accrual", periods=14)

    assert [p.id for p in storage.list_pending_reconciliations()] == ["pending-1"]
    assert storage.delete_pending_reconciliation("pending-1") is True
    assert storage.delete_pending_reconciliation("pending-1") is False
    assert storage.get_pending_reconciliation("pending-1") is None


def test_sql_storage_wraps_database_errors(tmp_path: Path):
    # A database without the schema fails every query.
    storage = SqlReconStorage(f"sqlite+pysqlite:///{tmp_path / 'empty.sqlite3'}")
    with pytest.raises(StorageError) as excinfo:
        storage.list_sessions()
    assert excinfo.value.retryable is True
    assert excinfo.value.__cause__ is not None


def test_sql_storage_requires_a_database_url():
    with pytest.raises(RuntimeError):
        SqlReconStorage().list_products()


def _comparison(identity: str, status: str = "match") -> ComparisonRecord:
    return ComparisonRecord(
        identity=identity,
        feed_a_total=D("100.00"),
        feed_b_gross=D("99.50"),
        feed_b_fee=D("1.50"),
        feed_b_net=D("98.00"),
        difference=D("0.50"),
        match_status=status,
        items="Monthly Membership",
        transaction_dates="2024-05-02",
        transaction_count=1,
    )


def test_save_result_writes_session_and_derived_records(storage):
    comparisons = [_comparison("alice@example.com")]
    summaries = [
        CategorySummaryRecord(
            "Abonnementen", 1, D("100.00"), D("8.26"), D("0.09"), "8100", "yoga", D("100.00")
        )
    ]
    items = {
        "Abonnementen": [
            CategoryItemDetail("Monthly Membership", D("100.00"), 1, ("2024-05-02",))
        ]
    }
    channels = [ChannelSummaryRecord("Card", 1, D("100.00"), D("100.00"), True)]

    session = storage.save_result(
        "2024-05",
        TOTALS,
        comparisons=comparisons,
        category_summaries=summaries,
        category_items=items,
        channel_summaries=channels,
        origin_pending_id="pending-9",
    )

    assert storage.find_session_by_origin("pending-9").id == session.id
    assert storage.get_comparisons(session.id) == comparisons
    assert storage.get_category_summaries(session.id) == summaries
    assert storage.get_category_items(session.id, "Abonnementen") == items["Abonnementen"]
    assert storage.get_channel_summaries(session.id) == channels


def test_sql_save_result_is_all_or_nothing(tmp_path: Path):
    storage = SqlReconStorage(bootstrap_sqlite_db(tmp_path / "recon.sqlite3"))
    with pytest.raises(StorageError):
        storage.save_result(
            "2024-05",
            TOTALS,
            comparisons=[_comparison("alice@example.com"), _comparison("bob@example.com", "bogus")],
            category_summaries=[],
            category_items={},
            channel_summaries=[],
            origin_pending_id="pending-9",
        )
    assert storage.list_sessions() == []
    assert storage.find_session_by_origin("pending-9") is None


def test_sql_storage_keeps_sub_cent_amounts(tmp_path: Path):
    from revenue_recon.workflows import load_result, reconcile

    storage = SqlReconStorage(bootstrap_sqlite_db(tmp_path / "recon.sqlite3"))
    outcome = reconcile(
        storage,
        [FeedARow("Card", "Monthly Membership", "2024-05-02", "100.4990", "0", "a@x.nl")],
        [FeedBRow("a@x.nl", "99.5", "0", reporting_category="charge")],
        period="2024-05",
        skip_review=True,
    )
    result = outcome.result
    (comparison,) = result.comparisons
    assert comparison.difference == D("0.999")
    assert comparison.match_status == "match"

    stored = load_result(storage, result.session.id)
    assert stored.comparisons == result.comparisons
    assert stored.comparisons[0].difference == D("0.999")
    assert stored.category_summaries == result.category_summaries
    assert stored.category_items == result.category_items
    assert stored.channel_summaries == result.channel_summaries
    assert stored.session.totals == result.session.totals
