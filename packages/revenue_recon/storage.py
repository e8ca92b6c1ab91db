# ruff: noqa: I001
"""Storage contract for the engine and its two implementations.

``ReconStorage`` is what the workflow consumes. ``SqlReconStorage`` is the
durable implementation over the ``recon_db`` ORM tables (one transaction per
call); ``InMemoryReconStorage`` keeps the same semantics in process-local
dicts for tests and one-off runs.

Sessions are immutable after creation except for ``status``. A finished run
is written with ``save_result``: the session and all its derived records land
together or not at all, so a session found by ``find_session_by_origin`` is
always complete. Derived records keep their insertion order. Product records
are keyed by their exact description; ``upsert_product`` writes every field it
is given (the review workflow owns the read-modify-write of counts).
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from recon_db.client import session_scope
from recon_db.models.recon import (
    CategoryItemRow,
    CategoryRuleRow,
    CategorySummaryRow,
    ChannelSummaryRow,
    CustomerComparisonRow,
    PendingReconciliationRow,
    ProductRow,
    ReconSessionRow,
)

from .errors import StorageError
from .logging_setup import get_logger, log_event
from .models import (
    CategoryItemDetail,
    CategoryRule,
    CategorySummaryRecord,
    ChannelSummaryRecord,
    ComparisonRecord,
    PendingPayload,
    PendingReconciliation,
    ProductRecord,
    ReconSession,
    SessionStatus,
    SessionTotals,
    SpecialHandling,
)

logger = get_logger("revenue_recon.storage")

_SESSION_STATUSES = ("completed", "archived")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _check_status(status: str) -> None:
    if status not in _SESSION_STATUSES:
        raise ValueError(f"invalid session status {status!r}")


class ReconStorage(Protocol):
    """Record-store contract consumed by the reconciliation workflow."""

    # Sessions
    def create_session(
        self, period: str, totals: SessionTotals, *, origin_pending_id: str | None = None
    ) -> ReconSession: ...
    def get_session(self, session_id: str) -> ReconSession | None: ...
    def list_sessions(self) -> list[ReconSession]: ...
    def find_session_by_origin(self, pending_id: str) -> ReconSession | None: ...
    def set_session_status(self, session_id: str, status: SessionStatus) -> ReconSession: ...
    def save_result(
        self,
        period: str,
        totals: SessionTotals,
        *,
        comparisons: Sequence[ComparisonRecord],
        category_summaries: Sequence[CategorySummaryRecord],
        category_items: Mapping[str, Sequence[CategoryItemDetail]],
        channel_summaries: Sequence[ChannelSummaryRecord],
        origin_pending_id: str | None = None,
    ) -> ReconSession: ...

    # Derived records
    def put_comparisons(self, session_id: str, records: Sequence[ComparisonRecord]) -> None: ...
    def get_comparisons(self, session_id: str) -> list[ComparisonRecord]: ...
    def put_category_summaries(
        self, session_id: str, records: Sequence[CategorySummaryRecord]
    ) -> None: ...
    def get_category_summaries(self, session_id: str) -> list[CategorySummaryRecord]: ...
    def put_category_items(
        self, session_id: str, category: str, items: Sequence[CategoryItemDetail]
    ) -> None: ...
    def get_category_items(self, session_id: str, category: str) -> list[CategoryItemDetail]: ...
    def put_channel_summaries(
        self, session_id: str, records: Sequence[ChannelSummaryRecord]
    ) -> None: ...
    def get_channel_summaries(self, session_id: str) -> list[ChannelSummaryRecord]: ...

    # Product memory
    def get_product(self, description: str) -> ProductRecord | None: ...
    def list_products(self) -> list[ProductRecord]: ...
    def upsert_product(self, record: ProductRecord) -> ProductRecord: ...
    def delete_product(self, product_id: int) -> bool: ...

    # Ruleset overrides
    def get_category_rule_overrides(self) -> list[CategoryRule] | None: ...
    def save_category_rule_overrides(self, rules: Sequence[CategoryRule]) -> None: ...
    def reset_category_rule_overrides(self) -> None: ...

    # Pending reconciliations
    def save_pending_reconciliation(self, record: PendingReconciliation) -> None: ...
    def get_pending_reconciliation(self, pending_id: str) -> PendingReconciliation | None: ...
    def delete_pending_reconciliation(self, pending_id: str) -> bool: ...
    def list_pending_reconciliations(self) -> list[PendingReconciliation]: ...


# ---------------------------------------------------------------------------
# Row <-> value mapping
# ---------------------------------------------------------------------------


def _special_from_columns(
    kind: str | None, periods: int | None, start: Any = None, end: Any = None
) -> SpecialHandling | None:
    if kind is None:
        return None
    return SpecialHandling(
        kind=kind, periods=periods, start=start, end=end  # type: ignore[arg-type]
    )


def _session_from_row(row: ReconSessionRow) -> ReconSession:
    return ReconSession(
        id=row.id,
        period=row.period,
        created_at=row.created_at,
        totals=SessionTotals(
            feed_a_total=Decimal(row.feed_a_total),
            feed_b_gross=Decimal(row.feed_b_gross),
            feed_b_fees=Decimal(row.feed_b_fees),
            feed_b_net=Decimal(row.feed_b_net),
            non_reconcilable_total=Decimal(row.non_reconcilable_total),
            matched_count=row.matched_count,
            unmatched_count=row.unmatched_count,
        ),
        status=row.status,  # type: ignore[arg-type]
        origin_pending_id=row.origin_pending_id,
    )


def _product_from_row(row: ProductRow) -> ProductRecord:
    return ProductRecord(
        id=row.id,
        description=row.description,
        category=row.category,
        tax_rate=Decimal(row.tax_rate),
        ledger_code=row.ledger_code,
        special_handling=_special_from_columns(
            row.special_handling, row.handling_periods, row.handling_start, row.handling_end
        ),
        approved=bool(row.approved),
        first_seen=row.first_seen,
        last_seen=row.last_seen,
        transaction_count=row.transaction_count,
        updated_at=row.updated_at,
    )


def _apply_product(row: ProductRow, record: ProductRecord) -> None:
    special = record.special_handling
    row.category = record.category
    row.tax_rate = record.tax_rate
    row.ledger_code = record.ledger_code
    row.special_handling = special.kind if special else None
    row.handling_periods = special.periods if special else None
    row.handling_start = special.start if special else None
    row.handling_end = special.end if special else None
    row.approved = record.approved
    row.first_seen = record.first_seen
    row.last_seen = record.last_seen
    row.transaction_count = record.transaction_count
    row.updated_at = _utcnow()


def _rule_from_row(row: CategoryRuleRow) -> CategoryRule:
    return CategoryRule(
        name=row.name,
        priority=row.priority,
        tax_rate=Decimal(row.tax_rate),
        ledger_code=row.ledger_code,
        group_tag=row.group_tag,
        keywords=tuple(row.keywords or ()),
        exclusions=tuple(row.exclusions or ()),
        pattern=row.pattern,
        special_handling=_special_from_columns(row.special_handling, row.handling_periods),
        category=row.category,
    )


def _pending_from_row(row: PendingReconciliationRow) -> PendingReconciliation:
    return PendingReconciliation(
        id=row.id,
        period=row.period,
        created_at=row.created_at,
        payload=PendingPayload.model_validate(row.payload),
        new_item_count=row.new_item_count,
    )


def _comparison_rows(
    session_id: str, records: Sequence[ComparisonRecord]
) -> list[CustomerComparisonRow]:
    return [
        CustomerComparisonRow(
            session_id=session_id,
            position=i,
            identity=r.identity,
            feed_a_total=r.feed_a_total,
            feed_b_gross=r.feed_b_gross,
            feed_b_fee=r.feed_b_fee,
            feed_b_net=r.feed_b_net,
            difference=r.difference,
            match_status=r.match_status,
            items=r.items,
            transaction_dates=r.transaction_dates,
            transaction_count=r.transaction_count,
        )
        for i, r in enumerate(records)
    ]


def _category_summary_rows(
    session_id: str, records: Sequence[CategorySummaryRecord]
) -> list[CategorySummaryRow]:
    return [
        CategorySummaryRow(
            session_id=session_id,
            position=i,
            category=r.category,
            transaction_count=r.transaction_count,
            total_amount=r.total_amount,
            total_tax=r.total_tax,
            tax_rate=r.tax_rate,
            ledger_code=r.ledger_code,
            group_tag=r.group_tag,
            percentage=r.percentage,
        )
        for i, r in enumerate(records)
    ]


def _category_item_rows(
    session_id: str, category: str, items: Sequence[CategoryItemDetail]
) -> list[CategoryItemRow]:
    return [
        CategoryItemRow(
            session_id=session_id,
            category=category,
            position=i,
            description=it.description,
            amount=it.amount,
            count=it.count,
            dates=list(it.dates),
            special_handling=it.special_handling,
            handling_periods=it.handling_periods,
        )
        for i, it in enumerate(items)
    ]


def _channel_summary_rows(
    session_id: str, records: Sequence[ChannelSummaryRecord]
) -> list[ChannelSummaryRow]:
    return [
        ChannelSummaryRow(
            session_id=session_id,
            position=i,
            channel=r.channel,
            transaction_count=r.transaction_count,
            total_amount=r.total_amount,
            percentage=r.percentage,
            settles_via_feed_b=r.settles_via_feed_b,
        )
        for i, r in enumerate(records)
    ]


def _new_session_row(
    period: str, totals: SessionTotals, origin_pending_id: str | None
) -> ReconSessionRow:
    return ReconSessionRow(
        id=str(uuid.uuid4()),
        period=period,
        created_at=_utcnow(),
        feed_a_total=totals.feed_a_total,
        feed_b_gross=totals.feed_b_gross,
        feed_b_fees=totals.feed_b_fees,
        feed_b_net=totals.feed_b_net,
        non_reconcilable_total=totals.non_reconcilable_total,
        matched_count=totals.matched_count,
        unmatched_count=totals.unmatched_count,
        status="completed",
        origin_pending_id=origin_pending_id,
    )


# ---------------------------------------------------------------------------
# SQL implementation
# ---------------------------------------------------------------------------


class SqlReconStorage:
    """Durable storage over the ``recon_db`` tables.

    ``database_url`` falls back to ``DATABASE_URL``. Every SQLAlchemy failure
    surfaces as :class:`StorageError` (retryable) chained to the original.
    """

    def __init__(self, database_url: str | None = None) -> None:
        self.database_url = database_url

    @contextmanager
    def _scope(self, op: str) -> Iterator[Session]:
        try:
            with session_scope(database_url=self.database_url) as s:
                yield s
        except SQLAlchemyError as exc:
            log_event(
                logger, f"storage:{op}_failed", level=logging.WARNING, error=type(exc).__name__
            )
            raise StorageError(f"storage operation {op!r} failed: {exc}") from exc

    # Sessions ---------------------------------------------------------------

    def create_session(
        self, period: str, totals: SessionTotals, *, origin_pending_id: str | None = None
    ) -> ReconSession:
        row = _new_session_row(period, totals, origin_pending_id)
        with self._scope("create_session") as s:
            s.add(row)
            s.flush()
            session = _session_from_row(row)
        log_event(logger, "storage:session_created", session_id=session.id, period=period)
        return session

    def save_result(
        self,
        period: str,
        totals: SessionTotals,
        *,
        comparisons: Sequence[ComparisonRecord],
        category_summaries: Sequence[CategorySummaryRecord],
        category_items: Mapping[str, Sequence[CategoryItemDetail]],
        channel_summaries: Sequence[ChannelSummaryRecord],
        origin_pending_id: str | None = None,
    ) -> ReconSession:
        """Create a session and all its derived records in one transaction."""

        row = _new_session_row(period, totals, origin_pending_id)
        with self._scope("save_result") as s:
            s.add(row)
            s.flush()
            s.add_all(_comparison_rows(row.id, comparisons))
            s.add_all(_category_summary_rows(row.id, category_summaries))
            for category, items in category_items.items():
                s.add_all(_category_item_rows(row.id, category, items))
            s.add_all(_channel_summary_rows(row.id, channel_summaries))
            s.flush()
            session = _session_from_row(row)
        log_event(
            logger,
            "storage:session_created",
            session_id=session.id,
            period=period,
            comparisons=len(comparisons),
        )
        return session

    def get_session(self, session_id: str) -> ReconSession | None:
        with self._scope("get_session") as s:
            row = s.get(ReconSessionRow, session_id)
            return _session_from_row(row) if row is not None else None

    def list_sessions(self) -> list[ReconSession]:
        with self._scope("list_sessions") as s:
            rows = s.execute(
                select(ReconSessionRow).order_by(
                    ReconSessionRow.created_at.desc(), ReconSessionRow.id
                )
            ).scalars()
            return [_session_from_row(r) for r in rows]

    def find_session_by_origin(self, pending_id: str) -> ReconSession | None:
        with self._scope("find_session_by_origin") as s:
            row = (
                s.execute(
                    select(ReconSessionRow).where(ReconSessionRow.origin_pending_id == pending_id)
                )
                .scalars()
                .first()
            )
            return _session_from_row(row) if row is not None else None

    def set_session_status(self, session_id: str, status: SessionStatus) -> ReconSession:
        _check_status(status)
        with self._scope("set_session_status") as s:
            row = s.get(ReconSessionRow, session_id)
            if row is None:
                raise KeyError(session_id)
            row.status = status
            s.flush()
            return _session_from_row(row)

    # Derived records --------------------------------------------------------

    def put_comparisons(self, session_id: str, records: Sequence[ComparisonRecord]) -> None:
        with self._scope("put_comparisons") as s:
            s.add_all(_comparison_rows(session_id, records))

    def get_comparisons(self, session_id: str) -> list[ComparisonRecord]:
        with self._scope("get_comparisons") as s:
            rows = s.execute(
                select(CustomerComparisonRow)
                .where(CustomerComparisonRow.session_id == session_id)
                .order_by(CustomerComparisonRow.position)
            ).scalars()
            return [
                ComparisonRecord(
                    identity=r.identity,
                    feed_a_total=Decimal(r.feed_a_total),
                    feed_b_gross=Decimal(r.feed_b_gross),
                    feed_b_fee=Decimal(r.feed_b_fee),
                    feed_b_net=Decimal(r.feed_b_net),
                    difference=Decimal(r.difference),
                    match_status=r.match_status,  # type: ignore[arg-type]
                    items=r.items,
                    transaction_dates=r.transaction_dates,
                    transaction_count=r.transaction_count,
                )
                for r in rows
            ]

    def put_category_summaries(
        self, session_id: str, records: Sequence[CategorySummaryRecord]
    ) -> None:
        with self._scope("put_category_summaries") as s:
            s.add_all(_category_summary_rows(session_id, records))

    def get_category_summaries(self, session_id: str) -> list[CategorySummaryRecord]:
        with self._scope("get_category_summaries") as s:
            rows = s.execute(
                select(CategorySummaryRow)
                .where(CategorySummaryRow.session_id == session_id)
                .order_by(CategorySummaryRow.position)
            ).scalars()
            return [
                CategorySummaryRecord(
                    category=r.category,
                    transaction_count=r.transaction_count,
                    total_amount=Decimal(r.total_amount),
                    total_tax=Decimal(r.total_tax),
                    tax_rate=Decimal(r.tax_rate),
                    ledger_code=r.ledger_code,
                    group_tag=r.group_tag,
                    percentage=Decimal(r.percentage),
                )
                for r in rows
            ]

    def put_category_items(
        self, session_id: str, category: str, items: Sequence[CategoryItemDetail]
    ) -> None:
        with self._scope("put_category_items") as s:
            s.add_all(_category_item_rows(session_id, category, items))

    def get_category_items(self, session_id: str, category: str) -> list[CategoryItemDetail]:
        with self._scope("get_category_items") as s:
            rows = s.execute(
                select(CategoryItemRow)
                .where(
                    CategoryItemRow.session_id == session_id,
                    CategoryItemRow.category == category,
                )
                .order_by(CategoryItemRow.position)
            ).scalars()
            return [
                CategoryItemDetail(
                    description=r.description,
                    amount=Decimal(r.amount),
                    count=r.count,
                    dates=tuple(r.dates or ()),
                    special_handling=r.special_handling,  # type: ignore[arg-type]
                    handling_periods=r.handling_periods,
                )
                for r in rows
            ]

    def put_channel_summaries(
        self, session_id: str, records: Sequence[ChannelSummaryRecord]
    ) -> None:
        with self._scope("put_channel_summaries") as s:
            s.add_all(_channel_summary_rows(session_id, records))

    def get_channel_summaries(self, session_id: str) -> list[ChannelSummaryRecord]:
        with self._scope("get_channel_summaries") as s:
            rows = s.execute(
                select(ChannelSummaryRow)
                .where(ChannelSummaryRow.session_id == session_id)
                .order_by(ChannelSummaryRow.position)
            ).scalars()
            return [
                ChannelSummaryRecord(
                    channel=r.channel,
                    transaction_count=r.transaction_count,
                    total_amount=Decimal(r.total_amount),
                    percentage=Decimal(r.percentage),
                    settles_via_feed_b=bool(r.settles_via_feed_b),
                )
                for r in rows
            ]

    # Product memory ---------------------------------------------------------

    def get_product(self, description: str) -> ProductRecord | None:
        with self._scope("get_product") as s:
            row = (
                s.execute(select(ProductRow).where(ProductRow.description == description))
                .scalars()
                .first()
            )
            return _product_from_row(row) if row is not None else None

    def list_products(self) -> list[ProductRecord]:
        with self._scope("list_products") as s:
            rows = s.execute(select(ProductRow).order_by(ProductRow.description)).scalars()
            return [_product_from_row(r) for r in rows]

    def upsert_product(self, record: ProductRecord) -> ProductRecord:
        """Insert or overwrite the record for ``record.description``.

        A concurrent insert of the same description surfaces as an
        ``IntegrityError``; the write is then retried as an update of the row
        that won, so the last writer wins.
        """

        with self._scope("upsert_product") as s:
            row = (
                s.execute(select(ProductRow).where(ProductRow.description == record.description))
                .scalars()
                .first()
            )
            if row is None:
                row = ProductRow(description=record.description)
                _apply_product(row, record)
                try:
                    s.add(row)
                    s.flush()
                except IntegrityError:
                    s.rollback()
                    log_event(
                        logger, "storage:upsert_product_race", description=record.description
                    )
                    row = (
                        s.execute(
                            select(ProductRow).where(ProductRow.description == record.description)
                        )
                        .scalars()
                        .first()
                    )
                    if row is None:
                        raise
                    _apply_product(row, record)
                    s.flush()
            else:
                _apply_product(row, record)
                s.flush()
            return _product_from_row(row)

    def delete_product(self, product_id: int) -> bool:
        with self._scope("delete_product") as s:
            result = s.execute(delete(ProductRow).where(ProductRow.id == product_id))
            return bool(result.rowcount)

    # Ruleset overrides ------------------------------------------------------

    def get_category_rule_overrides(self) -> list[CategoryRule] | None:
        with self._scope("get_category_rule_overrides") as s:
            rows = s.execute(select(CategoryRuleRow).order_by(CategoryRuleRow.priority)).scalars()
            rules = [_rule_from_row(r) for r in rows]
            return rules or None

    def save_category_rule_overrides(self, rules: Sequence[CategoryRule]) -> None:
        with self._scope("save_category_rule_overrides") as s:
            s.execute(delete(CategoryRuleRow))
            s.flush()
            for rule in rules:
                special = rule.special_handling
                s.add(
                    CategoryRuleRow(
                        name=rule.name,
                        priority=rule.priority,
                        keywords=list(rule.keywords),
                        exclusions=list(rule.exclusions),
                        pattern=rule.pattern,
                        tax_rate=rule.tax_rate,
                        ledger_code=rule.ledger_code,
                        group_tag=rule.group_tag,
                        special_handling=special.kind if special else None,
                        handling_periods=special.periods if special else None,
                        category=rule.category,
                    )
                )

    def reset_category_rule_overrides(self) -> None:
        with self._scope("reset_category_rule_overrides") as s:
            s.execute(delete(CategoryRuleRow))

    # Pending reconciliations ------------------------------------------------

    def save_pending_reconciliation(self, record: PendingReconciliation) -> None:
        with self._scope("save_pending_reconciliation") as s:
            s.merge(
                PendingReconciliationRow(
                    id=record.id,
                    period=record.period,
                    created_at=record.created_at,
                    payload=record.payload.model_dump(mode="json"),
                    new_item_count=record.new_item_count,
                    status=record.status,
                )
            )

    def get_pending_reconciliation(self, pending_id: str) -> PendingReconciliation | None:
        with self._scope("get_pending_reconciliation") as s:
            row = s.get(PendingReconciliationRow, pending_id)
            return _pending_from_row(row) if row is not None else None

    def delete_pending_reconciliation(self, pending_id: str) -> bool:
        with self._scope("delete_pending_reconciliation") as s:
            result = s.execute(
                delete(PendingReconciliationRow).where(PendingReconciliationRow.id == pending_id)
            )
            return bool(result.rowcount)

    def list_pending_reconciliations(self) -> list[PendingReconciliation]:
        with self._scope("list_pending_reconciliations") as s:
            rows = s.execute(
                select(PendingReconciliationRow).order_by(
                    PendingReconciliationRow.created_at.desc(), PendingReconciliationRow.id
                )
            ).scalars()
            return [_pending_from_row(r) for r in rows]


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryReconStorage:
    """Process-local storage with the same semantics as :class:`SqlReconStorage`."""

    def __init__(self) -> None:
        self._sessions: dict[str, ReconSession] = {}
        self._comparisons: dict[str, list[ComparisonRecord]] = {}
        self._category_summaries: dict[str, list[CategorySummaryRecord]] = {}
        self._category_items: dict[tuple[str, str], list[CategoryItemDetail]] = {}
        self._channel_summaries: dict[str, list[ChannelSummaryRecord]] = {}
        self._products: dict[str, ProductRecord] = {}
        self._next_product_id = 1
        self._rules: list[CategoryRule] = []
        self._pending: dict[str, PendingReconciliation] = {}

    def create_session(
        self, period: str, totals: SessionTotals, *, origin_pending_id: str | None = None
    ) -> ReconSession:
        session = ReconSession(
            id=str(uuid.uuid4()),
            period=period,
            created_at=_utcnow(),
            totals=totals,
            origin_pending_id=origin_pending_id,
        )
        self._sessions[session.id] = session
        log_event(logger, "storage:session_created", session_id=session.id, period=period)
        return session

    def save_result(
        self,
        period: str,
        totals: SessionTotals,
        *,
        comparisons: Sequence[ComparisonRecord],
        category_summaries: Sequence[CategorySummaryRecord],
        category_items: Mapping[str, Sequence[CategoryItemDetail]],
        channel_summaries: Sequence[ChannelSummaryRecord],
        origin_pending_id: str | None = None,
    ) -> ReconSession:
        session = ReconSession(
            id=str(uuid.uuid4()),
            period=period,
            created_at=_utcnow(),
            totals=totals,
            origin_pending_id=origin_pending_id,
        )
        # Nothing is visible until every record set is in place.
        self._comparisons[session.id] = list(comparisons)
        self._category_summaries[session.id] = list(category_summaries)
        for category, items in category_items.items():
            self._category_items[(session.id, category)] = list(items)
        self._channel_summaries[session.id] = list(channel_summaries)
        self._sessions[session.id] = session
        log_event(
            logger,
            "storage:session_created",
            session_id=session.id,
            period=period,
            comparisons=len(comparisons),
        )
        return session

    def get_session(self, session_id: str) -> ReconSession | None:
        return self._sessions.get(session_id)

    def list_sessions(self) -> list[ReconSession]:
        # Insertion order breaks created_at ties (newest first).
        ordered = list(self._sessions.values())[::-1]
        return sorted(ordered, key=lambda x: x.created_at, reverse=True)

    def find_session_by_origin(self, pending_id: str) -> ReconSession | None:
        for session in self._sessions.values():
            if session.origin_pending_id == pending_id:
                return session
        return None

    def set_session_status(self, session_id: str, status: SessionStatus) -> ReconSession:
        _check_status(status)
        session = replace(self._sessions[session_id], status=status)
        self._sessions[session_id] = session
        return session

    def put_comparisons(self, session_id: str, records: Sequence[ComparisonRecord]) -> None:
        self._comparisons.setdefault(session_id, []).extend(records)

    def get_comparisons(self, session_id: str) -> list[ComparisonRecord]:
        return list(self._comparisons.get(session_id, []))

    def put_category_summaries(
        self, session_id: str, records: Sequence[CategorySummaryRecord]
    ) -> None:
        self._category_summaries.setdefault(session_id, []).extend(records)

    def get_category_summaries(self, session_id: str) -> list[CategorySummaryRecord]:
        return list(self._category_summaries.get(session_id, []))

    def put_category_items(
        self, session_id: str, category: str, items: Sequence[CategoryItemDetail]
    ) -> None:
        self._category_items.setdefault((session_id, category), []).extend(items)

    def get_category_items(self, session_id: str, category: str) -> list[CategoryItemDetail]:
        return list(self._category_items.get((session_id, category), []))

    def put_channel_summaries(
        self, session_id: str, records: Sequence[ChannelSummaryRecord]
    ) -> None:
        self._channel_summaries.setdefault(session_id, []).extend(records)

    def get_channel_summaries(self, session_id: str) -> list[ChannelSummaryRecord]:
        return list(self._channel_summaries.get(session_id, []))

    def get_product(self, description: str) -> ProductRecord | None:
        return self._products.get(description)

    def list_products(self) -> list[ProductRecord]:
        return [self._products[k] for k in sorted(self._products)]

    def upsert_product(self, record: ProductRecord) -> ProductRecord:
        existing = self._products.get(record.description)
        if existing is None:
            product_id = self._next_product_id
            self._next_product_id += 1
        else:
            product_id = existing.id
        stored = replace(record, id=product_id, updated_at=_utcnow())
        self._products[record.description] = stored
        return stored

    def delete_product(self, product_id: int) -> bool:
        for description, record in self._products.items():
            if record.id == product_id:
                del self._products[description]
                return True
        return False

    def get_category_rule_overrides(self) -> list[CategoryRule] | None:
        return sorted(self._rules, key=lambda r: r.priority) or None

    def save_category_rule_overrides(self, rules: Sequence[CategoryRule]) -> None:
        self._rules = list(rules)

    def reset_category_rule_overrides(self) -> None:
        self._rules = []

    def save_pending_reconciliation(self, record: PendingReconciliation) -> None:
        # Round-trip through JSON so stored state never aliases caller objects.
        payload = PendingPayload.model_validate(record.payload.model_dump(mode="json"))
        self._pending[record.id] = replace(record, payload=payload)

    def get_pending_reconciliation(self, pending_id: str) -> PendingReconciliation | None:
        return self._pending.get(pending_id)

    def delete_pending_reconciliation(self, pending_id: str) -> bool:
        return self._pending.pop(pending_id, None) is not None

    def list_pending_reconciliations(self) -> list[PendingReconciliation]:
        ordered = list(self._pending.values())[::-1]
        return sorted(ordered, key=lambda p: p.created_at, reverse=True)


__all__ = [
    "ReconStorage",
    "SqlReconStorage",
    "InMemoryReconStorage",
]
