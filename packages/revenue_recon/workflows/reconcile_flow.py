# ruff: noqa: I001
"""Workflow orchestrators for reconciliation runs.

A run moves through ``idle -> awaiting_review -> resumed | discarded``:

- :func:`reconcile` aggregates both feeds. When feed A holds descriptions
  without an approved Product Memory record (and review is not skipped), the
  parsed rows are stored as a pending reconciliation and nothing else is
  written.
- :func:`submit_review` records operator decisions for a pending run.
- :func:`resume_reconciliation` re-runs the pipeline from the stored rows,
  creates the session with its derived records, then deletes the pending
  record. Repeating a resume returns the already-created session.
- :func:`discard_reconciliation` deletes a pending record only.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, date, datetime
from typing import Any

from ..aggregation import FeedAggregator
from ..categories import resolve_ruleset
from ..errors import FeedFormatError, PendingReconciliationNotFound
from ..logging_setup import get_logger, log_event
from ..matching import build_comparisons, session_totals
from ..models import (
    CategoryRule,
    FeedARow,
    FeedBRow,
    PendingPayload,
    PendingReconciliation,
    ProductRecord,
    ReconcileOutcome,
    ReconciliationResult,
    ReviewDecision,
)
from ..review import apply_review_decisions, find_new_items, record_sightings
from ..settings import EngineSettings
from ..storage import ReconStorage

logger = get_logger("revenue_recon.workflows.reconcile")


def _products_by_description(storage: ReconStorage) -> dict[str, ProductRecord]:
    return {p.description: p for p in storage.list_products()}


def _finalize(
    storage: ReconStorage,
    feed_a: Sequence[FeedARow],
    feed_b: Sequence[FeedBRow],
    *,
    period: str,
    settings: EngineSettings,
    rules: Sequence[CategoryRule],
    products: Mapping[str, ProductRecord],
    origin_pending_id: str | None,
    today: date | None,
) -> ReconciliationResult:
    aggregates = FeedAggregator(settings=settings, rules=rules, products=products).aggregate(
        feed_a, feed_b
    )
    comparisons = build_comparisons(
        aggregates.feed_a_by_identity,
        aggregates.feed_b_by_identity,
        excluded_identities=settings.operator_identities,
    )
    totals = session_totals(aggregates, comparisons)

    session = storage.save_result(
        period,
        totals,
        comparisons=comparisons,
        category_summaries=aggregates.category_summaries,
        category_items=aggregates.category_items,
        channel_summaries=aggregates.channel_summaries,
        origin_pending_id=origin_pending_id,
    )
    record_sightings(storage, aggregates.description_counts, today=today)
    log_event(
        logger,
        "reconcile:session_created",
        session_id=session.id,
        identities=len(comparisons),
        matched=totals.matched_count,
        unmatched=totals.unmatched_count,
    )
    return ReconciliationResult(
        session=session,
        comparisons=comparisons,
        category_summaries=aggregates.category_summaries,
        category_items=aggregates.category_items,
        channel_summaries=aggregates.channel_summaries,
    )


def reconcile(
    storage: ReconStorage,
    feed_a: Iterable[FeedARow],
    feed_b: Iterable[FeedBRow],
    *,
    period: str,
    settings: EngineSettings | None = None,
    skip_review: bool = False,
    today: date | None = None,
) -> ReconcileOutcome:
    """Run one reconciliation, suspending it when new items need review.

    Raises
    ------
    FeedFormatError
        When either feed has no rows.
    StorageError
        When the store fails (retryable).
    """

    rows_a = list(feed_a)
    rows_b = list(feed_b)
    if not rows_a:
        raise FeedFormatError("feed A contains no rows")
    if not rows_b:
        raise FeedFormatError("feed B contains no rows")

    cfg = settings or EngineSettings()
    log_event(
        logger,
        "reconcile:start",
        period=period,
        feed_a_rows=len(rows_a),
        feed_b_rows=len(rows_b),
        skip_review=skip_review,
    )
    rules = resolve_ruleset(storage)
    products = _products_by_description(storage)
    candidates = find_new_items(rows_a, products=products, rules=rules)

    if candidates and not skip_review:
        pending = PendingReconciliation(
            id=str(uuid.uuid4()),
            period=period,
            created_at=datetime.now(UTC),
            payload=PendingPayload(feed_a=rows_a, feed_b=rows_b, candidates=candidates),
            new_item_count=len(candidates),
        )
        storage.save_pending_reconciliation(pending)
        log_event(
            logger, "reconcile:awaiting_review", pending_id=pending.id, new_items=len(candidates)
        )
        return ReconcileOutcome(pending=pending)

    if candidates:
        log_event(logger, "reconcile:review_skipped", new_items=len(candidates))
    result = _finalize(
        storage,
        rows_a,
        rows_b,
        period=period,
        settings=cfg,
        rules=rules,
        products=products,
        origin_pending_id=None,
        today=today,
    )
    return ReconcileOutcome(result=result)


def get_pending(storage: ReconStorage, pending_id: str) -> PendingReconciliation:
    """Return a pending record or raise :class:`PendingReconciliationNotFound`."""

    pending = storage.get_pending_reconciliation(pending_id)
    if pending is None:
        raise PendingReconciliationNotFound(pending_id)
    return pending


def submit_review(
    storage: ReconStorage,
    pending_id: str,
    decisions: Iterable[ReviewDecision | Mapping[str, Any]],
    *,
    today: date | None = None,
) -> list[ProductRecord]:
    """Apply operator decisions for a pending run without resuming it."""

    get_pending(storage, pending_id)
    return apply_review_decisions(storage, decisions, today=today)


def resume_reconciliation(
    storage: ReconStorage,
    pending_id: str,
    *,
    decisions: Iterable[ReviewDecision | Mapping[str, Any]] = (),
    settings: EngineSettings | None = None,
    today: date | None = None,
) -> ReconciliationResult:
    """Finish a pending run and delete its pending record.

    Decisions, when given, are applied first. Items left undecided fall back
    to the ruleset. If a session for ``pending_id`` already exists (a repeated
    resume), the pending record is removed if still present and the existing
    result is returned.
    """

    existing = storage.find_session_by_origin(pending_id)
    if existing is not None:
        storage.delete_pending_reconciliation(pending_id)
        log_event(
            logger, "resume:already_completed", pending_id=pending_id, session_id=existing.id
        )
        result = load_result(storage, existing.id)
        assert result is not None
        return result

    pending = get_pending(storage, pending_id)
    log_event(logger, "resume:start", pending_id=pending_id, new_items=pending.new_item_count)
    decision_list = list(decisions)
    if decision_list:
        apply_review_decisions(storage, decision_list, today=today)

    result = _finalize(
        storage,
        pending.payload.feed_a,
        pending.payload.feed_b,
        period=pending.period,
        settings=settings or EngineSettings(),
        rules=resolve_ruleset(storage),
        products=_products_by_description(storage),
        origin_pending_id=pending_id,
        today=today,
    )
    storage.delete_pending_reconciliation(pending_id)
    log_event(logger, "resume:finish", pending_id=pending_id, session_id=result.session.id)
    return result


def discard_reconciliation(storage: ReconStorage, pending_id: str) -> None:
    """Delete a pending run; Product Memory is left untouched."""

    if not storage.delete_pending_reconciliation(pending_id):
        raise PendingReconciliationNotFound(pending_id)
    log_event(logger, "discard:done", pending_id=pending_id)


def load_result(storage: ReconStorage, session_id: str) -> ReconciliationResult | None:
    """Session plus all derived records, or ``None`` for an unknown session."""

    session = storage.get_session(session_id)
    if session is None:
        return None
    summaries = storage.get_category_summaries(session_id)
    return ReconciliationResult(
        session=session,
        comparisons=storage.get_comparisons(session_id),
        category_summaries=summaries,
        category_items={
            s.category: storage.get_category_items(session_id, s.category) for s in summaries
        },
        channel_summaries=storage.get_channel_summaries(session_id),
    )


__all__ = [
    "discard_reconciliation",
    "get_pending",
    "load_result",
    "reconcile",
    "resume_reconciliation",
    "submit_review",
]
