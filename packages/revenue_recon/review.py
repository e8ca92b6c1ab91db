"""Review workflow helpers: new-item detection and Product Memory updates.

The engine never writes a classification to Product Memory on its own. A
description becomes known only through an operator decision
(:func:`apply_review_decisions`) or an explicit administrative edit; runs
afterwards just record sightings (:func:`record_sightings`).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any, get_args

from .categories import category_names, classify_by_rules, rule_for_category
from .logging_setup import get_logger, log_event
from .models import (
    CategoryRule,
    FeedARow,
    NewItemCandidate,
    ProductRecord,
    ReviewDecision,
    SpecialHandlingKind,
)
from .normalizers import ZERO, parse_amount
from .storage import ReconStorage

logger = get_logger("revenue_recon.review")


def find_new_items(
    feed_a: Iterable[FeedARow],
    *,
    products: Mapping[str, ProductRecord],
    rules: Sequence[CategoryRule],
) -> list[NewItemCandidate]:
    """Descriptions without an approved Product Memory record.

    Each candidate carries the ruleset's suggestion plus its row count and
    total amount in this run; the list is ordered by total amount
    (descending), then description. Empty descriptions are never candidates.
    """

    counts: dict[str, int] = {}
    totals: dict[str, Decimal] = {}
    for row in feed_a:
        description = (row.description or "").strip()
        if not description:
            continue
        record = products.get(description)
        if record is not None and record.approved:
            continue
        counts[description] = counts.get(description, 0) + 1
        totals[description] = totals.get(description, ZERO) + parse_amount(row.amount)

    candidates = [
        NewItemCandidate(
            description=description,
            suggestion=classify_by_rules(description, rules),
            transaction_count=count,
            total_amount=totals[description],
        )
        for description, count in counts.items()
    ]
    candidates.sort(key=lambda c: (-c.total_amount, c.description))
    return candidates


def decision_from_rule(
    description: str,
    category: str,
    rules: Sequence[CategoryRule],
    **overrides: Any,
) -> ReviewDecision:
    """Build a decision for ``category`` with defaults from its ruleset entry.

    ``overrides`` (``tax_rate``, ``ledger_code``, ``special_handling``,
    ``handling_periods``, ...) win over the rule's values. For a category the
    ruleset does not know, the caller must supply ``tax_rate`` and
    ``ledger_code``; otherwise validation fails.
    """

    data: dict[str, Any] = {"description": description, "category": category}
    rule = rule_for_category(rules, category)
    if rule is not None:
        data["category"] = rule.reported_category
        data["tax_rate"] = rule.tax_rate
        data["ledger_code"] = rule.ledger_code
        if rule.special_handling is not None:
            data["special_handling"] = rule.special_handling.kind
            data["handling_periods"] = rule.special_handling.periods
    if "special_handling" in overrides and overrides["special_handling"] is None:
        data.pop("handling_periods", None)
    data.update(overrides)
    return ReviewDecision.model_validate(data)


def decision_from_candidate(candidate: NewItemCandidate) -> ReviewDecision:
    """Accept a candidate's rule suggestion unchanged."""

    s = candidate.suggestion
    special = s.special_handling
    return ReviewDecision(
        description=candidate.description,
        category=s.category,
        tax_rate=s.tax_rate,
        ledger_code=s.ledger_code,
        special_handling=special.kind if special else None,
        handling_periods=special.periods if special else None,
        handling_start=special.start if special else None,
        handling_end=special.end if special else None,
    )


def apply_review_decisions(
    storage: ReconStorage,
    decisions: Iterable[ReviewDecision | Mapping[str, Any]],
    *,
    today: date | None = None,
) -> list[ProductRecord]:
    """Upsert each decision into Product Memory as approved.

    Only the classification changes; an existing record keeps its count and
    ``first_seen``, a new one starts at zero. Counts grow when a run is
    finalized (:func:`record_sightings`), so applying the same decision twice
    is harmless. Raw mappings are validated into :class:`ReviewDecision`
    first, and all decisions are validated before anything is written.
    """

    validated = [
        d if isinstance(d, ReviewDecision) else ReviewDecision.model_validate(d)
        for d in decisions
    ]
    run_date = today or date.today()
    saved: list[ProductRecord] = []
    for decision in validated:
        existing = storage.get_product(decision.description)
        fields = {
            "category": decision.category,
            "tax_rate": decision.tax_rate,
            "ledger_code": decision.ledger_code,
            "special_handling": decision.special(),
            "approved": True,
            "last_seen": run_date,
        }
        if existing is None:
            record = ProductRecord(description=decision.description, first_seen=run_date, **fields)
        else:
            record = replace(existing, first_seen=existing.first_seen or run_date, **fields)
        saved.append(storage.upsert_product(record))
    log_event(logger, "review:decisions_applied", count=len(saved))
    return saved


def record_sightings(
    storage: ReconStorage,
    description_counts: Mapping[str, int],
    *,
    today: date | None = None,
) -> int:
    """Add a finalized run's row counts to the products it saw.

    Descriptions without a Product Memory record are ignored. Returns the
    number of records updated.
    """

    run_date = today or date.today()
    updated = 0
    for description, count in description_counts.items():
        existing = storage.get_product(description)
        if existing is None:
            continue
        storage.upsert_product(
            replace(
                existing,
                first_seen=existing.first_seen or run_date,
                last_seen=run_date,
                transaction_count=existing.transaction_count + count,
            )
        )
        updated += 1
    if updated:
        log_event(logger, "review:sightings_recorded", level=logging.DEBUG, products=updated)
    return updated


def collect_review_decisions(
    candidates: Sequence[NewItemCandidate],
    rules: Sequence[CategoryRule],
    *,
    session: Any = None,
    echo: Callable[[str], None] = print,
    allow_create: bool = True,
) -> list[ReviewDecision]:
    """Ask the operator to confirm or change each candidate's category.

    The rule suggestion is pre-filled. Known categories take tax rate, ledger
    code and special handling from their rule (the period count can be
    adjusted); a new category asks for tax rate, ledger code and special
    handling. Cancelling a follow-up prompt skips that candidate.
    """

    from .term_ui import (
        CreateCategoryRequest,
        prompt_choice,
        prompt_ledger_code,
        prompt_periods,
        prompt_tax_rate,
        select_category_or_create,
    )

    vocabulary = category_names(rules)
    decisions: list[ReviewDecision] = []
    for index, cand in enumerate(candidates, start=1):
        s = cand.suggestion
        echo(
            f"[{index}/{len(candidates)}] {cand.description}  "
            f"({cand.transaction_count}x, total {cand.total_amount})  suggestion: {s.category}"
        )
        choice = select_category_or_create(
            vocabulary, default=s.category, session=session, allow_create=allow_create
        )

        if isinstance(choice, CreateCategoryRequest):
            if not choice.name.strip():
                echo("  skipped (no category name)")
                continue
            tax_rate = prompt_tax_rate(default=s.tax_rate, session=session)
            ledger = prompt_ledger_code(default=s.ledger_code, session=session)
            if tax_rate is None or ledger is None:
                echo("  skipped")
                continue
            kind = prompt_choice(
                ["none", *get_args(SpecialHandlingKind)],
                default=s.special_handling.kind if s.special_handling else "none",
                session=session,
                message="Special handling: ",
            )
            special: dict[str, Any] = {}
            if kind != "none":
                special["special_handling"] = kind
                special["handling_periods"] = prompt_periods(session=session)
            decisions.append(
                ReviewDecision(
                    description=cand.description,
                    category=choice.name.strip(),
                    tax_rate=tax_rate,
                    ledger_code=ledger,
                    **special,
                )
            )
            continue

        overrides: dict[str, Any] = {}
        rule = rule_for_category(rules, choice)
        if rule is not None and rule.special_handling is not None:
            overrides["handling_periods"] = prompt_periods(
                default=rule.special_handling.periods, session=session
            )
        decisions.append(decision_from_rule(cand.description, choice, rules, **overrides))
    return decisions


__all__ = [
    "apply_review_decisions",
    "collect_review_decisions",
    "decision_from_candidate",
    "decision_from_rule",
    "find_new_items",
    "record_sightings",
]
