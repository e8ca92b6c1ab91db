"""Public API interfaces and orchestration for the ``revenue_recon`` package.

This module is the stable import surface for hosts (the CLI, an HTTP layer,
notebooks). Run orchestration lives in :mod:`revenue_recon.workflows` and is
re-exported here; the small administrative operations on Product Memory and
the category ruleset are defined here.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from os import PathLike
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, TypeAdapter, field_validator

from .categories import DEFAULT_RULES, resolve_ruleset, validate_ruleset
from .errors import RuleSetError
from .ingest.feeds import load_feed_a_csv, load_feed_b_csv
from .logging_setup import get_logger, log_event
from .models import (
    CategoryRule,
    ProductRecord,
    ReconcileOutcome,
    ReconSession,
    ReviewDecision,
    SpecialHandling,
    SpecialHandlingKind,
)
from .settings import EngineSettings
from .storage import ReconStorage
from .workflows.reconcile_flow import (
    discard_reconciliation,
    get_pending,
    load_result,
    reconcile,
    resume_reconciliation,
    submit_review,
)

logger = get_logger("revenue_recon.api")


def reconcile_csv_files(
    storage: ReconStorage,
    feed_a_path: str | PathLike[str],
    feed_b_path: str | PathLike[str],
    *,
    period: str,
    settings: EngineSettings | None = None,
    skip_review: bool = False,
    today: date | None = None,
) -> ReconcileOutcome:
    """Load both CSV exports and run :func:`reconcile`."""

    return reconcile(
        storage,
        load_feed_a_csv(feed_a_path),
        load_feed_b_csv(feed_b_path),
        period=period,
        settings=settings,
        skip_review=skip_review,
        today=today,
    )


def archive_session(storage: ReconStorage, session_id: str) -> ReconSession:
    return storage.set_session_status(session_id, "archived")


# ---------------------------------------------------------------------------
# Product memory administration
# ---------------------------------------------------------------------------


def list_products(storage: ReconStorage) -> list[ProductRecord]:
    return storage.list_products()


def delete_product(storage: ReconStorage, product_id: int) -> bool:
    deleted = storage.delete_product(product_id)
    log_event(logger, "products:delete", product_id=product_id, deleted=deleted)
    return deleted


def save_product(storage: ReconStorage, decision: ReviewDecision) -> ProductRecord:
    """Operator edit of one product: overwrites its classification, approved.

    Counts and sighting dates of an existing record are kept.
    """

    existing = storage.get_product(decision.description)
    record = ProductRecord(
        description=decision.description,
        category=decision.category,
        tax_rate=decision.tax_rate,
        ledger_code=decision.ledger_code,
        special_handling=decision.special(),
        approved=True,
        first_seen=existing.first_seen if existing else None,
        last_seen=existing.last_seen if existing else None,
        transaction_count=existing.transaction_count if existing else 0,
    )
    return storage.upsert_product(record)


# ---------------------------------------------------------------------------
# Ruleset administration
# ---------------------------------------------------------------------------


class RuleSpec(BaseModel):
    """JSON shape of one category rule (ruleset files, ``rules show``)."""

    model_config = ConfigDict(extra="forbid")

    name: str
    priority: int
    tax_rate: Decimal
    ledger_code: str
    group_tag: str = "yoga"
    keywords: list[str] = []
    exclusions: list[str] = []
    pattern: str | None = None
    special_handling: SpecialHandlingKind | None = None
    handling_periods: int | None = None
    category: str | None = None

    @field_validator("keywords", "exclusions")
    @classmethod
    def _strip_terms(cls, v: list[str]) -> list[str]:
        return [t.strip() for t in v if t.strip()]

    def to_rule(self) -> CategoryRule:
        special = (
            SpecialHandling(kind=self.special_handling, periods=self.handling_periods)
            if self.special_handling
            else None
        )
        return CategoryRule(
            name=self.name.strip(),
            priority=self.priority,
            tax_rate=self.tax_rate,
            ledger_code=self.ledger_code.strip(),
            group_tag=self.group_tag,
            keywords=tuple(self.keywords),
            exclusions=tuple(self.exclusions),
            pattern=self.pattern or None,
            special_handling=special,
            category=self.category or None,
        )

    @classmethod
    def from_rule(cls, rule: CategoryRule) -> RuleSpec:
        special = rule.special_handling
        return cls(
            name=rule.name,
            priority=rule.priority,
            tax_rate=rule.tax_rate,
            ledger_code=rule.ledger_code,
            group_tag=rule.group_tag,
            keywords=list(rule.keywords),
            exclusions=list(rule.exclusions),
            pattern=rule.pattern,
            special_handling=special.kind if special else None,
            handling_periods=special.periods if special else None,
            category=rule.category,
        )


_RULE_LIST = TypeAdapter(list[RuleSpec])


def parse_ruleset_json(text: str) -> tuple[CategoryRule, ...]:
    """Parse and validate a JSON ruleset document (a list of rule objects)."""

    try:
        specs = _RULE_LIST.validate_json(text)
    except ValueError as exc:
        raise RuleSetError(f"invalid ruleset document: {exc}") from exc
    return validate_ruleset(spec.to_rule() for spec in specs)


def ruleset_to_json(rules: Sequence[CategoryRule]) -> str:
    payload: list[dict[str, Any]] = [
        RuleSpec.from_rule(r).model_dump(mode="json") for r in rules
    ]
    return json.dumps(payload, indent=2, ensure_ascii=False)


def effective_ruleset(storage: ReconStorage) -> tuple[CategoryRule, ...]:
    return resolve_ruleset(storage)


def save_ruleset(storage: ReconStorage, rules: Sequence[CategoryRule]) -> tuple[CategoryRule, ...]:
    """Validate and store a full replacement ruleset."""

    ordered = validate_ruleset(rules)
    storage.save_category_rule_overrides(ordered)
    log_event(logger, "rules:saved", count=len(ordered))
    return ordered


def load_ruleset_file(storage: ReconStorage, path: str | PathLike[str]) -> tuple[CategoryRule, ...]:
    return save_ruleset(storage, parse_ruleset_json(Path(path).read_text(encoding="utf-8")))


def reset_ruleset(storage: ReconStorage) -> tuple[CategoryRule, ...]:
    storage.reset_category_rule_overrides()
    log_event(logger, "rules:reset")
    return DEFAULT_RULES


__all__ = [
    "RuleSpec",
    "archive_session",
    "delete_product",
    "discard_reconciliation",
    "effective_ruleset",
    "get_pending",
    "list_products",
    "load_result",
    "load_ruleset_file",
    "parse_ruleset_json",
    "reconcile",
    "reconcile_csv_files",
    "reset_ruleset",
    "resume_reconciliation",
    "ruleset_to_json",
    "save_product",
    "save_ruleset",
    "submit_review",
]
