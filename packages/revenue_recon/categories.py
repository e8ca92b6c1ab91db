"""Category ruleset and the description classifier.

Resolution order for one description:

1. an approved Product Memory record for the exact description wins;
2. structural-pattern rules (e.g. an 8-character gift-card code);
3. keyword rules in ascending ``priority``, honoring each rule's exclusions;
4. the catch-all rule.

:func:`classify` is pure and never raises. Rulesets coming from storage are
checked by :func:`validate_ruleset` before use, so a bad override is rejected
when it is saved, not halfway through a run.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from functools import lru_cache
from typing import TYPE_CHECKING, get_args

from .errors import RuleSetError
from .models import CategoryRule, Classification, GroupTag, ProductRecord, SpecialHandling

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .storage import ReconStorage

CATCH_ALL_CATEGORY = "Overig"
GROUP_TAGS: frozenset[str] = frozenset(get_args(GroupTag))

# Exactly 8 alphanumerics with at least one digit and one letter.
GIFT_CARD_CODE_PATTERN = r"(?=[A-Za-z0-9]*\d)(?=[A-Za-z0-9]*[A-Za-z])[A-Za-z0-9]{8}"


def _rule(
    name: str,
    priority: int,
    tax: str,
    ledger: str,
    keywords: Iterable[str] = (),
    *,
    group: str = "yoga",
    exclusions: Iterable[str] = (),
    pattern: str | None = None,
    special: SpecialHandling | None = None,
    category: str | None = None,
) -> CategoryRule:
    return CategoryRule(
        name=name,
        priority=priority,
        tax_rate=Decimal(tax),
        ledger_code=ledger,
        group_tag=group,
        keywords=tuple(keywords),
        exclusions=tuple(exclusions),
        pattern=pattern,
        special_handling=special,
        category=category,
    )


DEFAULT_RULES: tuple[CategoryRule, ...] = (
    _rule(
        "Gift Card Codes", 5, "0.00", "8900",
        pattern=GIFT_CARD_CODE_PATTERN, category="Gift Cards",
    ),
    _rule(
        "Opleidingen", 10, "0.21", "8300",
        ("training", "opleiding", "teacher", "coach", "facilitator",
         "certification", "200 uur", "schoolverlichting"),
        special=SpecialHandling(kind="accrual", periods=14),
    ),
    _rule("Online/Livestream", 20, "0.21", "8200", ("livestream", "online", "virtual")),
    _rule(
        "Gift Cards", 30, "0.00", "8900",
        ("gift card", "giftcard", "cadeaukaart", "cadeaubon", "voucher"),
    ),
    _rule("Money Credits", 40, "0.00", "8901", ("money credit", "credit", "tegoed")),
    _rule(
        "Workshops & Events", 50, "0.09", "8150",
        ("workshop", "ceremony", "event", "retreat", "circle", "tantra", "cacao",
         "truffle", "breathwork", "sound"),
    ),
    _rule(
        "Jaarabonnementen", 60, "0.09", "8101",
        ("yearly membership", "year membership", "annual membership",
         "jaarabonnement", "jaarlidmaatschap"),
        exclusions=("monthly", "maandelijks"),
        special=SpecialHandling(kind="spread", periods=12),
    ),
    _rule(
        "Abonnementen", 70, "0.09", "8100",
        ("membership", "unlimited", "abonnement", "lidmaatschap"),
    ),
    _rule(
        "Rittenkaarten", 80, "0.09", "8110",
        ("class card", "lessenkaart", "rittenkaart", "strippenkaart", "pack"),
        exclusions=("single",),
    ),
    _rule(
        "Omzet Keuken", 90, "0.09", "8001",
        ("brownie", "banana bread", "bananenbrood", "bliss ball", "snack", "soep",
         "soup", "quiche", "salad", "cake"),
        group="horeca",
    ),
    _rule(
        "Omzet Drank Laag", 100, "0.09", "8002",
        ("coffee", "koffie", "cappuccino", "latte", "espresso", "macchiato",
         "flat white", "cortado", "americano", "tea", "thee", "chai", "matcha",
         "smoothie", "juice", "kombucha", "lemonade", "water"),
        group="horeca",
    ),
    _rule(
        "Omzet Drank Hoog", 110, "0.21", "8003",
        ("beer", "bier", "wine", "wijn", "prosecco", "cocktail"),
        group="horeca",
    ),
    _rule(
        "Single Classes", 120, "0.09", "8120",
        ("single class", "losse les", "drop in", "drop-in", "€15", "€16", "€17", "€18"),
    ),
    _rule(CATCH_ALL_CATEGORY, 1000, "0.09", "8999"),
)


@lru_cache(maxsize=256)
def _compiled(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def _catch_all(rules: Sequence[CategoryRule]) -> CategoryRule:
    for rule in rules:
        if rule.is_catch_all:
            return rule
    # Unvalidated input without a catch-all still classifies.
    return DEFAULT_RULES[-1]


def _evaluation_order(rules: Sequence[CategoryRule]) -> list[CategoryRule]:
    return sorted(
        (r for r in rules if not r.is_catch_all),
        key=lambda r: (r.pattern is None, r.priority),
    )


def _rule_matches(rule: CategoryRule, description: str, lowered: str) -> bool:
    if rule.pattern:
        try:
            matched = _compiled(rule.pattern).fullmatch(description) is not None
        except re.error:
            return False
    else:
        matched = any(k.lower() in lowered for k in rule.keywords if k)
    if not matched:
        return False
    return not any(x.lower() in lowered for x in rule.exclusions if x)


def _from_rule(rule: CategoryRule) -> Classification:
    return Classification(
        category=rule.reported_category,
        tax_rate=rule.tax_rate,
        ledger_code=rule.ledger_code,
        special_handling=rule.special_handling,
        group_tag=rule.group_tag,
        source="rule",
    )


def rule_for_category(rules: Sequence[CategoryRule], category: str) -> CategoryRule | None:
    """Return the keyword (or catch-all) rule reporting ``category``, if any."""

    wanted = category.strip().lower()
    found: CategoryRule | None = None
    for rule in sorted(rules, key=lambda r: r.priority):
        if rule.reported_category.lower() != wanted:
            continue
        if rule.pattern is None:
            return rule
        found = found or rule
    return found


def category_names(rules: Sequence[CategoryRule]) -> list[str]:
    """Distinct reported categories in evaluation order (catch-all last)."""

    out: list[str] = []
    for rule in sorted(rules, key=lambda r: r.priority):
        if rule.reported_category not in out:
            out.append(rule.reported_category)
    return out


def classify_by_rules(description: str | None, rules: Sequence[CategoryRule]) -> Classification:
    """Keyword/structural classification ignoring Product Memory."""

    text = (description or "").strip()
    if not text:
        return _from_rule(_catch_all(rules))
    lowered = text.lower()
    for rule in _evaluation_order(rules):
        if _rule_matches(rule, text, lowered):
            return _from_rule(rule)
    return _from_rule(_catch_all(rules))


def classify(
    description: str | None,
    *,
    rules: Sequence[CategoryRule] = DEFAULT_RULES,
    products: Mapping[str, ProductRecord] | None = None,
) -> Classification:
    """Classify one item description.

    ``products`` maps exact descriptions to Product Memory records; only
    approved records override the ruleset. The group tag of a product-decided
    classification is taken from the rule reporting the same category
    (falling back to the catch-all's group).
    """

    if description and products:
        record = products.get(description)
        if record is not None and record.approved:
            rule = rule_for_category(rules, record.category) or _catch_all(rules)
            return Classification(
                category=record.category,
                tax_rate=record.tax_rate,
                ledger_code=record.ledger_code,
                special_handling=record.special_handling,
                group_tag=rule.group_tag,
                source="product",
            )
    return classify_by_rules(description, rules)


def validate_ruleset(rules: Iterable[CategoryRule]) -> tuple[CategoryRule, ...]:
    """Check a ruleset and return it sorted by priority.

    Raises
    ------
    RuleSetError
        When the catch-all is missing, duplicated or not the lowest priority,
        when names or priorities repeat, or when a rule carries an invalid
        tax rate, group tag, pattern or special-handling period count.
    """

    ordered = tuple(sorted(rules, key=lambda r: r.priority))
    if not ordered:
        raise RuleSetError("ruleset is empty")

    catch_alls = [r for r in ordered if r.is_catch_all]
    if len(catch_alls) != 1:
        raise RuleSetError(f"ruleset needs exactly one catch-all rule, found {len(catch_alls)}")
    if ordered[-1] is not catch_alls[0]:
        raise RuleSetError(f"catch-all rule {catch_alls[0].name!r} must have the lowest priority")

    seen_names: set[str] = set()
    seen_priorities: set[int] = set()
    for rule in ordered:
        if not rule.name.strip():
            raise RuleSetError("rule name must not be empty")
        if rule.name in seen_names:
            raise RuleSetError(f"duplicate rule name {rule.name!r}")
        if rule.priority in seen_priorities:
            raise RuleSetError(f"duplicate rule priority {rule.priority}")
        seen_names.add(rule.name)
        seen_priorities.add(rule.priority)

        if not (Decimal(0) <= rule.tax_rate <= Decimal(1)):
            raise RuleSetError(f"rule {rule.name!r}: tax rate {rule.tax_rate} outside [0, 1]")
        if not rule.ledger_code.strip():
            raise RuleSetError(f"rule {rule.name!r}: ledger code must not be empty")
        if rule.group_tag not in GROUP_TAGS:
            raise RuleSetError(f"rule {rule.name!r}: unknown group tag {rule.group_tag!r}")
        if rule.pattern:
            try:
                re.compile(rule.pattern)
            except re.error as exc:
                raise RuleSetError(f"rule {rule.name!r}: invalid pattern: {exc}") from exc
        special = rule.special_handling
        if special is not None and special.periods is not None and special.periods <= 0:
            raise RuleSetError(f"rule {rule.name!r}: special handling periods must be positive")
    return ordered


def resolve_ruleset(storage: ReconStorage) -> tuple[CategoryRule, ...]:
    """Snapshot of the effective ruleset: stored overrides, else the defaults."""

    overrides = storage.get_category_rule_overrides()
    if not overrides:
        return DEFAULT_RULES
    return validate_ruleset(overrides)


__all__ = [
    "CATCH_ALL_CATEGORY",
    "DEFAULT_RULES",
    "GIFT_CARD_CODE_PATTERN",
    "GROUP_TAGS",
    "category_names",
    "classify",
    "classify_by_rules",
    "resolve_ruleset",
    "rule_for_category",
    "validate_ruleset",
]
