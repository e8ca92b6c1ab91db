"""Amount and identity normalization for raw feed cells.

Both feeds may be exported with Dutch (``1.234,56``) or US (``1,234.56``)
formatting. :func:`parse_amount` resolves the decimal separator from the
position of the last ``,`` and ``.`` and never raises: a malformed cell is
worth ``0`` rather than an aborted run. Values are kept exactly as exported
(no rounding), so matcher thresholds see the real difference.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from .logging_setup import get_logger, log_event

logger = get_logger("revenue_recon.normalizers")

ZERO = Decimal("0")

# Currency symbols stripped before parsing.
_CURRENCY_CHARS = "€$"


def _strip(raw: str) -> str:
    s = "".join(ch for ch in raw if not ch.isspace())
    for ch in _CURRENCY_CHARS:
        s = s.replace(ch, "")
    return s


def _with_decimal_point(s: str, sep: str) -> str:
    # The last ``sep`` is the decimal point; every other , or . groups digits.
    head, _, tail = s.rpartition(sep)
    return head.replace(",", "").replace(".", "") + "." + tail


def _finite(value: Decimal, raw: object) -> Decimal:
    if not value.is_finite():
        log_event(logger, "parse_amount:non_finite", level=logging.DEBUG, raw=raw)
        return ZERO
    return value


def parse_amount(raw: str | int | float | Decimal | None) -> Decimal:
    """Parse a locale-ambiguous amount into an exact ``Decimal``.

    Whichever of ``,`` and ``.`` occurs last is the decimal separator; all
    other separators are thousands grouping. This holds when only one
    separator type is present too, so ``"12,50"`` is ``12.50`` and
    ``"1,234"`` is ``1.234`` even when the export meant one thousand two
    hundred thirty-four (a known limitation of the heuristic).
    """

    if raw is None:
        return ZERO
    if isinstance(raw, Decimal):
        return _finite(raw, raw)
    if isinstance(raw, int | float):
        return _finite(Decimal(str(raw)), raw)

    s = _strip(raw)
    if not s:
        return ZERO

    last_comma = s.rfind(",")
    last_dot = s.rfind(".")
    if last_comma > last_dot:
        s = _with_decimal_point(s, ",")
    elif last_dot > last_comma:
        s = _with_decimal_point(s, ".")

    try:
        value = Decimal(s)
    except InvalidOperation:
        log_event(logger, "parse_amount:unparseable", level=logging.DEBUG, raw=raw)
        return ZERO
    return _finite(value, raw)


def normalize_identity(raw: str | None) -> str:
    """Lower-case and trim an email; absent input yields ``""``."""

    if raw is None:
        return ""
    return raw.strip().lower()


__all__ = ["ZERO", "parse_amount", "normalize_identity"]
