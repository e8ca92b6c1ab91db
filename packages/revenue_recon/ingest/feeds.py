"""CSV loaders for the booking-system (feed A) and payment-processor (feed B)
exports.

Parsing follows RFC 4180 via the stdlib :mod:`csv` module. The delimiter is
picked from the header line among ``,``, ``;`` and tab because both exports
change with locale settings. Cells are kept as text; amounts are normalized
later by the aggregator.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Mapping, Sequence
from io import StringIO
from os import PathLike
from pathlib import Path

from ..errors import FeedFormatError
from ..logging_setup import get_logger, log_event
from ..models import FeedARow, FeedBRow

logger = get_logger("revenue_recon.ingest.feeds")

_DELIMITERS = ",;\t"

# Canonical field -> accepted header names, in preference order.
FEED_A_COLUMNS: dict[str, tuple[str, ...]] = {
    "channel": ("Payment method",),
    "description": ("Item",),
    "date": ("Date",),
    "amount": ("Sale value",),
    "tax": ("Tax",),
    "identity": ("Customer email", "Paying Customer email"),
}
FEED_A_REQUIRED = ("channel", "description", "amount", "identity")

FEED_B_COLUMNS: dict[str, tuple[str, ...]] = {
    "reporting_category": ("reporting_category",),
    "status": ("Status",),
    "identity": ("customer_email", "Customer Email"),
    "gross": ("gross", "Amount"),
    "fee": ("fee", "Fee"),
}
FEED_B_REQUIRED = ("identity", "gross")


def _detect_delimiter(text: str) -> str:
    # Decided on the header line only: data rows may carry decimal commas.
    header = text.lstrip().splitlines()[0]
    counts = {d: header.count(d) for d in _DELIMITERS}
    best = max(_DELIMITERS, key=lambda d: counts[d])
    return best if counts[best] else ","


def _read_rows(csv_text: str, *, feed: str) -> tuple[list[str], list[dict[str, str]]]:
    text = csv_text.lstrip("\ufeff")
    if not text.strip():
        raise FeedFormatError(f"{feed}: file is empty")
    delimiter = _detect_delimiter(text)
    with StringIO(text) as f:
        reader = csv.DictReader(f, delimiter=delimiter)
        try:
            headers = [h.strip() for h in (reader.fieldnames or []) if h is not None]
            rows: list[dict[str, str]] = []
            for raw in reader:
                row = {
                    k.strip(): (v if isinstance(v, str) else "")
                    for k, v in raw.items()
                    if k is not None
                }
                if not any(v.strip() for v in row.values()):
                    continue
                rows.append(row)
        except csv.Error as exc:
            raise FeedFormatError(f"{feed}: unreadable CSV: {exc}") from exc
    if not headers:
        raise FeedFormatError(f"{feed}: no header row")
    return headers, rows


def _resolve_columns(
    headers: Sequence[str],
    columns: Mapping[str, tuple[str, ...]],
    required: Sequence[str],
    *,
    feed: str,
) -> dict[str, tuple[str, ...]]:
    present = set(headers)
    resolved = {field: tuple(n for n in names if n in present) for field, names in columns.items()}
    missing = [columns[f][0] for f in required if not resolved[f]]
    if missing:
        raise FeedFormatError(f"{feed}: missing required columns: {', '.join(missing)}")
    return resolved


def _cell(row: Mapping[str, str], names: tuple[str, ...]) -> str:
    for name in names:
        value = (row.get(name) or "").strip()
        if value:
            return value
    return ""


def parse_feed_a(csv_text: str) -> list[FeedARow]:
    """Parse booking-system CSV text into :class:`FeedARow` values."""

    headers, rows = _read_rows(csv_text, feed="feed A")
    cols = _resolve_columns(headers, FEED_A_COLUMNS, FEED_A_REQUIRED, feed="feed A")
    out = [
        FeedARow(
            channel=_cell(row, cols["channel"]),
            description=_cell(row, cols["description"]),
            date=_cell(row, cols["date"]),
            amount=_cell(row, cols["amount"]),
            tax=_cell(row, cols["tax"]),
            identity=_cell(row, cols["identity"]),
        )
        for row in rows
    ]
    if not out:
        raise FeedFormatError("feed A: no data rows")
    log_event(logger, "ingest:feed_a", level=logging.DEBUG, rows=len(out))
    return out


def parse_feed_b(csv_text: str) -> list[FeedBRow]:
    """Parse payment-processor CSV text into :class:`FeedBRow` values."""

    headers, rows = _read_rows(csv_text, feed="feed B")
    cols = _resolve_columns(headers, FEED_B_COLUMNS, FEED_B_REQUIRED, feed="feed B")
    if not cols["reporting_category"] and not cols["status"]:
        raise FeedFormatError("feed B: missing required columns: reporting_category or Status")
    out = [
        FeedBRow(
            identity=_cell(row, cols["identity"]),
            gross=_cell(row, cols["gross"]),
            fee=_cell(row, cols["fee"]),
            status=_cell(row, cols["status"]),
            reporting_category=_cell(row, cols["reporting_category"]),
        )
        for row in rows
    ]
    if not out:
        raise FeedFormatError("feed B: no data rows")
    log_event(logger, "ingest:feed_b", level=logging.DEBUG, rows=len(out))
    return out


def _read_text(path: str | PathLike[str], *, feed: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as exc:
        raise FeedFormatError(
            f"{feed}: {Path(path).name} is not UTF-8 encoded; re-export it as UTF-8"
        ) from exc


def load_feed_a_csv(path: str | PathLike[str]) -> list[FeedARow]:
    return parse_feed_a(_read_text(path, feed="feed A"))


def load_feed_b_csv(path: str | PathLike[str]) -> list[FeedBRow]:
    return parse_feed_b(_read_text(path, feed="feed B"))


__all__ = [
    "FEED_A_COLUMNS",
    "FEED_B_COLUMNS",
    "load_feed_a_csv",
    "load_feed_b_csv",
    "parse_feed_a",
    "parse_feed_b",
]
