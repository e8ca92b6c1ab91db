"""Logging for ``revenue_recon``.

Log lines share one shape, ``<operation>:<event> key=value ...``, so a run
can be followed with grep (``reconcile:awaiting_review pending_id=...``).
Library modules obtain loggers through :func:`get_logger` and emit through
:func:`log_event`; only entrypoints call :func:`configure_logging`.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO, Any

PACKAGE_LOGGER = "revenue_recon"
LEVEL_ENV_VAR = "RECON_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Handler installed by configure_logging; replaced on reconfiguration.
_handler: logging.Handler | None = None


def resolve_level(level: int | str | None = None) -> int:
    """Level from ``level`` or ``RECON_LOG_LEVEL``; unknown names mean INFO."""

    if level is None:
        level = os.getenv(LEVEL_ENV_VAR) or logging.INFO
    if isinstance(level, int):
        return level
    text = level.strip().upper()
    if text.isdigit():
        return int(text)
    numeric = logging.getLevelName(text)
    return numeric if isinstance(numeric, int) else logging.INFO


def _format_value(value: Any) -> str:
    text = str(value)
    if not text or any(ch.isspace() for ch in text) or "=" in text:
        return repr(text)
    return text


def format_event(event: str, fields: dict[str, Any]) -> str:
    parts = [event]
    parts.extend(f"{key}={_format_value(value)}" for key, value in fields.items())
    return " ".join(parts)


def log_event(
    logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any
) -> None:
    """Emit ``event`` (``"<operation>:<event>"``) with ``key=value`` fields.

    Values containing whitespace or ``=`` are quoted. Formatting is skipped
    when the level is disabled.
    """

    if logger.isEnabledFor(level):
        logger.log(level, "%s", format_event(event, fields))


def configure_logging(
    level: int | str | None = None,
    *,
    stream: IO[str] | None = None,
    fmt: str = DEFAULT_FORMAT,
) -> logging.Handler:
    """Route package logs to ``stream`` (``sys.stderr`` at call time).

    Calling again replaces the handler from the previous call, so a
    long-lived host can re-point or re-level the package logger.
    """

    global _handler
    pkg = logging.getLogger(PACKAGE_LOGGER)
    for h in list(pkg.handlers):
        if h is _handler or isinstance(h, logging.NullHandler):
            pkg.removeHandler(h)

    resolved = resolve_level(level)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt))
    pkg.addHandler(handler)
    pkg.setLevel(resolved)
    pkg.propagate = False
    _handler = handler
    return handler


def reset_logging() -> None:
    """Remove the handler installed by :func:`configure_logging`.

    The package logger goes back to propagating to the root logger. Used by
    hosts (and test suites) that run several entrypoints in one process.
    """

    global _handler
    pkg = logging.getLogger(PACKAGE_LOGGER)
    if _handler is not None:
        pkg.removeHandler(_handler)
        _handler.close()
        _handler = None
    pkg.setLevel(logging.NOTSET)
    pkg.propagate = True


def get_logger(name: str) -> logging.Logger:
    pkg = logging.getLogger(PACKAGE_LOGGER)
    if not pkg.handlers:
        pkg.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = [
    "DEFAULT_FORMAT",
    "LEVEL_ENV_VAR",
    "configure_logging",
    "format_event",
    "get_logger",
    "log_event",
    "reset_logging",
    "resolve_level",
]
