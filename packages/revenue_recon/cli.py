# ruff: noqa: I001
"""CLI for the ``revenue_recon`` package.

A Typer console interface over :mod:`revenue_recon.api`. The root callback
loads a local ``.env`` (without overriding the environment) and configures
logging once. Every command talks to the durable SQL store selected by
``--database-url`` or ``DATABASE_URL``.

Exit codes: ``2`` input/format problems (fix the export or ruleset), ``3``
unknown pending run, session or product, ``75`` temporary storage failure
(retry), ``1`` anything else.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from typer.models import OptionInfo

from .errors import FeedFormatError, PendingReconciliationNotFound, RuleSetError, StorageError
from .logging_setup import configure_logging
from .models import ReconciliationResult

EXIT_INPUT = 2
EXIT_NOT_FOUND = 3
EXIT_TEMPFAIL = 75


def _console() -> Console:
    # Built per command so width follows the invoking environment.
    return Console()


def _fail(message: str, code: int) -> typer.Exit:
    Console(stderr=True).print(f"[red]Error:[/red] {escape(message)}")
    return typer.Exit(code)


@contextmanager
def _cli_errors() -> Iterator[None]:
    try:
        yield
    except typer.Exit:
        raise
    except (FeedFormatError, RuleSetError, ValidationError) as e:
        raise _fail(str(e), EXIT_INPUT) from e
    except PendingReconciliationNotFound as e:
        raise _fail(str(e), EXIT_NOT_FOUND) from e
    except StorageError as e:
        raise _fail(f"{e} (temporary, retry later)", EXIT_TEMPFAIL) from e
    except FileNotFoundError as e:
        raise _fail(f"File not found: {e.filename}", EXIT_INPUT) from e
    except RuntimeError as e:
        raise _fail(str(e), 1) from e


def _storage(database_url: str | None):
    from .storage import SqlReconStorage

    return SqlReconStorage(database_url)


def _money(value) -> str:
    return f"{value:,.2f}"


# ---- Rendering ---------------------------------------------------------------


def _print_result(console: Console, result: ReconciliationResult) -> None:
    s = result.session
    t = s.totals
    console.print(f"[bold]Session[/bold] {s.id}  period={s.period}  status={s.status}")
    console.print(
        f"Feed A (reconcilable): {_money(t.feed_a_total)}  "
        f"Feed B gross: {_money(t.feed_b_gross)}  fees: {_money(t.feed_b_fees)}  "
        f"net: {_money(t.feed_b_net)}  other channels: {_money(t.non_reconcilable_total)}"
    )
    console.print(f"Matched: {t.matched_count}  Unmatched: {t.unmatched_count}")

    comparisons = Table(title="Customer comparisons")
    for col in ("Identity", "Feed A", "Feed B gross", "Fee", "Net", "Difference", "Status"):
        comparisons.add_column(col)
    for c in result.comparisons:
        comparisons.add_row(
            c.identity,
            _money(c.feed_a_total),
            _money(c.feed_b_gross),
            _money(c.feed_b_fee),
            _money(c.feed_b_net),
            _money(c.difference),
            c.match_status,
        )
    console.print(comparisons)

    categories = Table(title="Categories")
    for col in ("Category", "Group", "Count", "Total", "Tax", "Rate", "Ledger", "%"):
        categories.add_column(col)
    for cat in result.category_summaries:
        categories.add_row(
            cat.category,
            cat.group_tag,
            str(cat.transaction_count),
            _money(cat.total_amount),
            _money(cat.total_tax),
            str(cat.tax_rate),
            cat.ledger_code,
            str(cat.percentage),
        )
    console.print(categories)

    channels = Table(title="Payment channels")
    for col in ("Channel", "Count", "Total", "%", "Via feed B"):
        channels.add_column(col)
    for ch in result.channel_summaries:
        channels.add_row(
            ch.channel,
            str(ch.transaction_count),
            _money(ch.total_amount),
            str(ch.percentage),
            "yes" if ch.settles_via_feed_b else "no",
        )
    console.print(channels)


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Reconcile booking-system and payment-processor exports and categorize "
        "revenue. Loads DATABASE_URL from a local .env before running."
    ),
)
rules_app = typer.Typer(no_args_is_help=True, help="Show, load or reset the category ruleset.")
app.add_typer(rules_app, name="rules")

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
FEED_A_OPTION: OptionInfo = typer.Option(
    ..., "--feed-a", help="Booking-system CSV export", dir_okay=False, exists=False
)
FEED_B_OPTION: OptionInfo = typer.Option(
    ..., "--feed-b", help="Payment-processor CSV export", dir_okay=False, exists=False
)


@app.command("reconcile")
def reconcile_cmd(
    feed_a: Annotated[Path, FEED_A_OPTION],
    feed_b: Annotated[Path, FEED_B_OPTION],
    period: Annotated[str, typer.Option("--period", help="Period label, e.g. 2024-05")],
    skip_review: Annotated[
        bool, typer.Option("--skip-review", help="Classify new items by rules only.")
    ] = False,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Reconcile two exports; suspends for review when new items appear."""

    from .api import reconcile_csv_files
    from .settings import EngineSettings

    console = _console()
    with _cli_errors():
        outcome = reconcile_csv_files(
            _storage(database_url),
            feed_a,
            feed_b,
            period=period,
            settings=EngineSettings.from_env(),
            skip_review=skip_review,
        )

    if outcome.pending is not None:
        pending = outcome.pending
        table = Table(title=f"New items ({pending.new_item_count})")
        for col in ("Description", "Count", "Total", "Suggested category"):
            table.add_column(col)
        for cand in pending.candidates:
            table.add_row(
                cand.description,
                str(cand.transaction_count),
                _money(cand.total_amount),
                cand.suggestion.category,
            )
        console.print(table)
        console.print(f"Awaiting review. Pending id: {pending.id}")
        console.print(f"Next: revenue-recon review {pending.id}")
        return

    assert outcome.result is not None
    _print_result(console, outcome.result)


@app.command("review")
def review_cmd(
    pending_id: Annotated[str, typer.Argument(help="Pending reconciliation id")],
    resume: Annotated[
        bool, typer.Option("--resume/--no-resume", help="Finish the run after review.")
    ] = True,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Classify a pending run's new items interactively."""

    from .api import effective_ruleset, get_pending, resume_reconciliation, submit_review
    from .review import collect_review_decisions
    from .settings import EngineSettings

    console = _console()
    storage = _storage(database_url)
    with _cli_errors():
        pending = get_pending(storage, pending_id)
        decisions = collect_review_decisions(
            pending.candidates, effective_ruleset(storage), echo=console.print
        )
        if resume:
            result = resume_reconciliation(
                storage, pending_id, decisions=decisions, settings=EngineSettings.from_env()
            )
        else:
            submit_review(storage, pending_id, decisions)
            result = None

    console.print(f"Saved {len(decisions)} product decision(s).")
    if result is not None:
        _print_result(console, result)


@app.command("resume")
def resume_cmd(
    pending_id: Annotated[str, typer.Argument(help="Pending reconciliation id")],
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Finish a pending run with the current Product Memory."""

    from .api import resume_reconciliation
    from .settings import EngineSettings

    with _cli_errors():
        result = resume_reconciliation(
            _storage(database_url), pending_id, settings=EngineSettings.from_env()
        )
    _print_result(_console(), result)


@app.command("discard")
def discard_cmd(
    pending_id: Annotated[str, typer.Argument(help="Pending reconciliation id")],
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Delete a pending run without creating a session."""

    from .api import discard_reconciliation

    with _cli_errors():
        discard_reconciliation(_storage(database_url), pending_id)
    _console().print(f"Discarded {pending_id}")


@app.command("pending")
def pending_cmd(database_url: str | None = DATABASE_URL_OPTION) -> None:
    """List pending runs awaiting review."""

    with _cli_errors():
        records = _storage(database_url).list_pending_reconciliations()
    table = Table(title="Pending reconciliations")
    for col in ("Id", "Period", "Created", "New items"):
        table.add_column(col)
    for p in records:
        table.add_row(p.id, p.period, p.created_at.isoformat(timespec="seconds"), str(p.new_item_count))
    _console().print(table)


@app.command("sessions")
def sessions_cmd(database_url: str | None = DATABASE_URL_OPTION) -> None:
    """List reconciliation sessions, newest first."""

    with _cli_errors():
        sessions = _storage(database_url).list_sessions()
    table = Table(title="Sessions")
    for col in ("Id", "Period", "Created", "Status", "Matched", "Unmatched"):
        table.add_column(col)
    for s in sessions:
        table.add_row(
            s.id,
            s.period,
            s.created_at.isoformat(timespec="seconds"),
            s.status,
            str(s.totals.matched_count),
            str(s.totals.unmatched_count),
        )
    _console().print(table)


@app.command("show")
def show_cmd(
    session_id: Annotated[str, typer.Argument(help="Session id")],
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Show a session with all derived records."""

    from .api import load_result

    with _cli_errors():
        result = load_result(_storage(database_url), session_id)
    if result is None:
        raise _fail(f"session {session_id!r} not found", EXIT_NOT_FOUND)
    _print_result(_console(), result)


@app.command("archive")
def archive_cmd(
    session_id: Annotated[str, typer.Argument(help="Session id")],
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Mark a session as archived."""

    from .api import archive_session

    with _cli_errors():
        try:
            archive_session(_storage(database_url), session_id)
        except KeyError:
            raise _fail(f"session {session_id!r} not found", EXIT_NOT_FOUND) from None
    _console().print(f"Archived {session_id}")


@app.command("products")
def products_cmd(database_url: str | None = DATABASE_URL_OPTION) -> None:
    """List Product Memory records."""

    from .api import list_products

    with _cli_errors():
        products = list_products(_storage(database_url))
    table = Table(title="Products")
    for col in ("Id", "Description", "Category", "Tax", "Ledger", "Handling", "Approved", "Count", "Last seen"):
        table.add_column(col)
    for p in products:
        special = p.special_handling
        handling = ""
        if special is not None:
            handling = special.kind + (f" x{special.periods}" if special.periods else "")
        table.add_row(
            str(p.id),
            p.description,
            p.category,
            str(p.tax_rate),
            p.ledger_code,
            handling,
            "yes" if p.approved else "no",
            str(p.transaction_count),
            p.last_seen.isoformat() if p.last_seen else "",
        )
    _console().print(table)


@app.command("delete-product")
def delete_product_cmd(
    product_id: Annotated[int, typer.Argument(help="Product id")],
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Delete one Product Memory record."""

    from .api import delete_product

    with _cli_errors():
        deleted = delete_product(_storage(database_url), product_id)
    if not deleted:
        raise _fail(f"product {product_id} not found", EXIT_NOT_FOUND)
    _console().print(f"Deleted product {product_id}")


@rules_app.command("show")
def rules_show_cmd(
    as_json: Annotated[bool, typer.Option("--json", help="Print as a JSON document.")] = False,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Show the effective ruleset (stored overrides or defaults)."""

    from .api import effective_ruleset, ruleset_to_json

    with _cli_errors():
        rules = effective_ruleset(_storage(database_url))
    if as_json:
        typer.echo(ruleset_to_json(rules))
        return
    table = Table(title="Category rules")
    for col in ("Pri", "Name", "Category", "Tax", "Ledger", "Group", "Handling", "Keywords", "Unless"):
        table.add_column(col)
    for r in rules:
        special = r.special_handling
        table.add_row(
            str(r.priority),
            r.name,
            r.reported_category,
            str(r.tax_rate),
            r.ledger_code,
            r.group_tag,
            f"{special.kind} x{special.periods}" if special else "",
            f"pattern {r.pattern}" if r.pattern else ", ".join(r.keywords),
            ", ".join(r.exclusions),
        )
    _console().print(table)


@rules_app.command("load")
def rules_load_cmd(
    path: Annotated[Path, typer.Argument(help="JSON ruleset file", dir_okay=False)],
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Replace the ruleset with a validated JSON document."""

    from .api import load_ruleset_file

    with _cli_errors():
        rules = load_ruleset_file(_storage(database_url), path)
    _console().print(f"Loaded {len(rules)} rule(s)")


@rules_app.command("reset")
def rules_reset_cmd(database_url: str | None = DATABASE_URL_OPTION) -> None:
    """Drop stored overrides and return to the default ruleset."""

    from .api import reset_ruleset

    with _cli_errors():
        reset_ruleset(_storage(database_url))
    _console().print("Ruleset reset to defaults")


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


def main() -> None:  # pragma: no cover - console script entry point
    app()


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m revenue_recon.cli`
    main()
