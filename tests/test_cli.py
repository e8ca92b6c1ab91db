# ruff: noqa: E402, I001
import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from revenue_recon.cli import app
from revenue_recon.storage import SqlReconStorage

from tests.helpers.db import bootstrap_sqlite_db

runner = CliRunner()
# Wide terminal so Rich tables never truncate cell values.
ENV = {"COLUMNS": "240"}


@pytest.fixture
def db_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    # Keep the root callback from loading a developer's .env
    monkeypatch.chdir(tmp_path)
    return bootstrap_sqlite_db(tmp_path / "cli.sqlite3")


def _invoke(*args: str):
    return runner.invoke(app, list(args), env=ENV)


def _reconcile(data_dir: Path, db_url: str, *extra: str):
    return _invoke(
        "reconcile",
        "--feed-a",
        str(data_dir / "feed_a_may.csv"),
        "--feed-b",
        str(data_dir / "feed_b_may.csv"),
        "--period",
        "2024-05",
        "--database-url",
        db_url,
        *extra,
    )


def test_reconcile_suspends_then_resume_completes(data_dir: Path, db_url: str):
    result = _reconcile(data_dir, db_url)
    assert result.exit_code == 0, result.output
    assert "Awaiting review" in result.output
    assert "10 Class Pack" in result.output

    pending = SqlReconStorage(db_url).list_pending_reconciliations()
    assert len(pending) == 1
    pending_id = pending[0].id
    assert pending_id in result.output

    listed = _invoke("pending", "--database-url", db_url)
    assert listed.exit_code == 0
    assert pending_id in listed.output

    resumed = _invoke("resume", pending_id, "--database-url", db_url)
    assert resumed.exit_code == 0, resumed.output
    assert "small_diff" in resumed.output
    assert "Rittenkaarten" in resumed.output

    # A repeated resume returns the same session.
    again = _invoke("resume", pending_id, "--database-url", db_url)
    assert again.exit_code == 0, again.output
    sessions = SqlReconStorage(db_url).list_sessions()
    assert len(sessions) == 1

    shown = _invoke("show", sessions[0].id, "--database-url", db_url)
    assert shown.exit_code == 0
    assert "alice@example.com" in shown.output

    listed_sessions = _invoke("sessions", "--database-url", db_url)
    assert sessions[0].id in listed_sessions.output

    archived = _invoke("archive", sessions[0].id, "--database-url", db_url)
    assert archived.exit_code == 0
    assert SqlReconStorage(db_url).get_session(sessions[0].id).status == "archived"


def test_skip_review_prints_result(data_dir: Path, db_url: str):
    result = _reconcile(data_dir, db_url, "--skip-review")
    assert result.exit_code == 0, result.output
    assert "Customer comparisons" in result.output
    assert "only_in_B" in result.output
    assert SqlReconStorage(db_url).list_pending_reconciliations() == []


def test_discard_and_unknown_ids_exit_not_found(data_dir: Path, db_url: str):
    _reconcile(data_dir, db_url)
    pending_id = SqlReconStorage(db_url).list_pending_reconciliations()[0].id

    assert _invoke("discard", pending_id, "--database-url", db_url).exit_code == 0
    assert _invoke("discard", pending_id, "--database-url", db_url).exit_code == 3
    assert _invoke("resume", pending_id, "--database-url", db_url).exit_code == 3
    assert _invoke("show", "missing", "--database-url", db_url).exit_code == 3
    assert _invoke("archive", "missing", "--database-url", db_url).exit_code == 3
    assert _invoke("delete-product", "999", "--database-url", db_url).exit_code == 3


def test_bad_feed_exits_with_input_error(tmp_path: Path, data_dir: Path, db_url: str):
    bad = tmp_path / "bad.csv"
    bad.write_text("Date,Item\n2024-05-01,Latte\n", encoding="utf-8")
    result = _invoke(
        "reconcile",
        "--feed-a",
        str(bad),
        "--feed-b",
        str(data_dir / "feed_b_may.csv"),
        "--period",
        "2024-05",
        "--database-url",
        db_url,
    )
    assert result.exit_code == 2
    assert "missing required columns" in result.output

    missing = _invoke(
        "reconcile",
        "--feed-a",
        str(tmp_path / "nope.csv"),
        "--feed-b",
        str(data_dir / "feed_b_may.csv"),
        "--period",
        "2024-05",
        "--database-url",
        db_url,
    )
    assert missing.exit_code == 2


def test_rules_load_show_reset(tmp_path: Path, data_dir: Path, db_url: str):
    loaded = _invoke("rules", "load", str(data_dir / "ruleset_small.json"), "--database-url", db_url)
    assert loaded.exit_code == 0, loaded.output
    assert "Loaded 2 rule(s)" in loaded.output

    shown = _invoke("rules", "show", "--json", "--database-url", db_url)
    assert shown.exit_code == 0
    assert [r["name"] for r in json.loads(shown.output)] == ["Koffie", "Overig"]

    table = _invoke("rules", "show", "--database-url", db_url)
    assert "Koffie" in table.output

    bad = tmp_path / "bad.json"
    bad.write_text('[{"name": "Only", "priority": 1, "tax_rate": "0.09", "ledger_code": "1", '
                   '"keywords": ["x"]}]', encoding="utf-8")
    assert _invoke("rules", "load", str(bad), "--database-url", db_url).exit_code == 2

    assert _invoke("rules", "reset", "--database-url", db_url).exit_code == 0
    defaults = _invoke("rules", "show", "--json", "--database-url", db_url)
    assert "Opleidingen" in defaults.output


def test_products_listing_and_delete(data_dir: Path, db_url: str):
    _reconcile(data_dir, db_url)
    storage = SqlReconStorage(db_url)
    pending_id = storage.list_pending_reconciliations()[0].id

    from revenue_recon.api import submit_review
    from revenue_recon.review import decision_from_candidate

    pending = storage.get_pending_reconciliation(pending_id)
    submit_review(storage, pending_id, [decision_from_candidate(c) for c in pending.candidates])

    listed = _invoke("products", "--database-url", db_url)
    assert listed.exit_code == 0
    assert "Workshop Breathwork" in listed.output

    product = storage.get_product("Cappuccino")
    assert _invoke("delete-product", str(product.id), "--database-url", db_url).exit_code == 0
    assert storage.get_product("Cappuccino") is None


def test_storage_failure_exits_tempfail(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)
    url = f"sqlite+pysqlite:///{tmp_path / 'no_schema.sqlite3'}"
    result = _invoke("sessions", "--database-url", url)
    assert result.exit_code == 75


def test_missing_database_url_exits_with_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)
    result = _invoke("sessions")
    assert result.exit_code == 1
    assert "DATABASE_URL" in result.output
