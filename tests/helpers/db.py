"""DB helpers for tests: bootstrap a temporary SQLite DB with the recon schema."""

from __future__ import annotations

import os
from pathlib import Path

from recon_db import Base
from recon_db.client import get_engine, session_scope
from sqlalchemy import event
from sqlalchemy import text as sql_text


def bootstrap_sqlite_db(db_file: Path, *, set_default_env: bool = False) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    # Ensure parent exists before engine creation attempts any writes
    db_file.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(database_url=url)

    # Enforce FKs so ON DELETE CASCADE behaves like Postgres
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _):  # pragma: no cover - tiny bridge
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    _assert_schema_in_sync(url)

    # Make it the default for any code paths that read from the environment
    if set_default_env:
        os.environ.setdefault("DATABASE_URL", url)
    return url


def sqlite_columns(database_url: str, table: str) -> set[str]:
    with session_scope(database_url=database_url) as session:
        rows = session.execute(sql_text(f"PRAGMA table_info('{table}')")).fetchall()
    return {row[1] for row in rows}  # (cid, name, type, notnull, dflt_value, pk)


def _assert_schema_in_sync(database_url: str) -> None:
    """Quick sanity check: ORM column sets match the created SQLite tables."""

    for table in Base.metadata.sorted_tables:
        expected = {c.name for c in table.columns}
        got = sqlite_columns(database_url, table.name)
        missing = expected - got
        extra = got - expected
        assert not missing and not extra, (
            f"{table.name} schema drift: missing={missing or '∅'}, extra={extra or '∅'}"
        )
