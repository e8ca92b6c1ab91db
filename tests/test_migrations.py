"""Alembic migrations build the same schema as the ORM models."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from recon_db import Base
from sqlalchemy import create_engine, inspect

ALEMBIC_DIR = Path(__file__).resolve().parents[1] / "libs" / "db" / "alembic"


def _config(url: str) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(ALEMBIC_DIR))
    cfg.set_main_option("sqlalchemy.url", url)
    return cfg


def test_upgrade_matches_orm_and_downgrade_drops(tmp_path: Path):
    url = f"sqlite+pysqlite:///{tmp_path / 'migrated.sqlite3'}"
    cfg = _config(url)

    command.upgrade(cfg, "head")

    engine = create_engine(url)
    try:
        inspector = inspect(engine)
        tables = set(inspector.get_table_names())
        for table in Base.metadata.sorted_tables:
            assert table.name in tables
            got = {c["name"] for c in inspector.get_columns(table.name)}
            expected = {c.name for c in table.columns}
            assert got == expected, table.name
    finally:
        engine.dispose()

    command.downgrade(cfg, "base")

    engine = create_engine(url)
    try:
        remaining = set(inspect(engine).get_table_names()) - {"alembic_version"}
        assert not remaining
    finally:
        engine.dispose()
