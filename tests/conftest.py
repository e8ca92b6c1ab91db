"""Pytest configuration for test isolation.

Engines are cached per database URL in ``recon_db.client``; each test uses its
own SQLite file, so cached engines are disposed after every test to release
file handles. Engine settings read ``RECON_*`` variables and the storage
falls back to ``DATABASE_URL``, so those are cleared to keep a developer's
shell environment (or a local ``.env``) from leaking into assertions.

CLI tests run the real entrypoint, which points the package logger at the
``CliRunner``'s stderr; that stream is closed once the invocation returns, so
the handler is removed after every test.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from recon_db.client import dispose_engines
from revenue_recon.logging_setup import reset_logging

_ISOLATED_ENV_VARS = (
    "DATABASE_URL",
    "RECON_LOG_LEVEL",
    "RECON_RECONCILABLE_CHANNELS",
    "RECON_OPERATOR_IDENTITIES",
)

DATA_DIR = Path(__file__).resolve().parent / "data"


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ISOLATED_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    dispose_engines()


@pytest.fixture(autouse=True)
def _reset_package_logging() -> Iterator[None]:
    yield
    reset_logging()


@pytest.fixture
def data_dir() -> Path:
    return DATA_DIR
