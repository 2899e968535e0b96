"""Pytest configuration for test isolation.

Every test gets a clean environment: ``DATABASE_URL`` and the tuning env vars
are unset, the shared SQLAlchemy engine is disposed afterwards, and the CLI's
``configure_logging()`` is made a no-op so its stream handler never binds to a
``CliRunner`` stream that is closed once the invocation ends.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from db.client import dispose_engine

from tests.helpers.db import bootstrap_sqlite_db


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in ("DATABASE_URL", "SA_PDF_MAX_WORKERS", "STATEMENT_ANALYSIS_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("statement_analysis.logging_setup._CONFIGURED", True)
    yield
    dispose_engine()


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    """A fresh SQLite ledger database for one test."""

    return bootstrap_sqlite_db(tmp_path / "ledger.sqlite3")
