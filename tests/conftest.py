"""Pytest configuration for test isolation.

Every test that touches storage gets its own file-backed SQLite database.
Engines are cached per URL inside ``db.client``, so they are disposed after
each test to release the file handle. Environment variables the CLI reads
are cleared so a developer's local ``.env`` cannot leak into assertions.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from freight_recon.models import Actor
from freight_recon.store import SqlShipmentStore

from tests.helpers.db import bootstrap_sqlite_db, dispose_test_engines


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("DATABASE_URL", "FREIGHT_RECON_ACTOR", "FREIGHT_RECON_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def database_url(tmp_path: Path) -> Iterator[str]:
    url = bootstrap_sqlite_db(tmp_path / "recon.sqlite3")
    yield url
    dispose_test_engines()


@pytest.fixture
def store(database_url: str) -> SqlShipmentStore:
    return SqlShipmentStore(database_url=database_url)


@pytest.fixture
def actor() -> Actor:
    return Actor(email="ap.clerk@example.com")
