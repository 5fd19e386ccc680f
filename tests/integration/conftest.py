"""Integration test fixtures.

Wires the real composition root against an on-disk SQLite file under
``tmp_path``; only HTTP is mocked (respx).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import structlog

from catalogcache.config import Settings
from catalogcache.state import open_app

if TYPE_CHECKING:
    from pathlib import Path

    from catalogcache.state import AppState

ORIGIN = "http://origin.test/api"


@pytest.fixture(autouse=True)
def _reset_structlog():
    """The CLI configures structlog against the captured stderr; undo it after each test."""
    yield
    structlog.reset_defaults()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        origin={"base_url": ORIGIN, "timeout_seconds": 2},
        cache={"db_path": str(tmp_path / "nested" / "cache.db"), "namespace": "it"},
        logging={"format": "text"},
    )


@pytest.fixture()
async def app_state(settings: Settings) -> AppState:
    async with open_app(settings) as state:
        yield state
