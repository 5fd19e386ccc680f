"""Unit-specific fixtures (no I/O beyond in-memory SQLite and mocked HTTP)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import pytest

from catalogcache.store import CacheStore

if TYPE_CHECKING:
    from tests.conftest import FakeClock


@pytest.fixture()
async def store(clock: FakeClock):
    """In-memory SQLite cache store driven by the fake clock."""
    async with aiosqlite.connect(":memory:") as db:
        s = CacheStore(db, namespace="test", clock=clock)
        await s.init_db()
        yield s
