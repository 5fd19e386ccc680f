"""Shared fixtures: fake clock, sample records, origin client."""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from typing import Any

import httpx
import pytest

from catalogcache.origin import OriginClient

ORIGIN = "http://origin.test/api"


class FakeClock:
    """Injectable epoch-millis clock for time travel in tests."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, delta: timedelta | int) -> None:
        if isinstance(delta, timedelta):
            delta = int(delta.total_seconds() * 1000)
        self.now += delta


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def origin_url() -> str:
    return ORIGIN


@pytest.fixture()
def make_product() -> Callable[..., dict[str, Any]]:
    def _make(
        id: str = "1",
        name: str = "Pen",
        price: float = 1.5,
        featured: bool = True,
        order: int = 1,
        category: str = "Escritorio",
    ) -> dict[str, Any]:
        return {
            "id": id,
            "name": name,
            "description": f"{name} description",
            "price": price,
            "image": f"https://cdn.test/{id}.jpg",
            "category": category,
            "featured": featured,
            "order": order,
        }

    return _make


@pytest.fixture()
def make_pdf() -> Callable[..., dict[str, Any]]:
    def _make(id: str = "p1", upload_date: str = "2024-03-14T10:00:00Z") -> dict[str, Any]:
        return {
            "id": id,
            "name": f"Folheto {id}",
            "url": f"https://cdn.test/weekly-pdfs/{id}.pdf",
            "uploadDate": upload_date,
            "week": "14/3",
            "year": 2024,
            "file_path": f"weekly-pdfs/{id}.pdf",
        }

    return _make


@pytest.fixture()
async def origin():
    async with httpx.AsyncClient(base_url=ORIGIN) as client:
        yield OriginClient(client)
