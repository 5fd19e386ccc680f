"""Composition root.

``AppState`` holds the long-lived collaborators (store, origin client,
per-kind update channels). Controllers are cheap consumer objects created on
demand; every controller of a kind shares that kind's channel.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from catalogcache.events import UpdateChannel
from catalogcache.logging_config import configure_logging
from catalogcache.origin import OriginClient, build_http_client
from catalogcache.resources import (
    AuthController,
    ProductImagesController,
    ProductsController,
    WeeklyPdfsController,
)
from catalogcache.store import CacheStore

if TYPE_CHECKING:
    import httpx

    from catalogcache.config import Settings
    from catalogcache.models.catalog import Product, ProductImage, WeeklyPdf

log = structlog.get_logger()


@dataclass
class AppState:
    settings: Settings
    store: CacheStore
    origin: OriginClient
    http_client: httpx.AsyncClient | None = None
    products_channel: UpdateChannel[Product] = field(
        default_factory=lambda: UpdateChannel("products")
    )
    weekly_pdfs_channel: UpdateChannel[WeeklyPdf] = field(
        default_factory=lambda: UpdateChannel("weekly_pdfs")
    )
    images_channel: UpdateChannel[ProductImage] = field(
        default_factory=lambda: UpdateChannel("product_images")
    )

    def products(self) -> ProductsController:
        return ProductsController(
            self.store,
            self.origin,
            self.products_channel,
            check_interval=self.settings.cache.background_check_interval,
        )

    def weekly_pdfs(self) -> WeeklyPdfsController:
        return WeeklyPdfsController(
            self.store,
            self.origin,
            self.weekly_pdfs_channel,
            check_interval=self.settings.cache.background_check_interval,
        )

    def product_images(self) -> ProductImagesController:
        return ProductImagesController(
            self.store,
            self.origin,
            self.images_channel,
            check_interval=self.settings.cache.background_check_interval,
        )

    def auth(self) -> AuthController:
        return AuthController(self.origin, max_check_attempts=self.settings.auth.max_check_attempts)


@asynccontextmanager
async def open_app(settings: Settings, *, setup_logging: bool = False) -> AsyncIterator[AppState]:
    """Open the cache database and origin client; close both on exit."""
    if setup_logging:
        configure_logging(settings.logging)

    db_path = settings.cache.db_path
    if db_path != ":memory:":
        db_path = str(Path(db_path).expanduser())
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async with aiosqlite.connect(db_path) as db:
        store = CacheStore(
            db,
            namespace=settings.cache.namespace,
            max_entry_bytes=settings.cache.max_entry_bytes,
            gc_max_age=settings.cache.gc_max_age,
        )
        await store.init_db()
        async with build_http_client(settings.origin) as client:
            log.info("app_started", db_path=db_path, origin=settings.origin.base_url)
            yield AppState(
                settings=settings,
                store=store,
                origin=OriginClient(client),
                http_client=client,
            )
    log.info("app_stopped")
