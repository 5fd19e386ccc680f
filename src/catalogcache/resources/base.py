"""Generic cached resource controller.

A controller owns the client-side view of one resource collection. State
machine::

    IDLE --load--> LOADING --ok--> READY
                           \\--fail--> READY (fallback cache, error set)
                                  \\-> ERROR (nothing to fall back to)

    READY --revalidate--> verifying --> READY
    READY --mutate-----> saving ------> READY (error set on failure)

``verifying`` and ``saving`` are flags orthogonal to ``state``. Origin
failures never propagate out of ``load``/``refresh``/``revalidate`` or the
mutation helpers; they end up in ``error``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from datetime import timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, ClassVar, Generic, TypeVar

import structlog
from pydantic import TypeAdapter, ValidationError
from pydantic_core import to_jsonable_python

from catalogcache.errors import CatalogError, ErrorCode
from catalogcache.optimistic import apply_optimistically
from catalogcache.policy import BACKGROUND_CHECK_INTERVAL
from catalogcache.store import compute_checksum

if TYPE_CHECKING:
    from catalogcache.events import UpdateChannel
    from catalogcache.models.cache import CachedRead
    from catalogcache.origin import OriginClient
    from catalogcache.policy import FreshnessPolicy
    from catalogcache.store import CacheStore

log = structlog.get_logger()

T = TypeVar("T")


class ResourceState(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class ResourceController(Generic[T]):
    policy: ClassVar[FreshnessPolicy]
    resource: ClassVar[str]  # REST path segment, e.g. "products"
    item_type: ClassVar[type]

    def __init__(
        self,
        store: CacheStore,
        origin: OriginClient,
        channel: UpdateChannel[T],
        *,
        check_interval: timedelta = BACKGROUND_CHECK_INTERVAL,
    ) -> None:
        self._store = store
        self._origin = origin
        self._channel = channel
        self._check_interval_ms = int(check_interval.total_seconds() * 1000)
        self._adapter: TypeAdapter[list[T]] = TypeAdapter(list[self.item_type])

        self.state = ResourceState.IDLE
        self.data: list[T] = []
        self.error: str | None = None
        self.last_update: int | None = None
        self.verifying = False
        self.saving = False

        self._in_flight = False
        self._failed_loads = 0
        self._unsubscribe: Callable[[], None] | None = None
        self._background: set[asyncio.Task[bool]] = set()

    @property
    def loading(self) -> bool:
        return self._in_flight

    @property
    def failed_loads(self) -> int:
        """Consecutive failed origin loads; reset on the next success."""
        return self._failed_loads

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def mount(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._channel.subscribe(self._on_broadcast, owner=self)
        if self.state is ResourceState.IDLE:
            await self.load()

    def unmount(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def wait_background(self) -> None:
        """Wait for scheduled background revalidations to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Serve from cache when valid, otherwise fetch from the origin.

        A call made while another load is in flight returns immediately.
        """
        if self._in_flight:
            log.debug("resource_load_skipped", resource=self.resource, reason="in_flight")
            return
        self._in_flight = True
        if self.state is not ResourceState.READY:
            self.state = ResourceState.LOADING
        try:
            fallback = await self._store.peek(self.policy, self._adapter)
            cached = await self._store.get(self.policy, self._adapter)
            if cached is not None:
                self._set_ready(cached.payload)
                log.info(
                    "resource_served_from_cache",
                    resource=self.resource,
                    items=len(self.data),
                    needs_check=cached.needs_check,
                )
                if cached.needs_check:
                    self._schedule_revalidation()
                return

            try:
                await self._fetch_and_store()
            except CatalogError as exc:
                self._degrade(exc, fallback)
        finally:
            self._in_flight = False

    async def refresh(self, force: bool = False) -> None:
        """Manual reload. ``force`` drops the cache entry first."""
        if self._in_flight:
            log.debug("resource_refresh_skipped", resource=self.resource, reason="in_flight")
            return
        if force:
            await self._store.remove(self.policy.key)
        await self.load()

    async def _fetch_and_store(self, previous_checksum: str | None = None) -> bool:
        """Reload from the origin and write through.

        Returns whether the collection differs from ``previous_checksum``;
        subscribers are only notified when it does.
        """
        raw = await self._origin.list_items(self.resource)
        try:
            items = self._adapter.validate_python(raw)
        except ValidationError as exc:
            raise CatalogError(
                ErrorCode.INVALID_PAYLOAD,
                f"Origin returned malformed {self.resource}: {exc.error_count()} error(s)",
                recoverable=True,
            ) from exc
        await self._store.set(self.policy, items)
        self._set_ready(items)
        self._failed_loads = 0
        checksum = compute_checksum(to_jsonable_python(items, by_alias=True))
        if checksum == previous_checksum:
            log.info("resource_reload_identical", resource=self.resource, checksum=checksum)
            return False
        self._publish()
        log.info("resource_loaded_from_origin", resource=self.resource, items=len(items))
        return True

    def _degrade(self, exc: CatalogError, fallback: CachedRead[list[T]] | None) -> None:
        self._failed_loads += 1
        if fallback is not None:
            self.data = list(fallback.payload)
            self.state = ResourceState.READY
            self.error = f"Sync error: {exc.message}"
            log.warning("resource_fallback_cache", resource=self.resource, items=len(self.data))
        elif self.state is ResourceState.READY:
            self.error = f"Sync error: {exc.message}"
            log.warning("resource_kept_stale_data", resource=self.resource, items=len(self.data))
        else:
            self.data = []
            self.state = ResourceState.ERROR
            self.error = exc.message
            log.error("resource_load_failed", resource=self.resource, code=exc.code)

    def _set_ready(self, items: Sequence[T]) -> None:
        self.data = list(items)
        self.state = ResourceState.READY
        self.error = None

    # ------------------------------------------------------------------
    # Background revalidation
    # ------------------------------------------------------------------

    def _schedule_revalidation(self) -> None:
        task = asyncio.create_task(self.revalidate())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def revalidate(self) -> bool:
        """Probe the origin's last-modified time; reload if it changed.

        Throttled to one probe per check interval using a persisted
        timestamp, so the cadence survives restarts. Returns whether the
        reloaded data differs from the cached copy.
        """
        if self.verifying or self._in_flight:
            return False
        now = self._store.now()
        last_check = await self._store.last_check(self.policy.key)
        if last_check is not None and now - last_check < self._check_interval_ms:
            log.debug("revalidation_throttled", resource=self.resource, since_ms=now - last_check)
            return False

        self.verifying = True
        try:
            await self._store.record_check(self.policy.key, now)
            last_modified = await self._origin.last_modified(self.resource)
            envelope = await self._store.read_envelope(self.policy.key)
            if envelope is not None and (
                last_modified is None or last_modified <= envelope.written_at
            ):
                await self._store.mark_verified(self.policy.key)
                log.info("revalidation_unchanged", resource=self.resource)
                return False

            log.info("revalidation_changed", resource=self.resource, last_modified=last_modified)
            await self._store.remove(self.policy.key)
            self._in_flight = True
            try:
                return await self._fetch_and_store(
                    previous_checksum=envelope.checksum if envelope is not None else None
                )
            finally:
                self._in_flight = False
        except CatalogError as exc:
            log.warning("revalidation_failed", resource=self.resource, error=exc.message)
            return False
        finally:
            self.verifying = False

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def _mutate(
        self,
        label: str,
        change: Callable[[list[T]], list[T]],
        write: Callable[[list[T]], Awaitable[None]],
    ) -> bool:
        """Apply ``change`` locally, then persist it with ``write``.

        Preconditions must be checked by the caller before this point. On
        failure the authoritative collection is reloaded from the origin and
        ``error`` explains that the edit did not persist.
        """
        pending: list[T] = []

        def apply() -> list[T]:
            nonlocal pending
            snapshot = list(self.data)
            pending = change(list(self.data))
            self.data = pending
            self.saving = True
            self.error = None
            return snapshot

        async def commit() -> None:
            await write(pending)

        try:
            await apply_optimistically(
                apply=apply, commit=commit, rollback=self._rollback, label=label
            )
        except CatalogError as exc:
            self.error = f"Could not save changes: {exc.message}"
            return False
        finally:
            self.saving = False

        await self._commit_local(pending)
        return True

    async def _rollback(self, snapshot: list[T], exc: CatalogError) -> None:
        try:
            await self._fetch_and_store()
        except CatalogError:
            log.warning("rollback_reload_failed", resource=self.resource, exc_info=True)
            self.data = snapshot

    async def _commit_local(self, items: list[T]) -> None:
        """Write-through after a confirmed remote write."""
        self.data = list(items)
        self.state = ResourceState.READY
        await self._store.set(self.policy, self.data)
        self._touch()
        self._publish()

    # ------------------------------------------------------------------
    # Cross-instance sync
    # ------------------------------------------------------------------

    def _publish(self) -> None:
        self._channel.publish(self.data, source=self)

    def _on_broadcast(self, items: Sequence[T]) -> None:
        self.data = list(items)
        self.state = ResourceState.READY
        self.error = None
        self._touch()

    def _touch(self) -> None:
        self.last_update = self._store.now()
