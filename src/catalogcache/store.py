"""SQLite-backed local freshness cache.

Each resource kind is stored as one JSON envelope under the key
``<namespace>_<resource-key>``. The store attaches no meaning to the payload
beyond optional validation against a pydantic ``TypeAdapter`` at read time.

All operations catch ``aiosqlite.Error`` internally and degrade gracefully:
read failures return ``None`` (treated as cache miss by callers), write
failures are logged, trigger one opportunistic GC sweep, and are otherwise
ignored. The cache is an optimization layer; the origin remains the source
of truth, so infrastructure errors never cross the CacheStore boundary.
Errors are logged with ``exc_info=True`` so they remain observable.
"""

from __future__ import annotations

import hashlib
import json
import time
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, TypeVar

import aiosqlite
import structlog
from pydantic import ValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from catalogcache.models.cache import CachedRead, CacheEnvelope, CacheItemStats, CacheStats
from catalogcache.policy import ALL_POLICIES, format_window, is_fresh, is_valid

if TYPE_CHECKING:
    from datetime import timedelta

    from pydantic import TypeAdapter

    from catalogcache.policy import FreshnessPolicy

log = structlog.get_logger()

T = TypeVar("T")
Clock = Callable[[], int]

_CREATE_ENTRIES_TABLE = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key    TEXT PRIMARY KEY,
    value  TEXT NOT NULL
)
"""

_CREATE_METADATA_TABLE = """
CREATE TABLE IF NOT EXISTS cache_metadata (
    key    TEXT PRIMARY KEY,
    value  INTEGER NOT NULL
)
"""


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def compute_checksum(payload: Any) -> str:
    """Short fingerprint of a JSON-compatible payload."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def _parse_envelope(raw: str) -> CacheEnvelope | None:
    try:
        return CacheEnvelope.model_validate_json(raw)
    except ValidationError:
        return None


class CacheStore:
    """Namespaced key/value store of cache envelopes."""

    def __init__(
        self,
        db: aiosqlite.Connection,
        *,
        namespace: str = "catalog",
        max_entry_bytes: int = 5 * 1024 * 1024,
        gc_max_age: timedelta | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self._db = db
        self._prefix = f"{namespace}_"
        self._max_entry_bytes = max_entry_bytes
        self._gc_max_age_ms = (
            int(gc_max_age.total_seconds() * 1000) if gc_max_age is not None else 30 * 86_400_000
        )
        self._clock = clock

    @property
    def namespace_prefix(self) -> str:
        return self._prefix

    def now(self) -> int:
        return self._clock()

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_ENTRIES_TABLE)
        await self._db.execute(_CREATE_METADATA_TABLE)
        await self._db.commit()

    def _storage_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def _fetch_value(self, storage_key: str) -> str | None:
        cursor = await self._db.execute(
            "SELECT value FROM cache_entries WHERE key = ?", (storage_key,)
        )
        row = await cursor.fetchone()
        return None if row is None else row[0]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(
        self, policy: FreshnessPolicy, adapter: TypeAdapter[T] | None = None
    ) -> CachedRead[T] | None:
        """Return the cached payload if the entry is valid, else ``None``.

        Expired, version-mismatched and corrupt entries are removed before
        returning ``None``, so a second call never sees them again.
        """
        storage_key = self._storage_key(policy.key)
        try:
            raw = await self._fetch_value(storage_key)
        except aiosqlite.Error:
            log.warning("cache_read_error", key=storage_key, exc_info=True)
            return None

        if raw is None:
            log.debug("cache_miss", key=storage_key)
            return None

        envelope = _parse_envelope(raw)
        if envelope is None:
            log.warning("cache_corrupt_entry", key=storage_key)
            await self.remove(policy.key)
            return None

        now = self._clock()
        if not is_valid(envelope, policy, now):
            log.info(
                "cache_expired",
                key=storage_key,
                age_ms=now - envelope.written_at,
                version=envelope.schema_version,
            )
            await self.remove(policy.key)
            return None

        payload = envelope.payload
        if adapter is not None:
            try:
                payload = adapter.validate_python(envelope.payload)
            except ValidationError:
                log.warning("cache_payload_invalid", key=storage_key, exc_info=True)
                await self.remove(policy.key)
                return None

        needs_check = not is_fresh(envelope, policy, now)
        log.debug(
            "cache_hit",
            key=storage_key,
            age_ms=now - envelope.written_at,
            needs_check=needs_check,
        )
        return CachedRead(payload=payload, needs_check=needs_check)

    async def peek(
        self, policy: FreshnessPolicy, adapter: TypeAdapter[T] | None = None
    ) -> CachedRead[T] | None:
        """Return the last-known payload regardless of age or version.

        Used as an emergency fallback when the origin is unreachable. Never
        evicts anything; an unparseable or invalid payload yields ``None``.
        """
        envelope = await self.read_envelope(policy.key)
        if envelope is None:
            return None
        payload = envelope.payload
        if adapter is not None:
            try:
                payload = adapter.validate_python(envelope.payload)
            except ValidationError:
                return None
        return CachedRead(payload=payload, needs_check=True)

    async def read_envelope(self, key: str) -> CacheEnvelope | None:
        storage_key = self._storage_key(key)
        try:
            raw = await self._fetch_value(storage_key)
        except aiosqlite.Error:
            log.warning("cache_read_error", key=storage_key, exc_info=True)
            return None
        if raw is None:
            return None
        return _parse_envelope(raw)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set(self, policy: FreshnessPolicy, payload: Any) -> bool:
        """Persist ``payload`` in a new envelope. Non-fatal on failure.

        Returns whether the entry was stored.
        """
        storage_key = self._storage_key(policy.key)
        try:
            data = to_jsonable_python(payload, by_alias=True)
            now = self._clock()
            envelope = CacheEnvelope(
                payload=data,
                written_at=now,
                last_verified_at=now,
                schema_version=policy.schema_version,
                checksum=compute_checksum(data),
            )
            value = envelope.model_dump_json(by_alias=True)
        except (PydanticSerializationError, TypeError, ValueError):
            log.warning("cache_serialize_error", key=storage_key, exc_info=True)
            return False

        if len(value.encode("utf-8")) > self._max_entry_bytes:
            log.warning(
                "cache_quota_exceeded",
                key=storage_key,
                size_bytes=len(value.encode("utf-8")),
                limit_bytes=self._max_entry_bytes,
            )
            await self._sweep_after_write_failure()
            return False

        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO cache_entries (key, value) VALUES (?, ?)",
                (storage_key, value),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_write_error", key=storage_key, exc_info=True)
            await self._sweep_after_write_failure()
            return False

        log.info("cache_write", key=storage_key, valid_for=format_window(policy.max_age))
        return True

    async def _sweep_after_write_failure(self) -> None:
        await self.gc_older_than_ms(self._gc_max_age_ms)

    async def mark_verified(self, key: str) -> bool:
        """Bump ``last_verified_at`` without touching payload or write time."""
        storage_key = self._storage_key(key)
        try:
            raw = await self._fetch_value(storage_key)
            if raw is None:
                return False
            envelope = _parse_envelope(raw)
            if envelope is None:
                return False
            updated = envelope.model_copy(update={"last_verified_at": self._clock()})
            await self._db.execute(
                "UPDATE cache_entries SET value = ? WHERE key = ?",
                (updated.model_dump_json(by_alias=True), storage_key),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_verify_error", key=storage_key, exc_info=True)
            return False
        log.debug("cache_verified", key=storage_key)
        return True

    async def remove(self, key: str) -> None:
        storage_key = self._storage_key(key)
        try:
            await self._db.execute("DELETE FROM cache_entries WHERE key = ?", (storage_key,))
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_remove_error", key=storage_key, exc_info=True)
            return
        log.info("cache_removed", key=storage_key)

    async def clear_namespace(self) -> int:
        """Remove every entry and throttle timestamp under the namespace prefix."""
        prefix_args = (len(self._prefix), self._prefix)
        try:
            cursor = await self._db.execute(
                "DELETE FROM cache_entries WHERE substr(key, 1, ?) = ?", prefix_args
            )
            removed = cursor.rowcount
            await self._db.execute(
                "DELETE FROM cache_metadata WHERE substr(key, 1, ?) = ?", prefix_args
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_clear_error", exc_info=True)
            return 0
        log.info("cache_cleared", prefix=self._prefix, removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def gc_older_than(self, window: timedelta) -> int:
        """Delete entries written before ``now - window``, plus unparseable ones."""
        return await self.gc_older_than_ms(int(window.total_seconds() * 1000))

    async def gc_older_than_ms(self, window_ms: int) -> int:
        cutoff = self._clock() - window_ms
        try:
            cursor = await self._db.execute(
                "SELECT key, value FROM cache_entries WHERE substr(key, 1, ?) = ?",
                (len(self._prefix), self._prefix),
            )
            rows = await cursor.fetchall()
            doomed = []
            for storage_key, value in rows:
                envelope = _parse_envelope(value)
                if envelope is None or envelope.written_at < cutoff:
                    doomed.append((storage_key,))
            if doomed:
                await self._db.executemany("DELETE FROM cache_entries WHERE key = ?", doomed)
                await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_gc_error", exc_info=True)
            return 0
        log.info("cache_gc_complete", removed=len(doomed))
        return len(doomed)

    # ------------------------------------------------------------------
    # Revalidation throttle
    # ------------------------------------------------------------------

    def _check_key(self, key: str) -> str:
        return f"{self._prefix}{key}_last_check"

    async def last_check(self, key: str) -> int | None:
        try:
            cursor = await self._db.execute(
                "SELECT value FROM cache_metadata WHERE key = ?", (self._check_key(key),)
            )
            row = await cursor.fetchone()
        except aiosqlite.Error:
            log.warning("cache_metadata_read_error", key=key, exc_info=True)
            return None
        return None if row is None else int(row[0])

    async def record_check(self, key: str, at: int | None = None) -> None:
        """Persist the last revalidation time. The stored value never moves backwards."""
        value = self._clock() if at is None else at
        try:
            await self._db.execute(
                "INSERT INTO cache_metadata (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value "
                "WHERE excluded.value > cache_metadata.value",
                (self._check_key(key), value),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_metadata_write_error", key=key, exc_info=True)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    async def stats(self, policies: Iterable[FreshnessPolicy] = ALL_POLICIES) -> CacheStats:
        """Summarize every entry under the namespace. Empty on read failure."""
        by_key = {policy.key: policy for policy in policies}
        try:
            cursor = await self._db.execute(
                "SELECT key, value FROM cache_entries WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(self._prefix), self._prefix),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error:
            log.warning("cache_stats_error", exc_info=True)
            return CacheStats(total_items=0, total_bytes=0, items=[])

        now = self._clock()
        items: list[CacheItemStats] = []
        total_bytes = 0
        for storage_key, value in rows:
            key = storage_key[len(self._prefix) :]
            size = len(value.encode("utf-8"))
            total_bytes += size
            envelope = _parse_envelope(value)
            if envelope is None:
                items.append(
                    CacheItemStats(
                        key=key,
                        size_bytes=size,
                        age_ms=None,
                        is_valid=False,
                        is_fresh=False,
                        corrupt=True,
                    )
                )
                continue
            policy = by_key.get(key)
            items.append(
                CacheItemStats(
                    key=key,
                    size_bytes=size,
                    age_ms=now - envelope.written_at,
                    is_valid=policy is not None and is_valid(envelope, policy, now),
                    is_fresh=policy is not None and is_fresh(envelope, policy, now),
                )
            )
        return CacheStats(total_items=len(items), total_bytes=total_bytes, items=items)
