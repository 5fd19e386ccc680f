from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class CacheEnvelope(BaseModel):
    """Persisted wrapper around a cached payload.

    Serialized with ``by_alias=True`` so the stored JSON reads
    ``{"data", "timestamp", "version", "checksum", "lastCheck"}``.
    """

    model_config = ConfigDict(populate_by_name=True)

    payload: Any = Field(alias="data")
    written_at: int = Field(alias="timestamp")  # epoch millis
    schema_version: str = Field(alias="version")
    checksum: str = ""  # First 16 hex chars of SHA-256 over the canonical payload JSON
    last_verified_at: int | None = Field(default=None, alias="lastCheck")

    @property
    def verified_at(self) -> int:
        """Last successful origin check; falls back to the write time."""
        if self.last_verified_at is None:
            return self.written_at
        return self.last_verified_at


@dataclass(frozen=True)
class CachedRead(Generic[T]):
    """Result of a cache lookup."""

    payload: T
    needs_check: bool


class CacheItemStats(BaseModel):
    key: str
    size_bytes: int
    age_ms: int | None  # None when the entry could not be parsed
    is_valid: bool
    is_fresh: bool
    corrupt: bool = False


class CacheStats(BaseModel):
    total_items: int
    total_bytes: int
    items: list[CacheItemStats]
