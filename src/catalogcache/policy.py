"""Per-resource freshness windows.

An envelope is *valid* while it is younger than ``max_age`` and carries the
current schema version; a valid envelope is *fresh* while its last origin
check is younger than ``fresh_window``. Fresh entries are served without
contacting the origin; valid-but-not-fresh entries are served and then
revalidated in the background. The values are fixed constants.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from catalogcache.models.cache import CacheEnvelope

SCHEMA_VERSION = "2.0.0"
BACKGROUND_CHECK_INTERVAL = timedelta(minutes=5)


class FreshnessPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    max_age: timedelta
    fresh_window: timedelta
    schema_version: str = SCHEMA_VERSION

    @property
    def max_age_ms(self) -> int:
        return _to_ms(self.max_age)

    @property
    def fresh_window_ms(self) -> int:
        return _to_ms(self.fresh_window)


# Products change most often, images least.
PRODUCTS = FreshnessPolicy(
    key="products",
    max_age=timedelta(hours=24),
    fresh_window=timedelta(hours=6),
)
WEEKLY_PDFS = FreshnessPolicy(
    key="weekly_pdfs",
    max_age=timedelta(hours=48),
    fresh_window=timedelta(hours=12),
)
PRODUCT_IMAGES = FreshnessPolicy(
    key="product_images",
    max_age=timedelta(days=30),
    fresh_window=timedelta(days=7),
)

ALL_POLICIES: tuple[FreshnessPolicy, ...] = (PRODUCTS, WEEKLY_PDFS, PRODUCT_IMAGES)


def _to_ms(delta: timedelta) -> int:
    return int(delta.total_seconds() * 1000)


def is_valid(envelope: CacheEnvelope, policy: FreshnessPolicy, now: int) -> bool:
    return (
        now - envelope.written_at < policy.max_age_ms
        and envelope.schema_version == policy.schema_version
    )


def is_fresh(envelope: CacheEnvelope, policy: FreshnessPolicy, now: int) -> bool:
    return is_valid(envelope, policy, now) and now - envelope.verified_at < policy.fresh_window_ms


def policy_for_key(key: str) -> FreshnessPolicy | None:
    for policy in ALL_POLICIES:
        if policy.key == key:
            return policy
    return None


def format_window(delta: timedelta) -> str:
    """Human-readable window length: ``"6 hours"``, ``"1 day"``, ``"30 days"``."""
    hours = int(delta.total_seconds() // 3600)
    days = hours // 24
    if days > 0:
        return f"{days} day{'s' if days > 1 else ''}"
    return f"{hours} hour{'s' if hours != 1 else ''}"
