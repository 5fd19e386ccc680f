from __future__ import annotations

from catalogcache.models.cache import CachedRead, CacheEnvelope, CacheItemStats, CacheStats
from catalogcache.models.catalog import (
    MAX_FEATURED,
    Category,
    Product,
    ProductDraft,
    ProductImage,
    WeeklyPdf,
)

__all__ = [
    # cache
    "CacheEnvelope",
    "CachedRead",
    "CacheItemStats",
    "CacheStats",
    # catalog
    "MAX_FEATURED",
    "Category",
    "Product",
    "ProductDraft",
    "ProductImage",
    "WeeklyPdf",
]
