from __future__ import annotations

from catalogcache.resources.auth import AuthController
from catalogcache.resources.base import ResourceController, ResourceState
from catalogcache.resources.images import ProductImagesController
from catalogcache.resources.products import ProductsController
from catalogcache.resources.weekly_pdfs import WeeklyPdfsController

__all__ = [
    "AuthController",
    "ProductImagesController",
    "ProductsController",
    "ResourceController",
    "ResourceState",
    "WeeklyPdfsController",
]
