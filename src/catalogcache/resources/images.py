from __future__ import annotations

from catalogcache.models.catalog import ProductImage
from catalogcache.policy import PRODUCT_IMAGES
from catalogcache.resources.base import ResourceController


class ProductImagesController(ResourceController[ProductImage]):
    """Read-only image metadata; images change least often of all kinds."""

    policy = PRODUCT_IMAGES
    resource = "images"
    item_type = ProductImage

    def find(self, url: str) -> ProductImage | None:
        for image in self.data:
            if image.url == url:
                return image
        return None
