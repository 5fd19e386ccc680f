from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError
from pydantic_core import to_jsonable_python

from catalogcache.errors import CatalogError, ErrorCode
from catalogcache.models.catalog import MAX_FEATURED, Product, ProductDraft
from catalogcache.policy import PRODUCTS
from catalogcache.resources.base import ResourceController

log = structlog.get_logger()


def _max_featured_error() -> CatalogError:
    return CatalogError(
        ErrorCode.MAX_FEATURED,
        f"A maximum of {MAX_FEATURED} featured products is allowed",
    )


class ProductsController(ResourceController[Product]):
    """Catalog products. Writes replace the whole collection at the origin."""

    policy = PRODUCTS
    resource = "products"
    item_type = Product

    def get_featured_products(self) -> list[Product]:
        featured = [product for product in self.data if product.featured]
        return sorted(featured, key=lambda product: product.order)[:MAX_FEATURED]

    def _find(self, product_id: str) -> Product:
        for product in self.data:
            if product.id == product_id:
                return product
        raise CatalogError(ErrorCode.NOT_FOUND, f"Product {product_id!r} not found")

    def _featured_count(self, excluding: str | None = None) -> int:
        return sum(1 for p in self.data if p.featured and p.id != excluding)

    def _next_order(self) -> int:
        return max((p.order for p in self.data if p.featured), default=0) + 1

    async def _write_all(self, items: list[Product]) -> None:
        await self._origin.replace_items(self.resource, to_jsonable_python(items, by_alias=True))

    async def add_product(self, draft: ProductDraft) -> Product | None:
        """Create a product; returns it, or ``None`` if the origin write failed."""
        if draft.featured and self._featured_count() >= MAX_FEATURED:
            raise _max_featured_error()
        fields = draft.model_dump()
        if draft.featured:
            fields["order"] = self._next_order()
        product = Product(**fields, id=str(self._store.now()))
        ok = await self._mutate(
            "add_product", lambda items: [*items, product], self._write_all
        )
        return product if ok else None

    async def update_product(self, product_id: str, **changes: Any) -> bool:
        current = self._find(product_id)
        try:
            updated = Product.model_validate({**current.model_dump(), **changes, "id": product_id})
        except ValidationError as exc:
            raise CatalogError(ErrorCode.INVALID_PAYLOAD, str(exc)) from exc
        if updated.featured and not current.featured:
            if self._featured_count() >= MAX_FEATURED:
                raise _max_featured_error()

        def change(items: list[Product]) -> list[Product]:
            return [updated if item.id == product_id else item for item in items]

        return await self._mutate("update_product", change, self._write_all)

    async def delete_product(self, product_id: str) -> bool:
        self._find(product_id)

        def change(items: list[Product]) -> list[Product]:
            return [item for item in items if item.id != product_id]

        async def write(_: list[Product]) -> None:
            await self._origin.delete_item(self.resource, product_id)

        return await self._mutate("delete_product", change, write)

    async def toggle_featured(self, product_id: str) -> bool:
        """Flip ``featured``. Raises MAX_FEATURED before any change when full."""
        product = self._find(product_id)
        if product.featured:
            return await self.update_product(product_id, featured=False)
        if self._featured_count() >= MAX_FEATURED:
            log.info("featured_limit_reached", product_id=product_id)
            raise _max_featured_error()
        return await self.update_product(product_id, featured=True, order=self._next_order())

    async def reorder_featured(self, product_ids: list[str]) -> bool:
        """Make exactly ``product_ids`` featured, ranked in the given order."""
        if len(product_ids) > MAX_FEATURED:
            raise _max_featured_error()
        for product_id in product_ids:
            self._find(product_id)
        ranks = {product_id: index + 1 for index, product_id in enumerate(product_ids)}

        def change(items: list[Product]) -> list[Product]:
            reordered = []
            for item in items:
                if item.id in ranks:
                    reordered.append(item.model_copy(update={"featured": True, "order": ranks[item.id]}))
                else:
                    reordered.append(item.model_copy(update={"featured": False}))
            return reordered

        return await self._mutate("reorder_featured", change, self._write_all)
