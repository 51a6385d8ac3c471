"""
==============================================================================
Product Catalog Endpoints
==============================================================================

Lookup and search used by the register's code field.

==============================================================================
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from pos_scanner.catalog import ProductCatalog
from pos_scanner.core import exceptions
from pos_scanner.core.dependencies import get_product_catalog


router = APIRouter(prefix="/products", tags=["Products"])


class ProductController:
    """Controller for product catalog operations."""

    def __init__(self, catalog: ProductCatalog):
        self._catalog = catalog

    def list_products(self, store_id: Optional[str], limit: int) -> dict:
        """List products, optionally for one store."""
        products = self._catalog.list_products(store_id)

        return {
            "success": True,
            "store_id": store_id,
            "total": len(products),
            "products": [p.to_summary() for p in products[:limit]]
        }

    def search(self, query: str, limit: int) -> dict:
        """Search active products by name or description."""
        matched = self._catalog.search(query, limit=limit)

        return {
            "success": True,
            "query": query,
            "total": len(matched),
            "products": [p.to_summary() for p in matched]
        }

    def lookup(self, identifier: str) -> dict:
        """Resolve a barcode, SKU or name to one product."""
        product = self._catalog.find_by_identifier(identifier)

        if not product:
            raise exceptions.product_not_found(identifier)

        store = self._catalog.get_store(product.store_id)

        return {
            "success": True,
            "product": product.to_summary(),
            "store": {"id": store.id, "name": store.name} if store else None
        }

    def get_stats(self) -> dict:
        return {
            "success": True,
            "stats": self._catalog.get_stats()
        }


@router.get("")
async def list_products(
    store_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    catalog: ProductCatalog = Depends(get_product_catalog)
):
    """List products with an optional store filter."""
    controller = ProductController(catalog)
    return controller.list_products(store_id, limit)


@router.get("/search")
async def search_products(
    q: str = Query(..., min_length=1),
    limit: int = Query(10, ge=1, le=100),
    catalog: ProductCatalog = Depends(get_product_catalog)
):
    """Search products by name or description."""
    controller = ProductController(catalog)
    return controller.search(q, limit)


@router.get("/lookup/{identifier}")
async def lookup_product(
    identifier: str,
    catalog: ProductCatalog = Depends(get_product_catalog)
):
    """Get the product a scanned or typed code refers to."""
    controller = ProductController(catalog)
    return controller.lookup(identifier)


@router.get("/stats")
async def get_catalog_stats(catalog: ProductCatalog = Depends(get_product_catalog)):
    """Get catalog statistics."""
    controller = ProductController(catalog)
    return controller.get_stats()
