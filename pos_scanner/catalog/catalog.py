"""
==============================================================================
Product Catalog Module
==============================================================================

JSON-backed store and product catalog.

This is the data-access capability the sale draft depends on. Anything that
implements ProductRepository can replace it (tests use it with a temporary
file).

Lookup Order (find_by_identifier):
---------------------------------
1. Exact barcode
2. Exact SKU
3. Case-insensitive name substring (first hit)

JSON Structure:
--------------
{
  "stores": [{"id": "s1", "name": "Central Hardware", "type": "hardware"}],
  "products": [
    {"id": "p1", "name": "Hammer 16oz", "barcode": "7501031311309",
     "sku": "HAM-16", "store_id": "s1", "unit_price": 35.0,
     "stock_quantity": 12, "min_stock": 5}
  ]
}

==============================================================================
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from pydantic import ValidationError

from .models import Product, Store


# Module logger
logger = logging.getLogger(__name__)


class ProductRepository(Protocol):
    """Read access to products and stores."""

    def find_by_identifier(self, identifier: str) -> Optional[Product]: ...

    def get_store(self, store_id: str) -> Optional[Store]: ...

    def search(self, query: str, limit: int = 10) -> List[Product]: ...


class ProductCatalog:
    """
    Catalog manager with lookup indexes.

    Attributes:
        products: List of all products
        stores: List of all stores

    Example:
        >>> catalog = ProductCatalog(Path("data/catalog.json"))
        >>> catalog.find_by_identifier("7501031311309").name
        'Hammer 16oz'
    """

    def __init__(self, products_file: Path) -> None:
        """
        Initialize catalog from JSON file.

        Args:
            products_file: Path to catalog JSON
        """
        self._products_file = products_file
        self._products: List[Product] = []
        self._stores: Dict[str, Store] = {}
        self._by_id: Dict[str, Product] = {}
        self._by_barcode: Dict[str, Product] = {}
        self._by_sku: Dict[str, Product] = {}

        self._load()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def products(self) -> List[Product]:
        return self._products.copy()

    @property
    def stores(self) -> List[Store]:
        return list(self._stores.values())

    # =========================================================================
    # LOADING
    # =========================================================================

    def _load(self) -> None:
        """Load stores and products from the JSON file."""
        try:
            with self._products_file.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.error(f"Catalog file not found: {self._products_file}")
            raise
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON: {e}")
            raise

        self._products.clear()
        self._stores.clear()

        for item in data.get("stores", []):
            try:
                store = Store(**item)
            except ValidationError as e:
                logger.warning(f"Skipping invalid store {item.get('id')}: {e.error_count()} error(s)")
                continue
            self._stores[store.id] = store

        for item in data.get("products", []):
            if "barcode" in item and item["barcode"] is not None:
                item = {**item, "barcode": str(item["barcode"])}
            try:
                product = Product(**item)
            except ValidationError as e:
                logger.warning(f"Skipping invalid product {item.get('id')}: {e.error_count()} error(s)")
                continue
            self._products.append(product)

        self._build_indexes()

        logger.info(f"✅ Loaded {len(self._products)} products from {len(self._stores)} stores")

    def _build_indexes(self) -> None:
        self._by_id.clear()
        self._by_barcode.clear()
        self._by_sku.clear()

        for product in self._products:
            self._by_id[product.id] = product
            if product.barcode:
                self._by_barcode[product.barcode] = product
            if product.sku:
                self._by_sku[product.sku] = product

    def reload(self) -> None:
        """Reload catalog from file."""
        logger.info("Reloading product catalog...")
        self._load()

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def get(self, product_id: str) -> Optional[Product]:
        return self._by_id.get(product_id)

    def get_store(self, store_id: str) -> Optional[Store]:
        return self._stores.get(store_id)

    def find_by_barcode(self, barcode: str) -> Optional[Product]:
        return self._by_barcode.get(barcode)

    def find_by_identifier(self, identifier: str) -> Optional[Product]:
        """
        Resolve a scanned or typed code to a product.

        Args:
            identifier: Barcode, SKU or part of the product name

        Returns:
            Product or None
        """
        identifier = identifier.strip()
        if not identifier:
            return None

        product = self._by_barcode.get(identifier) or self._by_sku.get(identifier)
        if product:
            return product

        lowered = identifier.lower()
        for product in self._products:
            if lowered in product.name.lower():
                logger.debug(f"Name match: {identifier} → {product.name}")
                return product

        return None

    def search(self, query: str, limit: int = 10) -> List[Product]:
        """
        Search active products by name or description.

        Args:
            query: Search text
            limit: Maximum results

        Returns:
            Matching products
        """
        query = query.lower().strip()
        if not query:
            return []

        results = []
        for product in self._products:
            if not product.is_active:
                continue
            description = (product.description or "").lower()
            if query in product.name.lower() or query in description:
                results.append(product)
                if len(results) >= limit:
                    break

        return results

    def list_products(self, store_id: Optional[str] = None) -> List[Product]:
        """List products, optionally for a single store."""
        if store_id is None:
            return self._products.copy()
        return [p for p in self._products if p.store_id == store_id]

    def get_stats(self) -> Dict:
        """Get catalog statistics."""
        stats = {
            "total_products": len(self._products),
            "active_products": sum(1 for p in self._products if p.is_active),
            "stores": {}
        }

        for store in self._stores.values():
            store_products = self.list_products(store.id)
            stats["stores"][store.id] = {
                "name": store.name,
                "products": len(store_products),
                "low_stock": sum(1 for p in store_products if p.is_low_stock)
            }

        return stats


# =============================================================================
# SINGLETON INSTANCE MANAGEMENT
# =============================================================================

_catalog_instance: Optional[ProductCatalog] = None


def get_catalog() -> Optional[ProductCatalog]:
    """Get the global catalog instance."""
    return _catalog_instance


def init_catalog(products_file: Path) -> ProductCatalog:
    """
    Initialize the global catalog instance.

    Args:
        products_file: Path to catalog JSON

    Returns:
        ProductCatalog instance
    """
    global _catalog_instance
    _catalog_instance = ProductCatalog(products_file)
    return _catalog_instance
