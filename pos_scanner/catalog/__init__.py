"""
==============================================================================
Catalog Package - Stores and Products
==============================================================================

Classes:
--------
- Store, Product: Pydantic models
- ProductCatalog: JSON-backed lookup and search
- ProductRepository: protocol the sale draft depends on

==============================================================================
"""

from .models import Product, Store
from .catalog import ProductCatalog, ProductRepository, get_catalog, init_catalog

__all__ = [
    "Product",
    "Store",
    "ProductCatalog",
    "ProductRepository",
    "get_catalog",
    "init_catalog",
]
