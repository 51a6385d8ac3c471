"""
==============================================================================
Pytest Configuration and Fixtures
==============================================================================

Provides catalog, capture fakes and test client fixtures.

==============================================================================
"""

import json
from pathlib import Path
from typing import Generator, List

import pytest
from fastapi.testclient import TestClient

from pos_scanner.catalog import ProductCatalog
from pos_scanner.core.dependencies import (
    get_decode_engine,
    get_media_provider,
    get_optional_catalog,
    get_product_catalog,
)
from pos_scanner.main import app
from tests.fakes import FakeDecodeEngine, FakeMediaProvider


# ============================================================================
# CATALOG FIXTURES
# ============================================================================

CATALOG_DATA = {
    "stores": [
        {"id": "s-hw", "name": "Central Hardware", "type": "hardware"},
        {"id": "s-cos", "name": "Bella Cosmetics", "type": "cosmetics"}
    ],
    "products": [
        {"id": "p1", "name": "Claw Hammer 16oz", "description": "Steel hammer",
         "barcode": "7501031311309", "sku": "HAM-16", "store_id": "s-hw",
         "unit_price": 35.0, "stock_quantity": 14, "min_stock": 5},
        {"id": "p2", "name": "Wood Screws 1in", "description": "Box of 100",
         "barcode": "7702004003508", "sku": "SCR-1", "store_id": "s-hw",
         "unit_price": 8.5, "stock_quantity": 3, "min_stock": 10},
        {"id": "p3", "name": "Moisturizing Cream", "description": "Face and body",
         "barcode": 4005808890507, "sku": "CRM-200", "store_id": "s-cos",
         "unit_price": 27.9, "stock_quantity": 20, "min_stock": 6},
        {"id": "p4", "name": "Orphan Glue", "barcode": "1111111111116",
         "store_id": "s-missing", "unit_price": 4.0},
        {"id": "p5", "name": "Discontinued Hammer Stand", "barcode": "2222222222222",
         "store_id": "s-hw", "unit_price": 10.0, "is_active": False},
        {"id": "broken", "name": "", "store_id": "s-hw", "unit_price": 1.0}
    ]
}


@pytest.fixture
def catalog_file(tmp_path: Path) -> Path:
    """Catalog JSON written to a temporary directory."""
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(CATALOG_DATA), encoding="utf-8")
    return path


@pytest.fixture
def catalog(catalog_file: Path) -> ProductCatalog:
    return ProductCatalog(catalog_file)


# ============================================================================
# CAPTURE FIXTURES
# ============================================================================

@pytest.fixture
def media() -> FakeMediaProvider:
    return FakeMediaProvider()


@pytest.fixture
def engine() -> FakeDecodeEngine:
    return FakeDecodeEngine()


@pytest.fixture
def scanned() -> List[str]:
    """Values received by on_scanned."""
    return []


# ============================================================================
# CLIENT FIXTURES
# ============================================================================

@pytest.fixture
def ws_media() -> FakeMediaProvider:
    return FakeMediaProvider()


@pytest.fixture
def ws_engine() -> FakeDecodeEngine:
    return FakeDecodeEngine()


@pytest.fixture
def client(
    catalog: ProductCatalog,
    ws_media: FakeMediaProvider,
    ws_engine: FakeDecodeEngine
) -> Generator[TestClient, None, None]:
    """Test client wired to the fixture catalog and fake capture devices."""
    app.dependency_overrides[get_product_catalog] = lambda: catalog
    app.dependency_overrides[get_optional_catalog] = lambda: catalog
    app.dependency_overrides[get_media_provider] = lambda: ws_media
    app.dependency_overrides[get_decode_engine] = lambda: ws_engine

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def client_without_catalog() -> Generator[TestClient, None, None]:
    """Test client whose catalog failed to load."""
    app.dependency_overrides[get_optional_catalog] = lambda: None
    app.dependency_overrides[get_product_catalog] = _raise_not_loaded
    app.dependency_overrides[get_media_provider] = lambda: FakeMediaProvider()
    app.dependency_overrides[get_decode_engine] = lambda: FakeDecodeEngine()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _raise_not_loaded():
    from pos_scanner.core import exceptions
    raise exceptions.catalog_not_loaded()
