"""
==============================================================================
FastAPI Dependencies Module
==============================================================================

Providers for the collaborators routes and WebSocket handlers need.

Routes never build these themselves, so tests can swap each one through
``app.dependency_overrides``:

    app.dependency_overrides[get_media_provider] = lambda: FakeMediaProvider()

==============================================================================
"""

from __future__ import annotations

from typing import Optional

from pos_scanner.capture import MediaProvider, OpenCVMediaProvider, PyzbarDecodeEngine
from pos_scanner.capture.decoder import DecodeEngine
from pos_scanner.catalog import ProductCatalog, get_catalog
from pos_scanner.config import Settings, get_settings
from pos_scanner.core import exceptions


def get_app_settings() -> Settings:
    """Application settings."""
    return get_settings()


def get_product_catalog() -> ProductCatalog:
    """
    Loaded product catalog.

    Raises:
        AppException: CATALOG_NOT_LOADED if startup could not load it
    """
    catalog = get_catalog()
    if catalog is None:
        raise exceptions.catalog_not_loaded()
    return catalog


def get_optional_catalog() -> Optional[ProductCatalog]:
    """Catalog if loaded; WebSocket handlers report the error themselves."""
    return get_catalog()


def get_media_provider() -> MediaProvider:
    """Camera provider for new capture sessions."""
    return OpenCVMediaProvider(get_settings())


def get_decode_engine() -> DecodeEngine:
    """Decode engine for new capture sessions."""
    return PyzbarDecodeEngine(get_settings())
