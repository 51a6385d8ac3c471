"""
==============================================================================
Health Check Endpoints
==============================================================================

System health status endpoints for monitoring and orchestration.

==============================================================================
"""

from typing import Optional

from fastapi import APIRouter, Depends

from pos_scanner.catalog import ProductCatalog
from pos_scanner.config import Settings
from pos_scanner.core.dependencies import get_app_settings, get_optional_catalog


router = APIRouter(prefix="/health", tags=["Health"])


class HealthController:
    """Controller for health check operations."""

    def __init__(self, catalog: Optional[ProductCatalog], settings: Settings):
        self._catalog = catalog
        self._settings = settings

    def check_catalog(self) -> dict:
        """Check catalog status."""
        if self._catalog is not None:
            return {"status": "healthy", "products": len(self._catalog.products)}
        return {"status": "not_loaded", "products": 0}

    def get_health(self) -> dict:
        """Get full health status."""
        catalog_info = self.check_catalog()

        overall = "healthy" if catalog_info["status"] == "healthy" else "degraded"

        return {
            "status": overall,
            "components": {
                "api": "healthy",
                "catalog": catalog_info["status"]
            },
            "details": {
                "products_loaded": catalog_info["products"],
                "scan_policy": self._settings.scan_policy
            }
        }


@router.get("")
async def health_check(
    catalog: Optional[ProductCatalog] = Depends(get_optional_catalog),
    settings: Settings = Depends(get_app_settings)
):
    """
    Health check endpoint.

    Returns API and catalog status. A missing catalog only degrades the
    service: scanning and manual entry still work, lookups do not.
    """
    controller = HealthController(catalog, settings)
    return controller.get_health()


@router.get("/ready")
async def readiness_check():
    """Readiness probe for container orchestration."""
    return {"ready": True}


@router.get("/live")
async def liveness_check():
    """Liveness probe for container orchestration."""
    return {"alive": True}
