"""
==============================================================================
POS Barcode Capture - Application Entry Point
==============================================================================

FastAPI application with:
- Scanner WebSocket (capture session + sale draft per connection)
- Product lookup endpoints
- Health probes

Usage:
------
    # Development
    uvicorn pos_scanner.main:app --reload

    # Production
    uvicorn pos_scanner.main:app --host 0.0.0.0 --port 8000

==============================================================================
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pos_scanner import __version__
from pos_scanner.api.router import api_router
from pos_scanner.catalog import init_catalog
from pos_scanner.config import get_settings
from pos_scanner.core.exceptions import register_exception_handlers
from pos_scanner.websockets import scanner_router


# ============================================================================
# LOGGING SETUP
# ============================================================================

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)

logger = logging.getLogger(__name__)


# ============================================================================
# APPLICATION FACTORY
# ============================================================================

class Application:
    """
    FastAPI application factory and manager.

    Handles startup/shutdown, middleware, routers and exception handlers.
    """

    def __init__(self):
        self._settings = get_settings()
        self._app = self._create_app()

    def _create_app(self) -> FastAPI:
        app = FastAPI(
            title=self._settings.app_name,
            version=__version__,
            description="Barcode capture and sale-line entry for the point of sale",
            lifespan=self._lifespan,
            docs_url="/docs",
            redoc_url="/redoc",
        )

        self._configure_middleware(app)
        register_exception_handlers(app)
        self._register_routers(app)
        self._register_root(app)

        return app

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        """Application lifespan manager."""
        self._startup()
        yield
        self._shutdown()

    def _startup(self) -> None:
        logger.info("=" * 60)
        logger.info(f"🚀 Starting {self._settings.app_name}")
        logger.info("=" * 60)

        self._load_catalog()

        logger.info(f"🔍 Scan policy: {self._settings.scan_policy}")
        logger.info(f"📍 Running on http://{self._settings.host}:{self._settings.port}")
        logger.info(f"📖 API Docs: http://{self._settings.host}:{self._settings.port}/docs")
        logger.info("=" * 60)

    def _shutdown(self) -> None:
        logger.info("🛑 Shutting down...")
        logger.info("✅ Shutdown complete")

    def _load_catalog(self) -> None:
        """Load product catalog."""
        try:
            products_path = self._settings.products_path
            if products_path.exists():
                catalog = init_catalog(products_path)
                logger.info(f"✅ Loaded {len(catalog.products)} products")
            else:
                logger.warning(f"⚠️ Catalog file not found: {products_path}")
        except Exception as e:
            logger.error(f"❌ Failed to load catalog: {e}")

    def _configure_middleware(self, app: FastAPI) -> None:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=self._settings.cors_origins_list,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def _register_routers(self, app: FastAPI) -> None:
        app.include_router(api_router)
        app.include_router(scanner_router)

    def _register_root(self, app: FastAPI) -> None:

        @app.get("/")
        async def root():
            """Service information."""
            return {
                "name": self._settings.app_name,
                "version": __version__,
                "scanner_ws": "/ws/scan",
                "docs": "/docs"
            }

    @property
    def app(self) -> FastAPI:
        """Get the FastAPI application instance."""
        return self._app


# ============================================================================
# APPLICATION INSTANCE
# ============================================================================

application = Application()
app = application.app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pos_scanner.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info"
    )
