"""
==============================================================================
WebSocket Package
==============================================================================

Real-time WebSocket handlers.

Handlers:
---------
- scanner: barcode scanner modal feeding a sale draft

==============================================================================
"""

from .scanner import router as scanner_router

__all__ = ["scanner_router"]
