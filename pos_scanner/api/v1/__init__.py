"""
==============================================================================
API v1 Endpoints
==============================================================================

Routers:
--------
- health: Health check endpoints
- products: Product lookup and search

==============================================================================
"""

from . import health, products

__all__ = ["health", "products"]
