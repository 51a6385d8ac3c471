"""
==============================================================================
Core Package
==============================================================================

Core utilities and infrastructure for the application.

Modules:
--------
- exceptions: AppException class and error factory functions
- dependencies: FastAPI dependency providers (catalog, camera, decoder)

Usage:
------
    from pos_scanner.core import AppException
    from pos_scanner.core import exceptions

    raise exceptions.product_not_found("7501234567890")

==============================================================================
"""

from .exceptions import (
    AppException,
    register_exception_handlers,
)

__all__ = [
    "AppException",
    "register_exception_handlers",
]
