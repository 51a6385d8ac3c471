"""
Application Exception Handling

Single AppException class for all application errors with FastAPI integration.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class AppException(Exception):
    """
    Unified application exception for all error scenarios.

    Provides consistent error response format across the API and the
    scanner WebSocket.

    Usage:
        raise AppException("Product not found", "PRODUCT_NOT_FOUND", 404)
        raise AppException("Store mismatch", "STORE_MISMATCH", 409, {"store_id": "s1"})

    Error Codes:
        Camera:
            - CAMERA_PERMISSION_DENIED (403)
            - CAMERA_NOT_FOUND (404)

        Capture session:
            - SESSION_BUSY (409)
            - INVALID_MANUAL_INPUT (400)

        Sale draft:
            - PRODUCT_NOT_FOUND (404)
            - STORE_MISMATCH (409)
            - SALE_LINE_NOT_FOUND (404)
            - INVALID_DISCOUNT (400)

        General:
            - CATALOG_NOT_LOADED (500)
            - INTERNAL_ERROR (500)
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize application exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code (e.g., "PRODUCT_NOT_FOUND")
            status_code: HTTP status code (default: 400)
            details: Additional error context (optional)
        """
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        error_dict = {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "timestamp": self.timestamp
            }
        }

        if self.details:
            error_dict["error"]["details"] = self.details

        return error_dict


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Convert AppException to a JSON error response."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(AppException, app_exception_handler)


# ============================================
# CONVENIENCE FACTORY FUNCTIONS
# ============================================

def camera_permission_denied() -> AppException:
    """Create camera permission denied exception."""
    return AppException(
        "Camera access was denied. Check the device permissions and try again, "
        "or enter the code manually.",
        "CAMERA_PERMISSION_DENIED",
        403
    )


def camera_not_found() -> AppException:
    """Create no camera available exception."""
    return AppException(
        "No camera could be started. Connect a camera and try again, "
        "or enter the code manually.",
        "CAMERA_NOT_FOUND",
        404
    )


def session_busy(state: str) -> AppException:
    """Create session already acquiring/streaming exception."""
    return AppException(
        "Scanner is already active",
        "SESSION_BUSY",
        409,
        {"state": state}
    )


def invalid_manual_input() -> AppException:
    """Create empty manual entry exception."""
    return AppException(
        "Enter a barcode before submitting",
        "INVALID_MANUAL_INPUT",
        400
    )


def product_not_found(identifier: Optional[str] = None) -> AppException:
    """Create product not found exception."""
    details = {"identifier": identifier} if identifier else {}
    return AppException(
        f"No product matches: {identifier}" if identifier else "Product not found",
        "PRODUCT_NOT_FOUND",
        404,
        details
    )


def store_mismatch(current_store_id: str, product_store_id: str) -> AppException:
    """Create mixed-store sale exception."""
    return AppException(
        "Products from different stores cannot be added to the same sale",
        "STORE_MISMATCH",
        409,
        {"sale_store_id": current_store_id, "product_store_id": product_store_id}
    )


def sale_line_not_found(product_id: str) -> AppException:
    """Create missing sale line exception."""
    return AppException(
        "Product is not part of this sale",
        "SALE_LINE_NOT_FOUND",
        404,
        {"product_id": product_id}
    )


def invalid_discount(amount: Any) -> AppException:
    """Create invalid discount exception."""
    return AppException(
        "Discount must be a finite, non-negative amount",
        "INVALID_DISCOUNT",
        400,
        {"amount": str(amount)}
    )


def catalog_not_loaded() -> AppException:
    """Create catalog not loaded exception."""
    return AppException(
        "Product catalog not loaded",
        "CATALOG_NOT_LOADED",
        500
    )


def internal_error(message: str = "Internal server error") -> AppException:
    """Create internal server error exception."""
    return AppException(message, "INTERNAL_ERROR", 500)
