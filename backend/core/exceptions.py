"""
Exception handlers for consistent API error responses.

Promotion module exceptions and plain ValueErrors raised by services are
converted into JSON bodies carrying an error code and the request path.
"""

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional
import logging

from modules.promotions.exceptions import (
    PromotionBaseException,
    InvalidStatusTransitionError,
    UsageLimitExceededError,
)

logger = logging.getLogger(__name__)


class APIError(HTTPException):
    """Base API error with consistent structure"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


# Promotion exception -> HTTP status; anything unlisted is a server-side failure
PROMOTION_ERROR_STATUS = {
    InvalidStatusTransitionError: status.HTTP_409_CONFLICT,
    UsageLimitExceededError: status.HTTP_409_CONFLICT,
}


async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    """Convert ValueError to consistent API response"""
    logger.warning(f"ValueError at {request.url.path}: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": str(exc),
            "error_code": "VALIDATION_ERROR",
            "path": str(request.url.path),
        },
    )


async def handle_promotion_error(
    request: Request, exc: PromotionBaseException
) -> JSONResponse:
    """Convert promotion module exceptions to consistent API response"""
    status_code = PROMOTION_ERROR_STATUS.get(
        type(exc), status.HTTP_503_SERVICE_UNAVAILABLE
    )
    logger.error(f"{type(exc).__name__} at {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "error_code": exc.error_code,
            "details": exc.details,
            "path": str(request.url.path),
        },
    )


async def handle_api_error(request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "error_code": exc.error_code,
            "path": str(request.url.path),
        },
        headers=exc.headers,
    )


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app"""
    app.add_exception_handler(ValueError, handle_value_error)
    app.add_exception_handler(PromotionBaseException, handle_promotion_error)
    app.add_exception_handler(APIError, handle_api_error)
