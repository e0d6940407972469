"""
app/core/errors.py

Purpose: HTTP error rendering

- Every error leaves the API as {"error", "code", "details"}
- Domain errors keep their own code and status
- Storage outages answer 503 with Retry-After so callers back off
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.exceptions import PersistenceError, ShopError
from app.core.logging import get_logger
from app.schemas.response import ErrorResponse

logger = get_logger(__name__)

RETRY_AFTER_SECONDS = "5"


def error_body(error: str, code: str, details=None) -> dict:
    return ErrorResponse(error=error, code=code, details=details).model_dump(mode="json")


async def shop_exception_handler(request: Request, exc: ShopError) -> JSONResponse:
    headers = None
    status_code = exc.status_code

    if isinstance(exc, PersistenceError):
        status_code = 503
        headers = {"Retry-After": RETRY_AFTER_SECONDS}

    if status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=status_code,
        content=error_body(exc.message, exc.code, exc.details),
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Standard HTTP errors (404, 400 from the webhook, 503 before startup)."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), "HTTP_ERROR"),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content=error_body("Input validation failed", "VALIDATION_ERROR", exc.errors()),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception: {exc}",
        extra={
            "method": request.method,
            "url": str(request.url),
            "client": request.client.host if request.client else "unknown"
        },
        exc_info=True
    )

    message = "An internal error occurred. Please try again later." if settings.is_production else str(exc)
    return JSONResponse(status_code=500, content=error_body(message, "INTERNAL_ERROR"))


def add_exception_handlers(app: FastAPI):
    app.add_exception_handler(ShopError, shop_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
