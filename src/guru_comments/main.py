# src/guru_comments/main.py
"""Main entry point for the Guru comment API."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from guru_comments.api.v1 import (
    admin_router,
    auth_router,
    comments_router,
    discussions_router,
)
from guru_comments.core.errors import (
    AppError,
    ErrorCode,
    ErrorDetail,
    RateLimitExceeded,
    StorageUnavailable,
    error_response,
)
from guru_comments.core.settings import settings

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Threaded discussions with soft-deletable comment trees",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(auth_router, prefix="/api/v1")
app.include_router(discussions_router, prefix="/api/v1")
app.include_router(comments_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


@app.exception_handler(AppError)
async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    headers: dict[str, str] = {}
    if isinstance(exc, RateLimitExceeded):
        headers["X-RateLimit-Remaining"] = str(exc.remaining)
        headers["X-RateLimit-Reset"] = str(exc.reset_time)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc),
        headers=headers or None,
    )


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        ErrorDetail(
            message=str(error.get("msg", "Invalid value")),
            field=".".join(str(part) for part in error.get("loc", ())[1:]) or None,
        )
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response(ErrorCode.VALIDATION_ERROR, details=details),
    )


# Database faults outside the comment store, such as identity lookups.
@app.exception_handler(OperationalError)
@app.exception_handler(InterfaceError)
@app.exception_handler(PoolTimeoutError)
async def handle_storage_unavailable(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Relational store unavailable on %s %s: %s", request.method, request.url.path, exc)
    error = StorageUnavailable()
    return JSONResponse(status_code=error.status_code, content=error_response(error))


@app.exception_handler(Exception)
async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response(ErrorCode.INTERNAL_ERROR, "An unexpected error occurred"),
    )


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
    uvicorn.run("guru_comments.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
