# src/sentence_stash/main.py
"""Main entry point for the SentenceStash application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sentence_stash.api.endpoints import (
    admin_router,
    auth_router,
    books_router,
    communities_router,
    export_router,
    search_router,
    sentences_router,
    users_router,
)
from sentence_stash.core.errors import SentenceStashError
from sentence_stash.core.settings import settings
from sentence_stash.db import create_tables, uses_sqlite
from sentence_stash.db.time import utcnow

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api"

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Collect, share and export sentences from the books you read",
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
app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(sentences_router, prefix=API_PREFIX)
app.include_router(search_router, prefix=API_PREFIX)
app.include_router(communities_router, prefix=API_PREFIX)
app.include_router(users_router, prefix=API_PREFIX)
app.include_router(books_router, prefix=API_PREFIX)
app.include_router(export_router, prefix=API_PREFIX)
app.include_router(admin_router, prefix=API_PREFIX)


def _error(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


@app.exception_handler(SentenceStashError)
async def handle_domain_error(_request: Request, exc: SentenceStashError) -> JSONResponse:
    return _error(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework errors, including unmatched routes, in the ``{"error": ...}`` shape."""
    if exc.status_code == status.HTTP_404_NOT_FOUND and request.url.path.startswith(API_PREFIX):
        if exc.detail == "Not Found":
            return _error(exc.status_code, "API endpoint not found")
    return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def handle_validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report the first validation problem as a 400."""
    errors = exc.errors()
    message = "Invalid input"
    if errors:
        message = str(errors[0].get("msg", message)).removeprefix("Value error, ")
    return _error(status.HTTP_400_BAD_REQUEST, message)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = "Internal server error" if settings.is_production else str(exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, message)


@app.on_event("startup")
async def on_startup() -> None:
    logger.info("Starting %s with %s storage", settings.app_name, settings.storage_backend)
    if settings.storage_backend == "database" and uses_sqlite():
        # Local SQLite files are created on the fly; PostgreSQL goes through alembic.
        create_tables()


@app.get(f"{API_PREFIX}/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok", "timestamp": utcnow().isoformat()}


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

    uvicorn.run("sentence_stash.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
