# src/arcstats/main.py

"""Main FastAPI application for arcstats."""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api import match, rating, recompute
from .db.session import engine, init_models
from .exceptions import (
    ArcStatsError,
    AuthorizationError,
    RatingEngineError,
    ResourceNotFoundError,
)
from .middleware.logging import RequestLoggingMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup and shutdown events."""
    if os.getenv("DB_AUTO_CREATE", "true").lower() == "true":
        await init_models()
    yield
    # Shutdown: Dispose of database connections gracefully
    await engine.dispose()


app = FastAPI(title="arcstats API", lifespan=lifespan)

# Add middleware (order matters - last added = outermost)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("ARCSTATS_CORS_ORIGINS", "*").split(",")
        if origin.strip()
    ],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "apikey", "x-recompute-token"],
)


def _error(status_code: int, message: str, error_type: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, "error_type": error_type},
    )


def _validation_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


# =============================================================================
# Global Exception Handlers
# =============================================================================


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(
    request: Request, exc: AuthorizationError
) -> JSONResponse:
    """Handle rejected recompute callers -> 403."""
    logger.warning("Authorization failed: %s", exc.message, extra=exc.details)
    return _error(403, exc.message, type(exc).__name__)


@app.exception_handler(ResourceNotFoundError)
async def resource_not_found_handler(
    request: Request, exc: ResourceNotFoundError
) -> JSONResponse:
    """Handle all resource not found errors -> 404."""
    logger.warning("Resource not found: %s", exc.message, extra=exc.details)
    return _error(404, exc.message, type(exc).__name__)


@app.exception_handler(RatingEngineError)
async def rating_engine_error_handler(
    request: Request, exc: RatingEngineError
) -> JSONResponse:
    """Handle rating engine errors -> 500."""
    logger.error(
        "Rating engine error: %s", exc.message, extra=exc.details, exc_info=True
    )
    return _error(500, f"Rating calculation failed: {exc.message}", type(exc).__name__)


@app.exception_handler(ArcStatsError)
async def arcstats_error_handler(request: Request, exc: ArcStatsError) -> JSONResponse:
    """Catch-all for any other arcstats errors (failed rebuilds) -> 500."""
    logger.error("arcstats error: %s", exc.message, extra=exc.details, exc_info=True)
    return _error(500, exc.message, type(exc).__name__)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Wrap routing errors (404 path, 405 verb) in the error envelope."""
    logger.warning(
        "HTTP %d on %s %s", exc.status_code, request.method, request.url.path
    )
    response = _error(exc.status_code, str(exc.detail), "HTTPException")
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Reject malformed request bodies and parameters -> 422."""
    logger.warning("Request validation failed on %s", request.url.path)
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "Invalid request",
            "error_type": "RequestValidationError",
            "detail": _validation_errors(exc),
        },
    )


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_error_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    """Catch-all for database errors outside a recomputation run."""
    logger.error("Database error: %s", exc, exc_info=True)
    return _error(500, "An internal database error occurred", type(exc).__name__)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions."""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return _error(500, "An internal server error occurred", type(exc).__name__)


# Include routers into the main application
app.include_router(recompute.router)
app.include_router(rating.router)
app.include_router(match.router)


@app.get("/", tags=["Root"])
async def read_root() -> dict[str, str]:
    """Provides a welcome message."""
    return {"message": "Welcome to the arcstats API"}


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}
