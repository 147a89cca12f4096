"""
FastAPI application entry point with health endpoints and service routing.

This module provides the main FastAPI application instance with CORS
configuration, rate limiting, request logging, health check endpoints,
global exception handling and the order, product and notification routers.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from marketplace.api.limiter import limiter
from marketplace.api.v1.notifications import device_token_router
from marketplace.api.v1.notifications import router as notifications_router
from marketplace.api.v1.order_items import router as order_items_router
from marketplace.api.v1.orders import router as orders_router
from marketplace.api.v1.products import router as products_router
from marketplace.core.config import get_settings
from marketplace.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from marketplace.database.connection import dispose_engine, get_db_session

# Configure logging before application initialization
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan context manager for startup and shutdown events.

    Args:
        app: FastAPI application instance

    Yields:
        None during application runtime
    """
    settings = get_settings()

    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        version=settings.app_version,
        compensate_failed_orders=settings.compensate_failed_orders,
        notifications_enabled=settings.notifications_enabled,
    )

    yield

    logger.info("Application shutting down")
    with log_performance(logger, "application_shutdown"):
        await dispose_engine()


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Marketplace backend API: orders, stock and push notifications",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=settings.debug,
)

# Configure rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """
    Middleware for request logging and correlation ID management.

    Sets request ID for correlation, logs request details, and measures
    response time. Clears context after request processing.

    Args:
        request: Incoming HTTP request
        call_next: Next middleware or route handler

    Returns:
        HTTP response with X-Request-ID header
    """
    request_id = set_request_id(request.headers.get("X-Request-ID"))

    logger.info(
        "Request received",
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None,
    )

    try:
        with log_performance(
            logger,
            "request_processing",
            method=request.method,
            path=request.url.path,
        ):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )

        return response
    except Exception as e:
        logger.error(
            "Request failed",
            method=request.method,
            path=request.url.path,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        clear_context()


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle request validation errors with structured error response.

    Args:
        request: HTTP request that caused validation error
        exc: Validation exception with error details

    Returns:
        JSON response with validation error details
    """
    errors = exc.errors()
    logger.warning(
        "Request validation failed",
        method=request.method,
        path=request.url.path,
        errors=errors,
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation Error",
            "message": "Request validation failed",
            "details": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
                for err in errors
            ],
            "request_id": get_request_id(),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Handle unexpected exceptions with structured error response.

    Logs error with full context and returns generic error message
    to avoid exposing internal details.

    Args:
        request: HTTP request that caused exception
        exc: Exception that was raised

    Returns:
        JSON response with error details
    """
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal Server Error",
            "message": "An unexpected error occurred",
            "request_id": get_request_id(),
        },
    )


@app.get(
    "/health",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Health check endpoint",
)
async def health_check() -> dict[str, str]:
    """
    Basic health check endpoint.

    Always returns 200 OK if application is running.
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get(
    "/ready",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Readiness check endpoint",
)
async def readiness_check():
    """
    Readiness check endpoint for orchestration.

    Verifies database connectivity. Returns 503 when the database cannot be
    reached.
    """
    db_status = "healthy"

    try:
        async with get_db_session() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(
            "Database connectivity check failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        db_status = "unhealthy"

    if db_status != "healthy":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "service": settings.app_name,
                "dependencies_ready": False,
                "database": db_status,
            },
        )

    return {
        "status": "ready",
        "service": settings.app_name,
        "version": settings.app_version,
        "dependencies_ready": True,
        "database": db_status,
    }


@app.get(
    "/live",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Liveness check endpoint",
)
async def liveness_check() -> dict[str, str]:
    """Liveness check endpoint; 200 OK while the process is serving."""
    return {
        "status": "alive",
        "service": settings.app_name,
        "version": settings.app_version,
    }


app.include_router(orders_router, prefix=settings.api_prefix)
app.include_router(order_items_router, prefix=settings.api_prefix)
app.include_router(products_router, prefix=settings.api_prefix)
app.include_router(device_token_router, prefix=settings.api_prefix)
app.include_router(notifications_router, prefix=settings.api_prefix)
