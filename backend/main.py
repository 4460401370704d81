"""
FastAPI Application Entry Point
Main application with all routes and middleware
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.core.config import settings
from backend.core.logging import setup_logging, get_logger
from backend.core.exceptions import AppException, RateLimitException
from backend.api import v1
from backend.models.common import HealthResponse
from backend.monitoring.metrics import errors_total, get_metrics

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan management"""
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.DEBUG}")

    from backend.db.session import init_db, close_db
    from backend.core.rate_limit import init_redis, close_redis

    # Startup
    try:
        await init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    try:
        await init_redis()
    except Exception as e:
        # Rate limiting fails open without Redis
        logger.error(f"Failed to initialize Redis, rate limiting disabled: {e}")

    logger.info("All services initialized")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await close_redis()
    await close_db()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Time-boxed, usage-limited sharing of soul charts",
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan
)


# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


def error_body(code: str, message: str, details=None, timestamp=None) -> dict:
    """Failure body: ``error`` is always the human-readable reason"""
    content = {
        "error": message,
        "code": code,
        "timestamp": timestamp,
    }
    if details:
        content["details"] = details
    return content


# Exception Handlers
@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle application-specific exceptions"""
    headers = None
    if isinstance(exc, RateLimitException) and "retry_after" in exc.details:
        headers = {"Retry-After": str(exc.details["retry_after"])}

    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message} {exc.details}")

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.details, exc.timestamp),
        headers=headers,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions"""
    error_code = str(exc.detail).lower().replace(" ", "_")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(error_code, str(exc.detail)),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle validation errors"""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(
            "validation_error",
            "Invalid request parameters",
            {"errors": jsonable_errors(exc)},
        ),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log the traceback, never return it"""
    logger.opt(exception=exc).error(f"Unhandled error on {request.url.path}")
    errors_total.labels(error_type=type(exc).__name__, endpoint=request.url.path).inc()
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("internal_error", "Internal server error"),
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


# Include routers
app.include_router(v1.router, prefix="/api/v1")


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs_url": "/docs" if settings.DEBUG else None,
    }


# Health check endpoint
@app.get("/health", tags=["Health"], response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    from backend.db.session import check_connection
    from backend.core.rate_limit import get_rate_limiter

    health_status = {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "timestamp": datetime.utcnow().isoformat(),
        "services": {},
    }

    if await check_connection():
        health_status["services"]["database"] = "healthy"
    else:
        health_status["status"] = "degraded"
        health_status["services"]["database"] = "unhealthy"

    limiter = get_rate_limiter()
    if limiter is None:
        health_status["services"]["redis"] = "disabled"
    else:
        try:
            await limiter.client.ping()
            health_status["services"]["redis"] = "healthy"
        except Exception as e:
            health_status["status"] = "degraded"
            health_status["services"]["redis"] = f"unhealthy: {str(e)}"

    return health_status


# Prometheus metrics endpoint
@app.get("/metrics", tags=["Monitoring"], include_in_schema=False)
async def metrics():
    """Prometheus metrics endpoint"""
    if not settings.ENABLE_METRICS:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=error_body("not_found", "Metrics disabled"),
        )
    return Response(content=get_metrics(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "backend.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info",
    )
