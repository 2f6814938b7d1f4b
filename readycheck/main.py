"""Main FastAPI application for the readiness check service."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from readycheck.config import settings
from readycheck.api.auth import router as auth_router
from readycheck.api.checks import router as checks_router
from readycheck.api.errors import request_validation_handler, service_error_handler
from readycheck.api.health import router as health_router
from readycheck.exceptions import ReadyCheckError
from readycheck.middleware import (
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    MetricsMiddleware,
    RateLimitMiddleware,
    get_metrics
)
from readycheck.observability import (
    setup_observability,
    instrument_fastapi_app,
    TracingContextMiddleware
)


logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: datetime
    version: str = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting readiness check service",
                port=settings.port,
                host=settings.host,
                environment=settings.environment)

    if settings.resend_api_key is None:
        logger.warning("RESEND_API_KEY not set, sign-in emails cannot be delivered")

    yield

    logger.info("Shutting down readiness check service")


# Create FastAPI application
app = FastAPI(
    title="Readiness Check Service",
    description="Passwordless email sign-in and per-user baseline readiness scoring",
    version="1.0.0",
    lifespan=lifespan
)

# Add middleware (order matters - last added is executed first)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    max_requests=settings.rate_limit_max_requests,
    window_seconds=settings.rate_limit_window_seconds
)
app.add_middleware(TracingContextMiddleware)

# Cookies are only sent cross-origin to the configured web app
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.web_origin],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID"],
)

app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(ReadyCheckError, service_error_handler)

# Instrumentation wraps the middleware stack, so it must run before startup
setup_observability(
    service_name="readycheck",
    service_version="1.0.0",
    otlp_endpoint=settings.otlp_endpoint,
    enable_console_export=settings.enable_console_export
)
instrument_fastapi_app(app)

# Include API routers
app.include_router(auth_router)
app.include_router(checks_router)
app.include_router(health_router)


@app.get("/healthz", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow()
    )


@app.get("/metrics")
async def metrics_endpoint():
    """Application metrics endpoint."""
    return {
        "timestamp": datetime.utcnow().isoformat(),
        "metrics": get_metrics()
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "readycheck.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False
    )
