"""
Custom middleware for the readiness check service.
"""

import time
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger()

CORRELATION_HEADER = "X-Request-ID"


def get_correlation_id(request: Request) -> str:
    """Correlation ID of the current request, generated when the client sent none."""
    return request.headers.get(CORRELATION_HEADER) or f"req_{int(time.time() * 1000)}"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for request/response logging with correlation ID support.
    """

    def __init__(self, app, exclude_paths: Optional[set] = None):
        super().__init__(app)
        self.exclude_paths = exclude_paths or {"/healthz", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Skip logging for health checks and docs
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        correlation_id = get_correlation_id(request)

        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

        # Query strings and bodies may carry emails or codes, so only the path is logged
        start_time = time.time()
        logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
            user_agent=request.headers.get("User-Agent", "unknown"),
            correlation_id=correlation_id
        )

        try:
            response = await call_next(request)

            process_time = time.time() - start_time
            logger.info(
                "Request completed",
                status_code=response.status_code,
                process_time_ms=round(process_time * 1000, 2),
                correlation_id=correlation_id
            )

            response.headers[CORRELATION_HEADER] = correlation_id
            return response

        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                "Request failed",
                error_type=type(e).__name__,
                process_time_ms=round(process_time * 1000, 2),
                correlation_id=correlation_id
            )

            return JSONResponse(
                status_code=500,
                content={
                    "ok": False,
                    "error": "InternalServerError",
                    "message": "An unexpected error occurred",
                    "correlation_id": correlation_id,
                    "timestamp": datetime.utcnow().isoformat()
                },
                headers={CORRELATION_HEADER: correlation_id}
            )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to responses.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers.update({
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
            "Referrer-Policy": "strict-origin-when-cross-origin",
            "Cache-Control": "no-store"
        })

        return response


class RequestStats:
    """Process-wide request counters behind the /metrics endpoint."""

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.request_count = 0
        self.error_count = 0
        self.total_processing_time = 0.0

    def observe(self, processing_time: float, failed: bool) -> None:
        self.request_count += 1
        self.total_processing_time += processing_time
        if failed:
            self.error_count += 1

    def snapshot(self) -> Dict[str, Any]:
        avg_processing_time = (
            self.total_processing_time / self.request_count
            if self.request_count > 0 else 0
        )

        return {
            "total_requests": self.request_count,
            "error_count": self.error_count,
            "error_rate": self.error_count / self.request_count if self.request_count > 0 else 0,
            "avg_processing_time_ms": round(avg_processing_time * 1000, 2)
        }


# Global request stats, shared by every MetricsMiddleware instance
request_stats = RequestStats()


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Middleware to collect basic metrics about requests.
    """

    def __init__(self, app, stats: Optional[RequestStats] = None):
        super().__init__(app)
        self.stats = stats or request_stats

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception:
            self.stats.observe(time.time() - start_time, failed=True)
            raise

        self.stats.observe(time.time() - start_time, failed=response.status_code >= 400)
        return response


def get_metrics() -> Dict[str, Any]:
    """Get current application metrics."""
    return request_stats.snapshot()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window rate limiting per client IP (in-memory, single process).

    Only paths listed in `paths` are limited; everything else passes through.
    """

    def __init__(
        self,
        app,
        max_requests: int = 10,
        window_seconds: int = 60,
        paths: Iterable[str] = ("/api/auth/request",)
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.paths = set(paths)
        self.requests: Dict[str, List[float]] = {}

    def _prune(self, current_time: float) -> None:
        """Drop timestamps outside the window and clients left with none."""
        for client_ip in list(self.requests):
            recent = [
                req_time for req_time in self.requests[client_ip]
                if current_time - req_time < self.window_seconds
            ]
            if recent:
                self.requests[client_ip] = recent
            else:
                del self.requests[client_ip]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path not in self.paths:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        current_time = time.time()

        self._prune(current_time)
        recent = self.requests.get(client_ip, [])

        if len(recent) >= self.max_requests:
            logger.warning(
                "Rate limit exceeded",
                client_ip=client_ip,
                path=request.url.path,
                request_count=len(recent),
                max_requests=self.max_requests
            )

            return JSONResponse(
                status_code=429,
                content={
                    "ok": False,
                    "error": "RateLimitExceeded",
                    "message": f"Too many requests. Limit: {self.max_requests} per {self.window_seconds} seconds",
                    "correlation_id": get_correlation_id(request),
                    "timestamp": datetime.utcnow().isoformat()
                }
            )

        self.requests.setdefault(client_ip, []).append(current_time)

        return await call_next(request)
