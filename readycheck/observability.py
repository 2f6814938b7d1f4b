"""
Observability and monitoring setup for the readiness check service.
"""

import asyncio
from functools import wraps
from typing import Any, Callable, Dict, Optional

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

logger = structlog.get_logger()

# Global tracer and meter
tracer: Optional[trace.Tracer] = None
meter: Optional[metrics.Meter] = None

# Metrics instruments
credential_request_counter: Optional[metrics.Counter] = None
credential_verification_counter: Optional[metrics.Counter] = None
readiness_check_counter: Optional[metrics.Counter] = None
readiness_risk_histogram: Optional[metrics.Histogram] = None


def setup_observability(
    service_name: str = "readycheck",
    service_version: str = "1.0.0",
    otlp_endpoint: Optional[str] = None,
    enable_console_export: bool = False
) -> None:
    """
    Set up OpenTelemetry tracing and metrics.

    Args:
        service_name: Name of the service for tracing
        service_version: Version of the service
        otlp_endpoint: OTLP endpoint for trace/metric export
        enable_console_export: Whether to enable console export for development
    """
    global tracer, meter
    global credential_request_counter, credential_verification_counter
    global readiness_check_counter, readiness_risk_histogram

    logger.info(
        "Setting up observability",
        service_name=service_name,
        service_version=service_version,
        otlp_endpoint=otlp_endpoint
    )

    resource = Resource.create({
        "service.name": service_name,
        "service.version": service_version,
    })

    trace_provider = TracerProvider(resource=resource)
    if otlp_endpoint:
        trace_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
    if enable_console_export:
        trace_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(trace_provider)
    tracer = trace.get_tracer(__name__)

    metric_readers = []
    if otlp_endpoint:
        metric_readers.append(
            PeriodicExportingMetricReader(
                exporter=OTLPMetricExporter(endpoint=otlp_endpoint),
                export_interval_millis=30000
            )
        )
    if enable_console_export:
        metric_readers.append(
            PeriodicExportingMetricReader(
                exporter=ConsoleMetricExporter(),
                export_interval_millis=60000
            )
        )

    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=metric_readers))
    meter = metrics.get_meter(__name__)

    credential_request_counter = meter.create_counter(
        name="credential_requests_total",
        description="Sign-in codes requested, by outcome",
        unit="1"
    )

    credential_verification_counter = meter.create_counter(
        name="credential_verifications_total",
        description="Sign-in code verifications, by outcome",
        unit="1"
    )

    readiness_check_counter = meter.create_counter(
        name="readiness_checks_total",
        description="Completed readiness checks, by flag",
        unit="1"
    )

    readiness_risk_histogram = meter.create_histogram(
        name="readiness_risk",
        description="Aggregated risk of completed checks",
        unit="1"
    )

    logger.info("Observability setup completed")


def instrument_fastapi_app(app) -> None:
    """
    Instrument FastAPI application with OpenTelemetry.

    Args:
        app: FastAPI application instance
    """
    if tracer is None:
        logger.warning("Tracer not initialized, call setup_observability() first")
        return

    FastAPIInstrumentor.instrument_app(app)
    HTTPXClientInstrumentor().instrument()
    LoggingInstrumentor().instrument(set_logging_format=True)

    logger.info("FastAPI application instrumented with OpenTelemetry")


def trace_function(operation_name: Optional[str] = None):
    """
    Decorator to trace function execution.

    Args:
        operation_name: Optional custom operation name for the span
    """
    def decorator(func: Callable) -> Callable:
        span_name = operation_name or f"{func.__module__}.{func.__name__}"

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            if tracer is None:
                return await func(*args, **kwargs)

            with tracer.start_as_current_span(span_name) as span:
                span.set_attribute("function.name", func.__name__)
                try:
                    result = await func(*args, **kwargs)
                    span.set_attribute("success", True)
                    return result
                except Exception as e:
                    span.record_exception(e)
                    span.set_attribute("success", False)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            if tracer is None:
                return func(*args, **kwargs)

            with tracer.start_as_current_span(span_name) as span:
                span.set_attribute("function.name", func.__name__)
                try:
                    result = func(*args, **kwargs)
                    span.set_attribute("success", True)
                    return result
                except Exception as e:
                    span.record_exception(e)
                    span.set_attribute("success", False)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def record_credential_request(outcome: str) -> None:
    """
    Record a sign-in code request.

    Args:
        outcome: "sent", "invalid_email", "delivery_failed" or "store_failed"
    """
    if credential_request_counter is None:
        return
    credential_request_counter.add(1, {"outcome": outcome})


def record_credential_verification(outcome: str) -> None:
    """
    Record a sign-in code verification.

    Args:
        outcome: "verified" or the error class name, e.g. "Expired"
    """
    if credential_verification_counter is None:
        return
    credential_verification_counter.add(1, {"outcome": outcome})


def record_readiness_check(readiness: str, risk: float, baseline_pending: bool) -> None:
    """
    Record a completed readiness check.

    Args:
        readiness: GREEN, YELLOW or RED
        risk: Aggregated risk of the check
        baseline_pending: Whether the baseline was still being established
    """
    if readiness_check_counter is None or readiness_risk_histogram is None:
        return

    attributes = {
        "readiness": readiness,
        "baseline_pending": str(baseline_pending).lower()
    }
    readiness_check_counter.add(1, attributes)
    readiness_risk_histogram.record(risk, attributes)


def get_trace_context() -> Dict[str, Any]:
    """
    Get current trace context information.

    Returns:
        Dict with trace ID and span ID if available
    """
    current_span = trace.get_current_span()
    if current_span is None or not current_span.is_recording():
        return {}

    span_context = current_span.get_span_context()
    return {
        "trace_id": f"{span_context.trace_id:032x}",
        "span_id": f"{span_context.span_id:016x}",
    }


class TracingContextMiddleware:
    """
    ASGI middleware that starts each request's structured-log context.

    It must sit outside the logging middleware: it clears whatever the
    previous request left behind and binds the active trace context, and
    inner middleware only add to it.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            structlog.contextvars.clear_contextvars()
            trace_context = get_trace_context()
            if trace_context:
                structlog.contextvars.bind_contextvars(**trace_context)

        await self.app(scope, receive, send)
