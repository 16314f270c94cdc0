"""Logging, metrics, tracing and error tracking for the analytics service.

Metric names carry an ``analytics_`` prefix so both services can share one
Prometheus scrape config without clashing.
"""

import logging
import time
import uuid
from contextvars import ContextVar

import sentry_sdk
import structlog
from fastapi import FastAPI, Request, Response
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from tinylink_analytics.core.config import get_settings

settings = get_settings()

SERVICE = "tinylink-analytics"

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

REQUEST_COUNT = Counter(
    "analytics_http_requests_total",
    "HTTP requests to the analytics service",
    ["method", "endpoint", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "analytics_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

CLICK_EVENTS_RECEIVED = Counter(
    "analytics_click_events_received_total",
    "Stream entries delivered to the consumer",
)
CLICK_EVENTS_PROCESSED = Counter(
    "analytics_click_events_processed_total",
    "Click events persisted and acknowledged",
)
CLICK_EVENTS_FAILED = Counter(
    "analytics_click_events_failed_total",
    "Click events that failed processing",
    ["reason"],  # invalid_payload, link_not_found, transient
)
CLICK_EVENTS_DEAD_LETTERED = Counter(
    "analytics_click_events_dead_lettered_total",
    "Entries moved to the dead-letter stream after too many deliveries",
)
CLICK_EVENTS_REDELIVERED = Counter(
    "analytics_click_events_redelivered_total",
    "Pending entries reclaimed for another delivery attempt",
)
CLICK_PROCESSING_LATENCY = Histogram(
    "analytics_click_processing_duration_seconds",
    "Time from reading a click event to acknowledging it",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)
CONSUMER_RUNNING = Gauge(
    "analytics_consumer_running",
    "1 while the click event consumer loop is running",
)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a request ID to the log context, then logs and counts the request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = request_id_ctx.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        duration = time.perf_counter() - start_time
        response.headers["X-Request-ID"] = request_id

        endpoint = request.url.path
        if endpoint.startswith("/analytics/links/"):
            endpoint = "/analytics/links/{link_id}/summary"

        structlog.get_logger().info(
            "Request handled",
            method=request.method,
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(method=request.method, endpoint=endpoint).observe(duration)
        return response


def configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if settings.debug else logging.INFO,
    )


def setup_tracing(app: FastAPI) -> None:
    if not settings.otlp_endpoint:
        return

    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: SERVICE}))
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=True))
    )
    trace.set_tracer_provider(provider)
    FastAPIInstrumentor.instrument_app(app, excluded_urls="health,metrics")
    structlog.get_logger().info("Tracing enabled", otlp_endpoint=settings.otlp_endpoint)


def setup_error_tracking() -> None:
    if not settings.sentry_dsn:
        return

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment="development" if settings.debug else "production",
        release=f"{SERVICE}@{settings.app_version}",
        traces_sample_rate=0.1,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        # Stored clicks carry client IPs
        send_default_pii=False,
    )
    structlog.get_logger().info("Sentry enabled")


def setup_observability(app: FastAPI) -> None:
    """Configure logging, error tracking and tracing, and mount ``/metrics``."""
    configure_structlog()
    setup_error_tracking()
    setup_tracing(app)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def record_click_received() -> None:
    CLICK_EVENTS_RECEIVED.inc()


def record_click_processed(duration: float) -> None:
    CLICK_EVENTS_PROCESSED.inc()
    CLICK_PROCESSING_LATENCY.observe(duration)


def record_click_failed(reason: str) -> None:
    CLICK_EVENTS_FAILED.labels(reason=reason).inc()


def record_click_dead_lettered() -> None:
    CLICK_EVENTS_DEAD_LETTERED.inc()


def record_click_redelivered() -> None:
    CLICK_EVENTS_REDELIVERED.inc()


def set_consumer_running(running: bool) -> None:
    CONSUMER_RUNNING.set(1 if running else 0)
