"""Logging, metrics, tracing and error tracking for the API service."""

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
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from tinylink_api.core.config import get_settings

settings = get_settings()

SERVICE = "tinylink-api"
REQUEST_ID_HEADER = "X-Request-ID"

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# HTTP
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
REDIRECT_COUNT = Counter(
    "redirects_total",
    "Redirect attempts by response status",
    ["status_code"],
)

# Links
LINK_OPERATIONS = Counter(
    "link_operations_total",
    "Link lifecycle operations",
    ["operation"],  # create, reuse, delete
)
SHORT_CODE_COLLISIONS = Counter(
    "short_code_collisions_total",
    "Generated short codes that collided with a different URL",
)
COLLISION_EXHAUSTED = Counter(
    "short_code_collision_exhausted_total",
    "Link creations that ran out of collision retries",
)

# Click events (producer side)
CLICK_EVENTS_PUBLISHED = Counter(
    "click_events_published_total",
    "Click events written to their partition stream",
)
CLICK_EVENTS_PUBLISH_FAILED = Counter(
    "click_events_publish_failed_total",
    "Click events whose partition write failed",
)
CLICK_EVENTS_DEAD_LETTERED = Counter(
    "click_events_dead_lettered_total",
    "Click events diverted to the dead-letter stream by the producer",
)
CLICK_EVENTS_DROPPED = Counter(
    "click_events_dropped_total",
    "Click events lost because the dead-letter write also failed",
)
CLICK_PUBLISH_LATENCY = Histogram(
    "click_event_publish_duration_seconds",
    "Time to write a click event to its partition stream",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)


def endpoint_label(path: str) -> str:
    """Collapse path parameters to keep metric label cardinality low."""
    if path.startswith("/api/v1/workspaces/"):
        if "/links/" in path:
            return "/api/v1/workspaces/{workspace_id}/links/{ref}"
        return "/api/v1/workspaces/{workspace_id}/links"
    if path.startswith("/w/"):
        return "/w/{workspace_id}/{short_code}"
    if path.startswith("/api/") or path in ("/", "/metrics"):
        return path
    return "/{short_code}"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags each request with an ID, logs it once with its timing, and counts it.

    The ID comes from the X-Request-ID header when the caller sends one, is
    bound to the structlog context for every log line of the request, and is
    echoed back in the response.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_ctx.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        duration = time.perf_counter() - start_time

        response.headers[REQUEST_ID_HEADER] = request_id
        structlog.get_logger().info(
            "Request handled",
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
            client_ip=request.client.host if request.client else None,
        )

        endpoint = endpoint_label(request.url.path)
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(method=request.method, endpoint=endpoint).observe(duration)
        return response


def configure_structlog() -> None:
    """JSON logs in production, readable console output in debug mode."""
    renderer = (
        structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
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
    """Export spans over OTLP gRPC when an endpoint is configured."""
    logger = structlog.get_logger()
    if not settings.otlp_endpoint:
        logger.info("Tracing disabled, no OTLP endpoint configured")
        return

    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: SERVICE}))
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=True))
    )
    trace.set_tracer_provider(provider)
    FastAPIInstrumentor.instrument_app(app, excluded_urls="metrics")
    logger.info("Tracing enabled", otlp_endpoint=settings.otlp_endpoint)


def setup_error_tracking() -> None:
    logger = structlog.get_logger()
    if not settings.sentry_dsn:
        logger.info("Sentry disabled, no DSN configured")
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
        # Click events carry client IPs
        send_default_pii=False,
    )
    logger.info("Sentry enabled")


def setup_observability(app: FastAPI) -> None:
    """Configure logging, error tracking and tracing, and mount ``/metrics``."""
    configure_structlog()
    setup_error_tracking()
    setup_tracing(app)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def record_redirect(status_code: int) -> None:
    REDIRECT_COUNT.labels(status_code=status_code).inc()


def record_link_operation(operation: str) -> None:
    LINK_OPERATIONS.labels(operation=operation).inc()


def record_short_code_collision() -> None:
    SHORT_CODE_COLLISIONS.inc()


def record_collision_exhausted() -> None:
    COLLISION_EXHAUSTED.inc()


def record_click_published(duration: float) -> None:
    CLICK_EVENTS_PUBLISHED.inc()
    CLICK_PUBLISH_LATENCY.observe(duration)


def record_click_publish_failed() -> None:
    CLICK_EVENTS_PUBLISH_FAILED.inc()


def record_click_dead_lettered() -> None:
    CLICK_EVENTS_DEAD_LETTERED.inc()


def record_click_dropped() -> None:
    CLICK_EVENTS_DROPPED.inc()
