"""
Prometheus Metrics - Application Monitoring

Exposes metrics at /metrics endpoint for Prometheus scraping.
"""
import time

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, Info, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response as StarletteResponse

from battery_monitor.core.config import settings

# === Application Info ===
APP_INFO = Info("battery_monitor_app", "Battery monitor application info")
APP_INFO.info({
    "version": settings.app_version,
    "environment": settings.environment,
})

# === Request Metrics ===
REQUEST_COUNT = Counter(
    "battery_monitor_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

REQUEST_LATENCY = Histogram(
    "battery_monitor_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# === Realtime Metrics ===
REALTIME_SUBSCRIBERS = Gauge(
    "battery_monitor_realtime_subscribers",
    "Currently registered realtime subscribers",
)

EVENTS_PUBLISHED = Counter(
    "battery_monitor_events_published_total",
    "Events published to subscribers",
    ["event_type"],
)

DELIVERY_FAILURES = Counter(
    "battery_monitor_event_delivery_failures_total",
    "Subscriber sends that failed and dropped the subscriber",
)

# === Simulator Metrics ===
SIMULATOR_TICKS = Counter(
    "battery_monitor_simulator_ticks_total",
    "Simulator ticks by kind and outcome",
    ["kind", "outcome"],
)

RECOMMENDATIONS_CREATED = Counter(
    "battery_monitor_recommendations_created_total",
    "Total recommendations created",
    ["type"],
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect request metrics."""

    async def dispatch(self, request: Request, call_next) -> StarletteResponse:
        # Skip metrics endpoint and long-lived streams
        if request.url.path == "/metrics" or request.url.path.endswith("/realtime/stream"):
            return await call_next(request)

        endpoint = request.url.path
        method = request.method

        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        REQUEST_COUNT.labels(
            method=method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()

        REQUEST_LATENCY.labels(
            method=method,
            endpoint=endpoint,
        ).observe(duration)

        return response


# === Metrics Router ===
router = APIRouter(tags=["Health"])


@router.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


# === Helper Functions ===

def record_event_published(event_type: str) -> None:
    EVENTS_PUBLISHED.labels(event_type=event_type).inc()


def record_delivery_failure() -> None:
    DELIVERY_FAILURES.inc()


def set_subscriber_count(count: int) -> None:
    REALTIME_SUBSCRIBERS.set(count)


def record_tick(kind: str, outcome: str) -> None:
    """Record a simulator tick (kind: record | bulk, outcome: ok | skipped | failed)."""
    SIMULATOR_TICKS.labels(kind=kind, outcome=outcome).inc()


def record_recommendation(recommendation_type: str) -> None:
    RECOMMENDATIONS_CREATED.labels(type=recommendation_type).inc()
