"""
Prometheus metrics middleware for the chat backend API.

Exposes /metrics endpoint with request counters, latency histograms,
and turn metrics.
"""

import logging
import time

from fastapi import Request, Response
from prometheus_client import (
    Counter, Histogram, Gauge,
    generate_latest, CONTENT_TYPE_LATEST,
)
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Request metrics
REQUEST_COUNT = Counter(
    "chat_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "chat_http_request_duration_seconds",
    "HTTP request latency (time to response headers)",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
ACTIVE_REQUESTS = Gauge(
    "chat_http_active_requests",
    "Currently active HTTP requests",
)

# Turn metrics
TURN_COUNT = Counter(
    "chat_turns_total",
    "Conversational turns by outcome",
    ["outcome"],
)
STREAM_FRAGMENTS = Counter(
    "chat_stream_fragments_total",
    "Text fragments relayed to clients",
)
GENERATION_LATENCY = Histogram(
    "chat_generation_duration_seconds",
    "Turn duration from validation to commit",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)
ACTIVE_SESSIONS = Gauge(
    "chat_active_sessions",
    "Session bindings held in memory",
)


def record_turn(outcome: str, fragments: int = 0, duration_ms: float = 0.0):
    """Record a finished turn."""
    TURN_COUNT.labels(outcome=outcome).inc()
    if fragments:
        STREAM_FRAGMENTS.inc(fragments)
    if duration_ms:
        GENERATION_LATENCY.observe(duration_ms / 1000)


def record_active_sessions(count: int):
    ACTIVE_SESSIONS.set(count)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware that records HTTP request metrics."""

    async def dispatch(self, request: Request, call_next):
        ACTIVE_REQUESTS.inc()
        start = time.time()

        try:
            response = await call_next(request)
        except Exception:
            ACTIVE_REQUESTS.dec()
            raise

        duration = time.time() - start
        endpoint = request.url.path

        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)
        ACTIVE_REQUESTS.dec()

        return response


async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
