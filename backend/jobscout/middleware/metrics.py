"""
Prometheus instrumentation for the search API.

HTTP traffic is measured by ``PrometheusMiddleware``. The search pipeline
reports through the ``record_*`` helpers below so services never touch
metric objects directly:

- cache lookups per namespace
- job source calls by outcome (ok, error, rate_limited, cooling_down)
- LLM completion latency per agent
- background match explanations (finished and in flight)

``setup_metrics(app)`` installs the middleware and exposes ``GET /metrics``.
"""

import logging
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

logger = logging.getLogger(__name__)

METRICS_PATH = "/metrics"

# HTTP

HTTP_LATENCY = Histogram(
    "jobscout_http_request_seconds",
    "Time spent serving HTTP requests",
    ["method", "route", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 15.0, 30.0],
)

HTTP_REQUESTS = Counter(
    "jobscout_http_requests_total",
    "HTTP requests served",
    ["method", "route", "status"],
)

HTTP_IN_PROGRESS = Gauge(
    "jobscout_http_requests_in_progress",
    "HTTP requests currently being served",
    ["method", "route"],
)

# Pipeline

CACHE_LOOKUPS = Counter(
    "jobscout_cache_lookups_total",
    "Cache reads by namespace and result",
    ["namespace", "result"],
)

SOURCE_REQUESTS = Counter(
    "jobscout_source_requests_total",
    "Calls made to external job sources",
    ["source", "outcome"],
)

LLM_LATENCY = Histogram(
    "jobscout_llm_completion_seconds",
    "LLM completion latency",
    ["agent"],
    buckets=[0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

MATCH_EXPLANATIONS = Counter(
    "jobscout_match_explanations_total",
    "Finished background match explanations",
    ["outcome"],
)

MATCHES_IN_FLIGHT = Gauge(
    "jobscout_match_explanations_in_flight",
    "Match explanations running in this process",
)


def route_template(request: Request) -> str:
    """Route path pattern for a request, so ids never become label values."""
    for route in request.app.routes:
        matched, _ = route.matches(request.scope)
        if matched == Match.FULL:
            return getattr(route, "path", request.url.path)
    return "unmatched"


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Times every request except scrapes of the metrics endpoint itself."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == METRICS_PATH:
            return await call_next(request)

        labels = {"method": request.method, "route": route_template(request)}
        in_progress = HTTP_IN_PROGRESS.labels(**labels)
        in_progress.inc()
        started = time.perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        except Exception:
            logger.exception("Unhandled error serving %s %s", request.method, request.url.path)
            raise
        finally:
            HTTP_LATENCY.labels(status=status, **labels).observe(time.perf_counter() - started)
            HTTP_REQUESTS.labels(status=status, **labels).inc()
            in_progress.dec()


async def metrics_endpoint(request: Request) -> Response:
    return PlainTextResponse(generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)


def setup_metrics(app: FastAPI) -> None:
    app.add_middleware(PrometheusMiddleware)
    app.add_route(METRICS_PATH, metrics_endpoint, methods=["GET"])
    logger.info("Prometheus metrics exposed at %s", METRICS_PATH)


def record_cache_hit(namespace: str) -> None:
    CACHE_LOOKUPS.labels(namespace=namespace, result="hit").inc()


def record_cache_miss(namespace: str) -> None:
    CACHE_LOOKUPS.labels(namespace=namespace, result="miss").inc()


def record_source_request(source: str, outcome: str) -> None:
    SOURCE_REQUESTS.labels(source=source, outcome=outcome).inc()


def record_llm_latency(agent: str, duration: float) -> None:
    LLM_LATENCY.labels(agent=agent).observe(duration)


def record_match_explanation(outcome: str) -> None:
    """Count a finished explanation; outcome is ``ready`` or ``failed``."""
    MATCH_EXPLANATIONS.labels(outcome=outcome).inc()


def update_matches_in_flight(count: int) -> None:
    MATCHES_IN_FLIGHT.set(count)
