"""HTTP middleware and pipeline metrics."""

from jobscout.middleware.metrics import (
    PrometheusMiddleware,
    record_cache_hit,
    record_cache_miss,
    record_llm_latency,
    record_match_explanation,
    record_source_request,
    setup_metrics,
    update_matches_in_flight,
)

__all__ = [
    "PrometheusMiddleware",
    "record_cache_hit",
    "record_cache_miss",
    "record_llm_latency",
    "record_match_explanation",
    "record_source_request",
    "setup_metrics",
    "update_matches_in_flight",
]
