"""
Prometheus metrics for Practice Service.

Tracks request traffic, progress toggles, cascade cleanups, the problem
cache and the jobs pipeline.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# Request metrics
http_requests_total = Counter(
    "practice_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "practice_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0)
)

# Progress metrics
progress_toggles_total = Counter(
    "practice_progress_toggles_total",
    "Total progress toggles",
    ["kind", "action"]
)

cascade_cleanups_total = Counter(
    "practice_cascade_cleanups_total",
    "Best-effort cascade cleanups",
    ["scope", "status"]
)

# Problem cache metrics
problem_cache_lookups_total = Counter(
    "practice_problem_cache_lookups_total",
    "Problem cache lookups",
    ["result"]
)

problem_cache_size = Gauge(
    "practice_problem_cache_size",
    "Problems held in the in-memory cache"
)

# Jobs metrics
jobs_stored_total = Counter(
    "practice_jobs_stored_total",
    "Job postings written by the jobs pipeline",
    ["result"]
)

jobs_fetch_total = Counter(
    "practice_jobs_fetch_total",
    "Jobs feed fetch attempts",
    ["status"]
)


def track_request_metrics(method: str, endpoint: str, status_code: int, duration: float):
    """Track HTTP request metrics."""
    http_requests_total.labels(method=method, endpoint=endpoint, status=status_code).inc()
    http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)


def track_progress_toggle(kind: str, action: str):
    """Track a completion or revision toggle and what it did to the entry."""
    progress_toggles_total.labels(kind=kind, action=action).inc()


def track_cascade_cleanup(scope: str, success: bool):
    """Track cascade cleanup outcomes."""
    status = "success" if success else "failure"
    cascade_cleanups_total.labels(scope=scope, status=status).inc()


def track_problem_cache(hit: bool, size: int):
    problem_cache_lookups_total.labels(result="hit" if hit else "miss").inc()
    problem_cache_size.set(size)


def track_jobs_stored(inserted: int, updated: int, errors: int):
    """Track results of a jobs store run."""
    jobs_stored_total.labels(result="inserted").inc(inserted)
    jobs_stored_total.labels(result="updated").inc(updated)
    jobs_stored_total.labels(result="error").inc(errors)


def track_jobs_fetch(success: bool):
    status = "success" if success else "failure"
    jobs_fetch_total.labels(status=status).inc()


async def metrics_endpoint():
    """
    Prometheus metrics endpoint.

    Returns:
        Response with Prometheus metrics in text format
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
