"""
Request metrics middleware.

Every request except the Prometheus scrape itself is timed and counted.
"""

import time
from typing import Callable, FrozenSet

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

UNTRACKED_PATHS: FrozenSet[str] = frozenset({"/metrics"})


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Report method, route template, status and latency for each request.

    Routes are labelled by template (``/api/sheets/{sheet_id}``) so sheet and
    problem ids stay out of the label set. Requests that raise before a
    response exists are recorded as 500.
    """

    def __init__(self, app, track_func: Callable, skip_paths: FrozenSet[str] = UNTRACKED_PATHS):
        super().__init__(app)
        self.track_func = track_func
        self.skip_paths = skip_paths

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.skip_paths:
            return await call_next(request)

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            route = request.scope.get("route")
            self.track_func(
                method=request.method,
                endpoint=getattr(route, "path", None) or request.url.path,
                status_code=status_code,
                duration=time.perf_counter() - started,
            )
