"""Telemetry middleware for request instrumentation."""

from __future__ import annotations

import time
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from voice_collect.telemetry import observe_request

UNMATCHED_ROUTE = "unmatched"
_SKIPPED_PATHS = frozenset({"/metrics"})


class TelemetryMiddleware(BaseHTTPMiddleware):
    """Collect request metrics for Prometheus, labelled by route template."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if request.url.path in _SKIPPED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            observe_request(request.method, self._resolve_route(request), 500, time.perf_counter() - start_time)
            raise

        observe_request(
            request.method,
            self._resolve_route(request),
            response.status_code,
            time.perf_counter() - start_time,
        )
        return response

    @staticmethod
    def _resolve_route(request: Request) -> str:
        """Route template once routing ran, so ``/api/sessions/{client_key}`` stays one label."""

        scope_route: Any = request.scope.get("route")
        path = getattr(scope_route, "path", None) if scope_route is not None else None
        return path or UNMATCHED_ROUTE
