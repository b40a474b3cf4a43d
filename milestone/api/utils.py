"""Shared utilities for API route modules."""

from __future__ import annotations

import json

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from milestone.core.order_stats import HistogramBucket
from milestone.core.utils import InputError


def parse_histogram_buckets(param: str | None) -> list[HistogramBucket] | None:
    """Parse a JSON list of {key, min, max} objects, or None if the param is empty."""
    if not param:
        return None
    try:
        raw = json.loads(param)
    except json.JSONDecodeError as e:
        raise InputError(f"buckets must be a JSON list: {e.msg}") from None
    if not isinstance(raw, list):
        raise InputError("buckets must be a JSON list of {key, min, max} objects")
    return [HistogramBucket.from_dict(b) for b in raw]


# Reachable without a key: health probes and the API docs, mounted or not.
OPEN_PATHS = frozenset(
    prefix + path
    for prefix in ("", "/api")
    for path in ("/status", "/swagger", "/openapi.json")
)


class APIKeyAuthMiddleware(BaseHTTPMiddleware):
    """Rejects report requests that lack the shared dashboard key.

    CORS preflights and OPEN_PATHS pass through so load balancers and the
    docs page keep working with auth on.
    """

    def __init__(self, app, api_key: str, header_name: str = "X-API-Key"):
        super().__init__(app)
        self.api_key = api_key
        self.header_name = header_name

    def _exempt(self, request: Request) -> bool:
        return request.method == "OPTIONS" or request.url.path.rstrip("/") in OPEN_PATHS

    async def dispatch(self, request: Request, call_next):
        if self._exempt(request) or request.headers.get(self.header_name) == self.api_key:
            return await call_next(request)
        return JSONResponse(status_code=401, content={"detail": "Invalid or missing API key"})
