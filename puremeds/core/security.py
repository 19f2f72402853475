from __future__ import annotations

import logging
import time
import uuid
from collections import defaultdict, deque
from threading import Lock

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Match

from puremeds.core.auth import resolve_user_from_headers
from puremeds.core.config import settings

logger = logging.getLogger(__name__)

# Consumers scan boxes without an account, so verification stays public.
PUBLIC_WRITE_PREFIXES = ("/api/v1/verify/",)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s -> %s in %.1fms [%s]",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response


class InMemoryRateLimiterMiddleware(BaseHTTPMiddleware):
    """Sliding-window limiter per client; both verification endpoints share one bucket."""

    def __init__(self, app):
        super().__init__(app)
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._lock = Lock()
        self._next_sweep = 0.0

    @staticmethod
    def _route_template(request: Request) -> str:
        for route in request.app.router.routes:
            match, _ = route.matches(request.scope)
            if match == Match.FULL:
                return route.path
        return "unmatched"

    def _bucket(self, request: Request) -> str | None:
        path = request.url.path
        if not path.startswith("/api/"):
            return None
        client = request.client.host if request.client else "unknown"
        if path.startswith(PUBLIC_WRITE_PREFIXES):
            return f"{client}:verify"
        return f"{client}:{request.method}:{self._route_template(request)}"

    def _sweep(self, cutoff: float) -> None:
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] < cutoff]
        for key in stale:
            del self._hits[key]

    def _retry_after(self, bucket: str, now: float) -> int | None:
        window = settings.rate_limit_window_seconds
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now - window)
                self._next_sweep = now + window
            hits = self._hits[bucket]
            while hits and hits[0] < now - window:
                hits.popleft()
            if len(hits) >= settings.rate_limit_requests:
                return max(1, int(window - (now - hits[0])))
            hits.append(now)
        return None

    async def dispatch(self, request: Request, call_next) -> Response:
        bucket = self._bucket(request) if settings.rate_limit_enabled else None
        if bucket is None:
            return await call_next(request)

        retry_after = self._retry_after(bucket, time.monotonic())
        if retry_after is None:
            return await call_next(request)

        logger.warning("Rate limit hit for %s", bucket)
        return JSONResponse(
            status_code=429,
            content={
                "error": {
                    "code": "rate_limit_exceeded",
                    "message": "Too many requests. Retry later.",
                    "retry_after_seconds": retry_after,
                    "request_id": getattr(request.state, "request_id", None),
                }
            },
            headers={"Retry-After": str(retry_after)},
        )


class AuthRequiredMiddleware(BaseHTTPMiddleware):
    def __init__(self, app):
        super().__init__(app)
        self.exempt_paths = {"/health"}
        self.safe_methods = {"GET", "HEAD", "OPTIONS"}

    def _is_exempt(self, request: Request) -> bool:
        path = request.url.path
        if request.method in self.safe_methods or path in self.exempt_paths:
            return True
        if path.startswith(PUBLIC_WRITE_PREFIXES):
            return True
        return not path.startswith("/api/")

    async def dispatch(self, request: Request, call_next) -> Response:
        if not settings.auth_enabled or self._is_exempt(request):
            return await call_next(request)

        user = resolve_user_from_headers(request.headers)
        if not user:
            request_id = getattr(request.state, "request_id", None)
            return JSONResponse(
                status_code=401,
                content={
                    "error": {
                        "code": "authentication_required",
                        "message": "Authentication token required for write operations.",
                        "request_id": request_id,
                    }
                },
            )

        request.state.auth_user = user
        return await call_next(request)
