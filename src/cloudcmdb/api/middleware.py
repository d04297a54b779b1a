"""Middleware: request timing and body size limits."""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

_BATCH_PATHS = ("/batch",)
_MAX_BODY_BATCH = 5 * 1024 * 1024  # 5 MB for batch relation writes
_MAX_BODY_DEFAULT = 1 * 1024 * 1024  # 1 MB for everything else


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Add X-Request-Duration-Ms header with processing time."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        duration_ms = (time.monotonic() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        return response


class RequestBodyLimitMiddleware(BaseHTTPMiddleware):
    """Reject request bodies that exceed size limits.

    Batch endpoints allow up to 5 MB; all other endpoints are capped at
    1 MB.  The Content-Length header is checked first, then the streamed
    byte count, so an oversized body is never buffered whole.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        limit = _MAX_BODY_BATCH if request.url.path.endswith(_BATCH_PATHS) else _MAX_BODY_DEFAULT
        limit_mb = limit // (1024 * 1024)
        too_large = JSONResponse(
            status_code=413,
            content={
                "error": "invalid",
                "code": 400001,
                "message": f"Request body too large (max {limit_mb} MB)",
            },
        )

        content_length = request.headers.get("content-length")
        if content_length is not None and content_length.isdigit() and int(content_length) > limit:
            return too_large

        if request.method in ("POST", "PUT", "PATCH"):
            chunks: list[bytes] = []
            total = 0
            async for chunk in request.stream():
                total += len(chunk)
                if total > limit:
                    return too_large
                chunks.append(chunk)
            # Cache consumed body so downstream can call request.body()
            request._body = b"".join(chunks)  # noqa: SLF001

        return await call_next(request)
