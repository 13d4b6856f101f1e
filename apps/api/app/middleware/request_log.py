"""Request logging middleware.

Binds a request id into structlog's context for the lifetime of the request
and writes one ``http.request`` event per response.
"""

import time
import uuid

import structlog
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Receive, Scope, Send

logger = structlog.get_logger()

LOG_EXEMPT_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})


class RequestLogMiddleware:
    """Pure ASGI middleware: request id propagation plus access logging."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        request_id = headers.get(b"x-request-id", b"").decode() or uuid.uuid4().hex
        path = scope.get("path", "")
        started = time.perf_counter()
        response_status = 500

        async def capture_send(message: dict) -> None:
            nonlocal response_status
            if message["type"] == "http.response.start":
                response_status = message.get("status", 0)
                MutableHeaders(scope=message)["x-request-id"] = request_id
            await send(message)

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                await self.app(scope, receive, capture_send)
            finally:
                if path not in LOG_EXEMPT_PATHS:
                    logger.info(
                        "http.request",
                        method=scope.get("method"),
                        path=path,
                        status=response_status,
                        duration_ms=round((time.perf_counter() - started) * 1000, 1),
                    )
