"""Route middleware binding request details to the log context.

Registered under the ``request_context`` alias and used by the ``web``
middleware group, so every central, universal and tenant route logs
with its host, method and correlation id.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

from tenantforge.infra.fastapi.middleware._headers import extract_header, request_host

if TYPE_CHECKING:
    from collections.abc import Callable

CORRELATION_ID_HEADER = "X-Correlation-ID"

_BOUND_KEYS = ("host", "method", "path", "correlation_id")


class RequestContextMiddleware:
    """Pure ASGI middleware populating ``request.state`` and structlog context.

    ``X-Correlation-ID`` is generated when absent and echoed back in the
    response headers.
    """

    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(
        self,
        scope: dict[str, Any],
        receive: Callable[..., Any],
        send: Callable[..., Any],
    ) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        correlation_id = (
            extract_header(scope.get("headers", []), b"x-correlation-id") or str(uuid4())
        )
        state = scope.setdefault("state", {})
        state["correlation_id"] = correlation_id

        structlog.contextvars.bind_contextvars(
            host=request_host(scope),
            method=scope.get("method", ""),
            path=scope.get("path", ""),
            correlation_id=correlation_id,
        )

        async def send_with_correlation_id(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                resp_headers = list(message.get("headers", []))
                resp_headers.append((b"x-correlation-id", correlation_id.encode("latin-1")))
                message = {**message, "headers": resp_headers}
            await send(message)

        try:
            await self.app(scope, receive, send_with_correlation_id)
        finally:
            structlog.contextvars.unbind_contextvars(*_BOUND_KEYS)
