"""Request ID middleware for correlation and tracing.

Pure ASGI middleware that extracts or generates the ``X-Request-ID`` of
each request, keeps it in a context variable and binds it to the
structlog context for the lifetime of the request.
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

import structlog

from tenantforge.foundation.contributions import MiddlewareContribution
from tenantforge.infra.fastapi.middleware._headers import extract_header

if TYPE_CHECKING:
    from collections.abc import Callable

REQUEST_ID_HEADER = "X-Request-ID"

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


def get_request_id() -> str:
    """Current request ID, or an empty string outside a request."""
    return request_id_ctx.get()


def _is_valid_uuid(value: str | None) -> bool:
    if not value:
        return False
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError):
        return False
    return True


class RequestIdMiddleware:
    """Pure ASGI middleware for X-Request-ID extraction and propagation.

    Invalid or missing client IDs are replaced with a fresh UUID4 instead
    of rejecting the request. The ID is echoed in the response headers.

    Example:
        >>> app = FastAPI()
        >>> app.add_middleware(RequestIdMiddleware)
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

        request_id = extract_header(scope.get("headers", []), b"x-request-id")
        if not _is_valid_uuid(request_id):
            request_id = str(uuid.uuid4())

        token = request_id_ctx.set(request_id)
        structlog.contextvars.bind_contextvars(request_id=request_id)

        async def send_with_request_id(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((b"x-request-id", request_id.encode("latin-1")))
                message = {**message, "headers": headers}
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            request_id_ctx.reset(token)
            structlog.contextvars.unbind_contextvars("request_id")


contribution = MiddlewareContribution(
    middleware_class=RequestIdMiddleware,
    priority=10,  # Outermost band (0-99)
)
