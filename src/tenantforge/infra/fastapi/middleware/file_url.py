"""Route middleware exposing the tenant's public file URL root.

Runs after tenant identification (it sits behind the identification
middleware in the kernel priority list) and stores the URL root under
which the active tenant's uploaded files are served in
``request.state.file_url_root``. Outside tenant scope the central root
is used.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from tenantforge.infra.fastapi.middleware._headers import request_host

if TYPE_CHECKING:
    from collections.abc import Callable

FILE_URL_PREFIX = "/storage"


class TenantFileUrlMiddleware:
    def __init__(self, app: Any, prefix: str = FILE_URL_PREFIX) -> None:
        self.app = app
        self.prefix = prefix.rstrip("/")

    async def __call__(
        self,
        scope: dict[str, Any],
        receive: Callable[..., Any],
        send: Callable[..., Any],
    ) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        tenancy = state.get("tenancy")
        root = f"{scope.get('scheme', 'http')}://{request_host(scope)}{self.prefix}"
        if tenancy is not None and tenancy.initialized:
            root = f"{root}/{tenancy.bindings.storage_root.name}"
            tenancy.bindings.extra["file_url_root"] = root
        state["file_url_root"] = root
        await self.app(scope, receive, send)


