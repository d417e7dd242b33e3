"""Named route middleware, middleware groups and the priority list.

Routes reference middleware by alias or group name. The kernel resolves
those names into a concrete stack, ordering every middleware that appears
on the priority list by its position there. Each route is wrapped in a
:class:`KernelRoute` that delegates matching to the original route and runs
the stack around its handler. Stacks are built lazily on the first request,
so priority changes made while the application boots apply to routes
declared earlier.

Example:
    >>> kernel = MiddlewareKernel()
    >>> kernel.alias("auth", AuthMiddleware)
    >>> kernel.group("api", ["auth"])
    >>> kernel.include_router(app, router, ["web", "api"])
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any

from starlette.routing import BaseRoute, Match

from tenantforge.infra.fastapi.middleware.request_context import RequestContextMiddleware

if TYPE_CHECKING:
    from fastapi import APIRouter
    from starlette.applications import Starlette
    from starlette.datastructures import URLPath
    from starlette.types import Receive, Scope, Send

logger = logging.getLogger(__name__)

WEB_GROUP = "web"
UNIVERSAL_GROUP = "universal"

DEFAULT_PRIORITY: tuple[str, ...] = ("request_context", "tenant_file_url")


class MiddlewareKernel:
    """Registry of route middleware aliases, groups and their priority.

    Built-in: the ``request_context`` alias, the ``web`` group (containing
    it) and the empty ``universal`` group.
    """

    def __init__(self) -> None:
        self._aliases: dict[str, tuple[type[Any], dict[str, Any]]] = {}
        self._groups: dict[str, list[str]] = {}
        self.priority: list[str] = list(DEFAULT_PRIORITY)
        self._booted_callbacks: list[Callable[[], None]] = []
        self._booted = False
        self.booted_providers: set[str] = set()

        self.alias("request_context", RequestContextMiddleware)
        self.group(WEB_GROUP, ["request_context"])
        self.group(UNIVERSAL_GROUP, [])

    # -- Registration ---------------------------------------------------------

    def alias(self, name: str, middleware_class: type[Any], **kwargs: Any) -> None:
        self._aliases[name] = (middleware_class, kwargs)

    def group(self, name: str, members: Iterable[str]) -> None:
        self._groups[name] = list(members)

    def has_alias(self, name: str) -> bool:
        return name in self._aliases

    def group_members(self, name: str) -> list[str]:
        return list(self._groups[name])

    def prepend_to_priority(self, name: str) -> None:
        """Put ``name`` at the front of the priority list unless it is already listed."""
        if name not in self.priority:
            self.priority.insert(0, name)

    def append_to_priority(self, name: str) -> None:
        if name not in self.priority:
            self.priority.append(name)

    # -- Resolution -----------------------------------------------------------

    def _expand(self, names: Iterable[str], seen_groups: frozenset[str]) -> list[str]:
        expanded: list[str] = []
        for name in names:
            if name in self._groups:
                if name in seen_groups:
                    msg = f"Middleware group {name!r} includes itself"
                    raise ValueError(msg)
                expanded.extend(self._expand(self._groups[name], seen_groups | {name}))
            elif name in self._aliases:
                expanded.append(name)
            else:
                msg = f"Unknown route middleware {name!r}"
                raise LookupError(msg)
        return expanded

    def resolve(self, names: Iterable[str]) -> list[str]:
        """Expand groups, drop duplicates and apply the priority order.

        Middleware on the priority list are sorted among themselves by their
        priority position; the others keep the positions they were given.
        """
        unique = list(dict.fromkeys(self._expand(names, frozenset())))
        rank = {name: index for index, name in enumerate(self.priority)}
        slots = [i for i, name in enumerate(unique) if name in rank]
        ranked = sorted((unique[i] for i in slots), key=rank.__getitem__)
        for slot, name in zip(slots, ranked, strict=True):
            unique[slot] = name
        return unique

    def build(self, names: Iterable[str], app: Any) -> Any:
        """Wrap ``app`` with the resolved stack; the first name is outermost."""
        for name in reversed(self.resolve(names)):
            middleware_class, kwargs = self._aliases[name]
            app = middleware_class(app, **kwargs)
        return app

    # -- Route integration ----------------------------------------------------

    def wrap(self, route: BaseRoute, names: Sequence[str]) -> KernelRoute:
        """Run ``route`` behind the middleware ``names``."""
        if not isinstance(route, BaseRoute):
            msg = f"Route middleware can only wrap routes, got {type(route).__name__}"
            raise TypeError(msg)
        return KernelRoute(self, route, tuple(names))

    def wrap_routes(self, routes: Iterable[BaseRoute], names: Sequence[str]) -> list[KernelRoute]:
        return [self.wrap(route, names) for route in routes]

    def include_router(
        self, app: Starlette, router: APIRouter, names: Sequence[str]
    ) -> list[KernelRoute]:
        """Register every route of ``router`` on ``app`` behind ``names``.

        The router's own route objects are wrapped and appended to the
        application's routing table; the router is not copied.
        """
        wrapped = self.wrap_routes(router.routes, names)
        app.router.routes.extend(wrapped)
        return wrapped

    # -- Boot -----------------------------------------------------------------

    @property
    def is_booted(self) -> bool:
        return self._booted

    def booted(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once the application has booted (immediately if it has)."""
        if self._booted:
            callback()
        else:
            self._booted_callbacks.append(callback)

    def boot(self) -> None:
        if self._booted:
            return
        self._booted = True
        callbacks, self._booted_callbacks = self._booted_callbacks, []
        for callback in callbacks:
            callback()
        logger.info("middleware_kernel_booted", extra={"priority": list(self.priority)})


class KernelRoute(BaseRoute):
    """A route running behind a named middleware stack.

    Matching, URL reversal and the ``path``/``name`` attributes come from
    the wrapped route. The stack sees the scope after the match, so
    ``path_params`` are already populated.
    """

    def __init__(self, kernel: MiddlewareKernel, route: BaseRoute, names: tuple[str, ...]) -> None:
        self.route = route
        self.middleware_names = names
        self.app = _LazyStack(kernel, names, route.handle)

    @property
    def path(self) -> str:
        return str(getattr(self.route, "path", ""))

    @property
    def name(self) -> str | None:
        return getattr(self.route, "name", None)

    @property
    def methods(self) -> set[str] | None:
        return getattr(self.route, "methods", None)

    @property
    def endpoint(self) -> Any:
        return getattr(self.route, "endpoint", None)

    def matches(self, scope: Scope) -> tuple[Match, Scope]:
        return self.route.matches(scope)

    def url_path_for(self, name: str, /, **path_params: Any) -> URLPath:
        return self.route.url_path_for(name, **path_params)

    async def handle(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.app(scope, receive, send)

    def __repr__(self) -> str:
        return f"KernelRoute({self.route!r}, middleware={list(self.middleware_names)!r})"


class _LazyStack:
    """ASGI app building its middleware stack on first use."""

    def __init__(self, kernel: MiddlewareKernel, names: tuple[str, ...], app: Any) -> None:
        self.kernel = kernel
        self.names = names
        self.endpoint_app = app
        self._stack: Any = None

    async def __call__(self, scope: Any, receive: Any, send: Any) -> None:
        if self._stack is None:
            self._stack = self.kernel.build(self.names, self.endpoint_app)
        await self._stack(scope, receive, send)
