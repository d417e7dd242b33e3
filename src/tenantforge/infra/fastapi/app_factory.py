"""FastAPI application factory for multi-tenant applications.

:func:`create_app` builds the tenancy runtime, boots the
:class:`~tenantforge.infra.fastapi.provider.TenancyServiceProvider` and
wires the middleware, error handlers, lifespan hooks and routers that
installed packages contribute through entry points.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from tenantforge.foundation import (
    ErrorHandlerContribution,
    LifespanContribution,
    MiddlewareContribution,
    RouteMiddlewareContribution,
    discover,
)
from tenantforge.foundation.contributions import LIFESPAN_PRIORITY_TENANCY
from tenantforge.foundation.discovery import (
    GROUP_ERROR_HANDLERS,
    GROUP_LIFESPAN,
    GROUP_MIDDLEWARE,
    GROUP_ROUTE_MIDDLEWARE,
    GROUP_ROUTERS,
)
from tenantforge.infra.fastapi.error_handlers import register_exception_handlers
from tenantforge.infra.fastapi.kernel import MiddlewareKernel
from tenantforge.infra.fastapi.lifespan import compose_lifespan
from tenantforge.infra.fastapi.provider import TenancyServiceProvider
from tenantforge.infra.fastapi.settings import AppSettings
from tenantforge.tenancy.runtime import TenancyRuntime
from tenantforge.tenancy.settings import get_tenancy_settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import APIRouter

    from tenantforge.tenancy.pipeline import PipelineQueue
    from tenantforge.tenancy.settings import TenancySettings

logger = logging.getLogger(__name__)


def _tenancy_lifespan(runtime: TenancyRuntime) -> LifespanContribution:
    @asynccontextmanager
    async def tenancy_runtime(app: Any) -> AsyncIterator[None]:
        runtime.settings.storage_path.mkdir(parents=True, exist_ok=True)
        logger.info("tenancy_runtime_started", extra={"tenants": len(runtime.tenants)})
        try:
            yield
        finally:
            runtime.close()
            logger.info("tenancy_runtime_closed")

    return LifespanContribution(hook=tenancy_runtime, priority=LIFESPAN_PRIORITY_TENANCY)


def _default_pipeline_queue(runtime: TenancyRuntime) -> PipelineQueue:
    from tenantforge.infra.taskiq.broker import get_broker
    from tenantforge.infra.taskiq.pipeline_queue import TaskiqPipelineQueue

    return TaskiqPipelineQueue(get_broker(), runtime.runner)


def create_app(
    settings: AppSettings | None = None,
    *,
    tenancy_settings: TenancySettings | None = None,
    runtime: TenancyRuntime | None = None,
    pipeline_queue: PipelineQueue | None = None,
    extra_routers: list[APIRouter] | None = None,
    extra_middleware: list[MiddlewareContribution] | None = None,
    extra_route_middleware: list[RouteMiddlewareContribution] | None = None,
    extra_lifespan_hooks: list[LifespanContribution] | None = None,
    extra_error_handlers: list[ErrorHandlerContribution] | None = None,
    exclude_groups: frozenset[str] | None = None,
    exclude_names: frozenset[str] | None = None,
) -> FastAPI:
    """Create a tenancy-aware FastAPI application.

    Args:
        settings: Application settings. If ``None``, loaded from environment.
        tenancy_settings: Tenancy settings; ignored when ``runtime`` is given.
        runtime: Prebuilt tenancy runtime (tests inject one).
        pipeline_queue: Queue for pipelines marked as queued. Defaults to the
            taskiq queue when ``TENANCY_QUEUE_PIPELINES`` is enabled.
        extra_routers: Routers included after the tenancy routes.
        extra_middleware: Global middleware beyond discovered ones.
        extra_route_middleware: Named route middleware beyond discovered ones.
        extra_lifespan_hooks: Lifespan hooks beyond discovered ones.
        extra_error_handlers: Error handlers beyond the problem-details set.
        exclude_groups: Entry point groups to skip entirely.
        exclude_names: Specific entry point names to skip across all groups.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or AppSettings()
    _exclude_groups = exclude_groups if exclude_groups is not None else settings.exclude_groups
    _exclude_names = exclude_names if exclude_names is not None else settings.exclude_entry_points

    if runtime is None:
        runtime = TenancyRuntime.build(tenancy_settings or get_tenancy_settings())
    if pipeline_queue is None and runtime.settings.queue_pipelines:
        pipeline_queue = _default_pipeline_queue(runtime)
    if pipeline_queue is not None:
        runtime.attach_queue(pipeline_queue)

    # --- Lifespan hooks ---
    lifespan_hooks: list[LifespanContribution] = [
        _tenancy_lifespan(runtime),
        *(extra_lifespan_hooks or []),
    ]
    if GROUP_LIFESPAN not in _exclude_groups:
        for contrib in discover(GROUP_LIFESPAN, exclude_names=_exclude_names):
            value = contrib.value
            if isinstance(value, LifespanContribution):
                lifespan_hooks.append(value)
            else:
                lifespan_hooks.append(LifespanContribution(hook=value))

    app = FastAPI(
        title=settings.title,
        version=settings.version,
        description=settings.description,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        debug=settings.debug,
        lifespan=compose_lifespan(lifespan_hooks),
    )
    kernel = MiddlewareKernel()
    app.state.tenancy_runtime = runtime
    app.state.tenancy_settings = runtime.settings
    app.state.middleware_kernel = kernel

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.allow_origins,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
        expose_headers=settings.cors.expose_headers,
    )

    # --- Global middleware ---
    middleware_contribs: list[MiddlewareContribution] = list(extra_middleware or [])
    if GROUP_MIDDLEWARE not in _exclude_groups:
        for contrib in discover(GROUP_MIDDLEWARE, exclude_names=_exclude_names):
            if isinstance(contrib.value, MiddlewareContribution):
                middleware_contribs.append(contrib.value)
            else:
                logger.warning(
                    "Middleware entry point %r did not return a MiddlewareContribution",
                    contrib.name,
                )

    # Sort by priority ascending, then add in reverse (LIFO for Starlette)
    middleware_contribs.sort(key=lambda m: m.priority)
    for mw in reversed(middleware_contribs):
        app.add_middleware(mw.middleware_class, **mw.kwargs)
        logger.info(
            "Registered middleware %s (priority=%d)",
            mw.middleware_class.__name__,
            mw.priority,
        )

    # --- Named route middleware ---
    route_middleware: list[RouteMiddlewareContribution] = list(extra_route_middleware or [])
    if GROUP_ROUTE_MIDDLEWARE not in _exclude_groups:
        for contrib in discover(GROUP_ROUTE_MIDDLEWARE, exclude_names=_exclude_names):
            if isinstance(contrib.value, RouteMiddlewareContribution):
                route_middleware.append(contrib.value)
            else:
                logger.warning(
                    "Route middleware entry point %r did not return a RouteMiddlewareContribution",
                    contrib.name,
                )
    for rm in route_middleware:
        kernel.alias(rm.name, rm.middleware_class, **rm.kwargs)
        kernel.append_to_priority(rm.name)

    # --- Error handlers ---
    register_exception_handlers(app)
    error_handler_contribs: list[ErrorHandlerContribution] = list(extra_error_handlers or [])
    if GROUP_ERROR_HANDLERS not in _exclude_groups:
        for contrib in discover(GROUP_ERROR_HANDLERS, exclude_names=_exclude_names):
            value = contrib.value
            if isinstance(value, ErrorHandlerContribution):
                error_handler_contribs.append(value)
            elif callable(value):
                value(app)
            else:
                logger.warning(
                    "Error handler entry point %r is not an ErrorHandlerContribution or callable",
                    contrib.name,
                )
    for eh in error_handler_contribs:
        app.add_exception_handler(eh.exception_class, eh.handler)
        logger.info("Registered error handler for %s", eh.exception_class.__name__)

    # --- Tenancy ---
    TenancyServiceProvider(runtime, kernel).boot(app)
    kernel.boot()

    # --- Routers ---
    routers: list[APIRouter] = list(extra_routers or [])
    if GROUP_ROUTERS not in _exclude_groups:
        routers.extend(c.value for c in discover(GROUP_ROUTERS, exclude_names=_exclude_names))
    for router in routers:
        app.include_router(router)
        logger.info("Included router: %r", router)

    return app
