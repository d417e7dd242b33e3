"""Tenancy service provider: event wiring, route registration, middleware priority.

:meth:`TenancyServiceProvider.boot` runs once per middleware kernel:

1. ``boot_events`` subscribes the listener map returned by :meth:`events`.
2. ``map_routes`` / ``map_universal_routes`` register the tenant and
   universal route modules once the kernel has booted.
3. ``map_central_routes`` mounts the admin API and ``web.py`` on every
   central domain.
4. ``prepare_live_update_for_tenancy`` binds the live-update and
   file-preview endpoints to the subdomain tenancy stack.
5. ``make_tenancy_middleware_highest_priority`` moves the tenancy
   middleware to the front of the kernel priority list.

Route modules live in ``TenancySettings.routes_path`` and expose
``router: APIRouter``. ``tenant.py`` may also declare ``middleware``, the
route middleware names its routes run behind.
"""

from __future__ import annotations

import importlib.util
import logging
import sys
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import FileResponse
from starlette.routing import Host, Match, Router

from tenantforge.foundation.exceptions import NotFoundError
from tenantforge.infra.fastapi import admin
from tenantforge.infra.fastapi.dependencies import get_tenancy
from tenantforge.infra.fastapi.kernel import UNIVERSAL_GROUP, WEB_GROUP, MiddlewareKernel
from tenantforge.infra.fastapi.middleware.file_url import TenantFileUrlMiddleware
from tenantforge.infra.fastapi.middleware.tenancy import TENANCY_MIDDLEWARE
from tenantforge.tenancy.bootstrappers import (
    BootstrapTenancy,
    PermissionCacheKeyListeners,
    RevertToCentralContext,
)
from tenantforge.tenancy.events import (
    BootstrappingTenancy,
    CreatingDomain,
    CreatingTenant,
    DatabaseCreated,
    DatabaseDeleted,
    DatabaseMigrated,
    DatabaseRolledBack,
    DatabaseSeeded,
    DeletingDomain,
    DeletingTenant,
    DomainCreated,
    DomainDeleted,
    DomainSaved,
    DomainUpdated,
    EndingTenancy,
    InitializingTenancy,
    RevertedToCentralContext,
    RevertingToCentralContext,
    SavingDomain,
    SavingTenant,
    TenancyBootstrapped,
    TenancyEnded,
    TenancyInitialized,
    TenantCreated,
    TenantDeleted,
    TenantSaved,
    TenantUpdated,
    UpdatingDomain,
    UpdatingTenant,
)
from tenantforge.tenancy.pipeline import JobPipeline

if TYPE_CHECKING:
    from pathlib import Path
    from types import ModuleType

    from fastapi import FastAPI
    from starlette.routing import BaseRoute
    from starlette.types import Scope

    from tenantforge.tenancy.event_bus import ListenerMap
    from tenantforge.tenancy.runtime import TenancyRuntime

logger = logging.getLogger(__name__)

TENANT_CREATION_STEPS = ("create_database", "migrate_database", "create_framework_directories")
TENANT_DELETION_STEPS = ("delete_framework_directories", "delete_database")

LIVE_UPDATE_MIDDLEWARE = (
    WEB_GROUP,
    UNIVERSAL_GROUP,
    "InitializeTenancyBySubdomain",
    "tenant_file_url",
)
FILE_PREVIEW_MIDDLEWARE = (WEB_GROUP, UNIVERSAL_GROUP, "InitializeTenancyBySubdomain")

LIVE_UPLOAD_DIRECTORY = "livewire-tmp"


class CentralDomainRoute(Host):
    """Host route for one central domain.

    Unlike a plain ``Host``, it only claims a request when one of its
    routes matches the path, so universal routes stay reachable on central
    domains.
    """

    def matches(self, scope: Scope) -> tuple[Match, Scope]:
        match, child_scope = super().matches(scope)
        if match is Match.NONE:
            return match, child_scope
        inner_scope = {**scope, **child_scope}
        for route in self.routes:
            route_match, _ = route.matches(inner_scope)
            if route_match is not Match.NONE:
                return match, child_scope
        return Match.NONE, {}


def _event_tenant(event: Any) -> Any:
    return event.tenant


class TenancyServiceProvider:
    """Configures tenancy for one application.

    Args:
        runtime: Shared tenancy services.
        kernel: Route middleware kernel of the application. Only needed for
            :meth:`boot`; workers call :meth:`boot_events` alone.
    """

    def __init__(self, runtime: TenancyRuntime, kernel: MiddlewareKernel | None = None) -> None:
        self.runtime = runtime
        self.kernel = kernel or MiddlewareKernel()
        self._events_booted = False

    @property
    def settings(self) -> Any:
        return self.runtime.settings

    def events(self) -> ListenerMap:
        """Listeners per lifecycle event.

        The creation pipeline provisions the database before the directories;
        the deletion pipeline removes the directories before the database.
        """
        queued = self.settings.queue_pipelines
        bus = self.runtime.events
        bootstrappers = self.runtime.bootstrappers
        permission_cache = PermissionCacheKeyListeners(self.settings.permission_cache_key)

        return {
            # Tenant events
            CreatingTenant: [],
            TenantCreated: [
                JobPipeline.make(TENANT_CREATION_STEPS)
                .send(_event_tenant)
                .should_be_queued(queued),
            ],
            SavingTenant: [],
            TenantSaved: [],
            UpdatingTenant: [],
            TenantUpdated: [],
            DeletingTenant: [],
            TenantDeleted: [
                JobPipeline.make(TENANT_DELETION_STEPS)
                .send(_event_tenant)
                .should_be_queued(queued),
            ],
            # Domain events
            CreatingDomain: [],
            DomainCreated: [],
            SavingDomain: [],
            DomainSaved: [],
            UpdatingDomain: [],
            DomainUpdated: [],
            DeletingDomain: [],
            DomainDeleted: [],
            # Database events
            DatabaseCreated: [],
            DatabaseMigrated: [],
            DatabaseSeeded: [],
            DatabaseRolledBack: [],
            DatabaseDeleted: [],
            # Tenancy events
            InitializingTenancy: [],
            TenancyInitialized: [BootstrapTenancy(bus, bootstrappers)],
            EndingTenancy: [],
            TenancyEnded: [
                RevertToCentralContext(bus, bootstrappers),
                permission_cache.on_ended,
            ],
            BootstrappingTenancy: [],
            TenancyBootstrapped: [permission_cache.on_bootstrapped],
            RevertingToCentralContext: [],
            RevertedToCentralContext: [],
        }

    # -- Boot -----------------------------------------------------------------

    def boot(self, app: FastAPI) -> None:
        if type(self).__name__ in self.kernel.booted_providers:
            logger.debug("tenancy_provider_already_booted")
            return
        self.kernel.booted_providers.add(type(self).__name__)

        self._register_route_middleware()
        self.boot_events()
        self.map_routes(app)
        self.map_universal_routes(app)
        self.map_central_routes(app)
        self.prepare_live_update_for_tenancy(app)
        self.make_tenancy_middleware_highest_priority()
        logger.info(
            "tenancy_provider_booted",
            extra={"central_domains": list(self.settings.central_domains)},
        )

    def boot_events(self) -> None:
        if self._events_booted:
            return
        self._events_booted = True
        self.runtime.events.listen_many(self.events())

    def _register_route_middleware(self) -> None:
        for middleware_class in TENANCY_MIDDLEWARE:
            self.kernel.alias(middleware_class.__name__, middleware_class, runtime=self.runtime)
        self.kernel.alias("tenant_file_url", TenantFileUrlMiddleware)

    def make_tenancy_middleware_highest_priority(self) -> None:
        # Reverse prepending leaves the first listed middleware at the very front.
        for middleware_class in reversed(TENANCY_MIDDLEWARE):
            self.kernel.prepend_to_priority(middleware_class.__name__)

    # -- Routes ---------------------------------------------------------------

    def route_file(self, name: str) -> Path:
        return self.settings.routes_path / f"{name}.py"

    def load_route_module(self, name: str) -> ModuleType | None:
        """Import ``<routes_path>/<name>.py``; None when the file does not exist."""
        path = self.route_file(name)
        if not path.is_file():
            logger.debug("route_file_missing: %s", path)
            return None
        module_name = f"_tenantforge_routes_{name}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            msg = f"Cannot load route module {path}"
            raise ImportError(msg)
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        spec.loader.exec_module(module)
        if not isinstance(getattr(module, "router", None), APIRouter):
            msg = f"Route module {path} must define 'router: APIRouter'"
            raise TypeError(msg)
        return module

    def _include(self, app: FastAPI, router: APIRouter, middleware: tuple[str, ...]) -> None:
        if middleware:
            self.kernel.include_router(app, router, middleware)
        else:
            app.include_router(router)

    def map_routes(self, app: FastAPI) -> None:
        def register() -> None:
            module = self.load_route_module("tenant")
            if module is None:
                return
            middleware = tuple(getattr(module, "middleware", ()))
            self._include(app, module.router, middleware)
            logger.info("tenant_routes_mapped", extra={"middleware": list(middleware)})

        self.kernel.booted(register)

    def map_universal_routes(self, app: FastAPI) -> None:
        def register() -> None:
            module = self.load_route_module("universal")
            if module is None:
                return
            self._include(app, module.router, (WEB_GROUP,))
            logger.info("universal_routes_mapped")

        self.kernel.booted(register)

    def map_central_routes(self, app: FastAPI) -> None:
        web = self.load_route_module("web")
        routers = [admin.router] if web is None else [admin.router, web.router]
        for domain in self.settings.central_domains:
            routes: list[BaseRoute] = []
            for router in routers:
                routes.extend(self.kernel.wrap_routes(router.routes, (WEB_GROUP,)))
            app.router.routes.append(CentralDomainRoute(domain, app=Router(routes=routes)))
            logger.debug("central_routes_mapped: %s", domain)

    def prepare_live_update_for_tenancy(self, app: FastAPI) -> None:
        live_update = APIRouter()
        live_update.add_api_route(
            "/livewire/update",
            _live_update,
            methods=["POST"],
            name="livewire.update",
        )
        file_preview = APIRouter()
        file_preview.add_api_route(
            "/livewire/preview-file/{filename}",
            _preview_file,
            methods=["GET"],
            name="livewire.preview-file",
        )
        self.kernel.include_router(app, live_update, LIVE_UPDATE_MIDDLEWARE)
        self.kernel.include_router(app, file_preview, FILE_PREVIEW_MIDDLEWARE)


async def _live_update(request: Request) -> dict[str, Any]:
    """Acknowledge a component update inside the tenant's context."""
    tenancy = get_tenancy(request)
    body = await request.json() if await request.body() else {}
    return {
        "tenant": tenancy.require_tenant().get_tenant_key(),
        "file_url_root": getattr(request.state, "file_url_root", None),
        "components": body.get("components", []),
    }


async def _preview_file(filename: str, request: Request) -> FileResponse:
    """Serve a temporary upload from the tenant's storage root."""
    tenancy = get_tenancy(request)
    directory = tenancy.bindings.storage_root / LIVE_UPLOAD_DIRECTORY
    if filename in ("", ".", "..") or "/" in filename or "\\" in filename:
        raise NotFoundError("File", filename)
    path = directory / filename
    if not path.is_file():
        raise NotFoundError("File", filename)
    return FileResponse(path)
