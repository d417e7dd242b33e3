"""Bootstrappers switch an execution context between central and tenant resources.

:class:`BootstrapTenancy` runs on ``TenancyInitialized`` and applies every
bootstrapper in order. :class:`RevertToCentralContext` runs on
``TenancyEnded`` and reverts them in reverse order; every bootstrapper is
reverted even when an earlier revert fails.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import structlog

from tenantforge.foundation.exceptions import NotFoundError
from tenantforge.tenancy.events import (
    BootstrappingTenancy,
    RevertedToCentralContext,
    RevertingToCentralContext,
    TenancyBootstrapped,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tenantforge.tenancy.cache import TenantAwareCache
    from tenantforge.tenancy.database import TenantDatabaseManager
    from tenantforge.tenancy.event_bus import EventBus
    from tenantforge.tenancy.events import TenancyEnded, TenancyInitialized
    from tenantforge.tenancy.models import Tenant
    from tenantforge.tenancy.settings import TenancySettings
    from tenantforge.tenancy.tenancy import Tenancy

logger = logging.getLogger(__name__)


class TenancyBootstrapper(Protocol):
    def bootstrap(self, tenancy: Tenancy, tenant: Tenant) -> None: ...

    def revert(self, tenancy: Tenancy) -> None: ...


class TenantDatabaseDoesNotExistError(NotFoundError):
    """The resolved tenant has no provisioned database."""

    error_code: str = "TENANT_DATABASE_MISSING"

    def __init__(self, database: str) -> None:
        super().__init__("Tenant database", database)


class DatabaseTenancyBootstrapper:
    """Binds the tenant's database URL and engine."""

    def __init__(self, databases: TenantDatabaseManager) -> None:
        self._databases = databases

    def bootstrap(self, tenancy: Tenancy, tenant: Tenant) -> None:
        if not self._databases.database_exists(tenant):
            raise TenantDatabaseDoesNotExistError(self._databases.database_name(tenant))
        tenancy.bindings.database_url = self._databases.url_for(tenant)
        tenancy.bindings.engine = self._databases.engine_for(tenant)

    def revert(self, tenancy: Tenancy) -> None:
        central = tenancy.central_bindings()
        tenancy.bindings.database_url = central.database_url
        tenancy.bindings.engine = None


class CacheTenancyBootstrapper:
    """Prefixes cache keys with ``<cache_prefix_base><tenant key>:``."""

    def __init__(self, settings: TenancySettings, store: TenantAwareCache) -> None:
        self._settings = settings
        self._store = store

    def bootstrap(self, tenancy: Tenancy, tenant: Tenant) -> None:
        prefix = f"{self._settings.cache_prefix_base}{tenant.get_tenant_key()}:"
        tenancy.bindings.cache = self._store.scoped(prefix)

    def revert(self, tenancy: Tenancy) -> None:
        tenancy.bindings.cache = self._store.scoped("")


class FilesystemTenancyBootstrapper:
    """Points the storage root at the tenant's directory."""

    def __init__(self, settings: TenancySettings) -> None:
        self._settings = settings

    def bootstrap(self, tenancy: Tenancy, tenant: Tenant) -> None:
        tenancy.bindings.storage_root = self._settings.storage_root_for(tenant.get_tenant_key())

    def revert(self, tenancy: Tenancy) -> None:
        tenancy.bindings.storage_root = self._settings.storage_path


class LogContextTenancyBootstrapper:
    """Adds ``tenant`` to every structlog entry while tenancy is active."""

    def bootstrap(self, tenancy: Tenancy, tenant: Tenant) -> None:
        structlog.contextvars.bind_contextvars(tenant=tenant.get_tenant_key())

    def revert(self, tenancy: Tenancy) -> None:
        structlog.contextvars.unbind_contextvars("tenant")


class BootstrapTenancy:
    """``TenancyInitialized`` listener applying the tenant bootstrappers."""

    def __init__(self, events: EventBus, bootstrappers: Sequence[TenancyBootstrapper]) -> None:
        self._events = events
        self._bootstrappers = tuple(bootstrappers)

    async def __call__(self, event: TenancyInitialized) -> None:
        tenancy = event.tenancy
        tenant = tenancy.require_tenant()
        await self._events.dispatch(BootstrappingTenancy(tenancy=tenancy))
        for bootstrapper in self._bootstrappers:
            bootstrapper.bootstrap(tenancy, tenant)
        tenancy.bindings.tenant_key = tenant.get_tenant_key()
        await self._events.dispatch(TenancyBootstrapped(tenancy=tenancy))


class RevertToCentralContext:
    """``TenancyEnded`` listener reverting the bootstrappers in reverse order."""

    def __init__(self, events: EventBus, bootstrappers: Sequence[TenancyBootstrapper]) -> None:
        self._events = events
        self._bootstrappers = tuple(bootstrappers)

    async def __call__(self, event: TenancyEnded) -> None:
        tenancy = event.tenancy
        await self._events.dispatch(RevertingToCentralContext(tenancy=tenancy))
        first_error: Exception | None = None
        for bootstrapper in reversed(self._bootstrappers):
            try:
                bootstrapper.revert(tenancy)
            except Exception as exc:
                logger.exception("tenancy_revert_failed: %s", type(bootstrapper).__name__)
                first_error = first_error or exc
        tenancy.bindings.tenant_key = None
        await self._events.dispatch(RevertedToCentralContext(tenancy=tenancy))
        if first_error is not None:
            raise first_error


class PermissionCacheKeyListeners:
    """Namespaces the permission cache per tenant while tenancy is active."""

    def __init__(self, base_key: str) -> None:
        self._base_key = base_key

    def on_bootstrapped(self, event: TenancyBootstrapped) -> None:
        tenant = event.tenancy.require_tenant()
        event.tenancy.bindings.permission_cache_key = (
            f"{self._base_key}.tenant.{tenant.get_tenant_key()}"
        )

    def on_ended(self, event: TenancyEnded) -> None:
        event.tenancy.bindings.permission_cache_key = self._base_key
