"""The active tenancy of one execution context.

A :class:`Tenancy` is created per request (or per worker job) and passed
down the call chain explicitly; there is no process-wide "current tenant".
It owns the :class:`ResourceBindings` that bootstrappers switch between
central and tenant resources.

Lifecycle (strictly sequential)::

    InitializingTenancy -> TenancyInitialized -> ... -> EndingTenancy -> TenancyEnded

Usage:
    tenancy = Tenancy(events, central_bindings)
    async with tenancy.scope(tenant):
        engine = tenancy.bindings.engine
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from tenantforge.foundation.exceptions import TenancyNotInitializedError
from tenantforge.tenancy.events import (
    EndingTenancy,
    InitializingTenancy,
    TenancyEnded,
    TenancyInitialized,
)

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy import Engine
    from sqlalchemy.engine import URL

    from tenantforge.tenancy.cache import ScopedCache, TenantAwareCache
    from tenantforge.tenancy.event_bus import EventBus
    from tenantforge.tenancy.models import Tenant
    from tenantforge.tenancy.settings import TenancySettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ResourceBindings:
    """Resources an execution context currently talks to.

    Attributes:
        tenant_key: Key of the tenant these bindings belong to, None when central.
        database_url: Active database URL.
        engine: Engine for the tenant database; None means the central database.
        cache: Cache view scoped to the active tenant's prefix.
        storage_root: Root directory for file storage.
        permission_cache_key: Cache key used by the permission registry.
    """

    tenant_key: str | None
    database_url: str | URL
    cache: ScopedCache
    storage_root: Path
    permission_cache_key: str
    engine: Engine | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def central(cls, settings: TenancySettings, cache_store: TenantAwareCache) -> ResourceBindings:
        return cls(
            tenant_key=None,
            database_url=settings.central_database_url,
            cache=cache_store.scoped(""),
            storage_root=settings.storage_path,
            permission_cache_key=settings.permission_cache_key,
        )


class Tenancy:
    """Tracks which tenant, if any, is active in one execution context.

    Args:
        events: Event bus the lifecycle events are published on.
        central_bindings: Factory for the central resource bindings.
    """

    def __init__(
        self,
        events: EventBus,
        central_bindings: Callable[[], ResourceBindings],
    ) -> None:
        self._events = events
        self._central_bindings = central_bindings
        self.tenant: Tenant | None = None
        self.bindings: ResourceBindings = central_bindings()
        self._initialized = False
        self._transitioning = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def central_bindings(self) -> ResourceBindings:
        """Fresh central bindings, used by bootstrappers when reverting."""
        return self._central_bindings()

    def require_tenant(self) -> Tenant:
        if not self._initialized or self.tenant is None:
            raise TenancyNotInitializedError()
        return self.tenant

    async def initialize(self, tenant: Tenant) -> None:
        """Make ``tenant`` the active tenant.

        Re-initializing with the active tenant is a no-op. A different active
        tenant is ended first, so at most one tenant is ever active.
        """
        if self._initialized and self.tenant is not None:
            if self.tenant.get_tenant_key() == tenant.get_tenant_key():
                return
            await self.end()

        self._enter_transition()
        try:
            await self._events.dispatch(InitializingTenancy(tenancy=self))
            self.tenant = tenant
            self._initialized = True
            logger.debug("tenancy_initializing: %s", tenant.id)
            await self._events.dispatch(TenancyInitialized(tenancy=self))
        finally:
            self._transitioning = False

    async def end(self) -> None:
        """Leave tenant scope. No-op when no tenant is active.

        ``TenancyEnded`` is published even when an ``EndingTenancy`` listener
        fails, and the bindings are reset to the central defaults even when a
        revert fails. The first error is re-raised afterwards.
        """
        if not self._initialized:
            return

        self._enter_transition()
        try:
            try:
                await self._events.dispatch(EndingTenancy(tenancy=self))
            finally:
                self._initialized = False
                await self._events.dispatch(TenancyEnded(tenancy=self))
        finally:
            self.tenant = None
            self._initialized = False
            self.bindings = self._central_bindings()
            self._transitioning = False
            logger.debug("tenancy_ended")

    def _enter_transition(self) -> None:
        if self._transitioning:
            msg = "Tenancy transitions cannot be nested inside lifecycle listeners"
            raise RuntimeError(msg)
        self._transitioning = True

    @asynccontextmanager
    async def scope(self, tenant: Tenant) -> AsyncIterator[Tenancy]:
        """Run a block inside ``tenant``'s context; always end it afterwards."""
        try:
            await self.initialize(tenant)
            yield self
        finally:
            await self.end()

    async def run_for(self, tenant: Tenant, callback: Callable[[Tenant], T | Awaitable[T]]) -> T:
        """Run ``callback`` as ``tenant``, then restore the previous context."""
        previous = self.tenant if self._initialized else None
        try:
            await self.initialize(tenant)
            result = callback(tenant)
            if inspect.isawaitable(result):
                result = await result
            return result  # type: ignore[return-value]
        finally:
            if previous is not None:
                await self.initialize(previous)
            else:
                await self.end()
