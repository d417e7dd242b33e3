"""Central store of tenants and their domains.

Publishes tenant and domain lifecycle events in model-event order:

- create: Saving -> Creating -> (persist) -> Created -> Saved
- update: Saving -> Updating -> (persist) -> Updated -> Saved
- delete: Deleting -> (remove) -> Deleted

Invariant: a domain is bound to at most one tenant.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from tenantforge.foundation.exceptions import ConflictError, NotFoundError
from tenantforge.tenancy.events import (
    CreatingDomain,
    CreatingTenant,
    DeletingDomain,
    DeletingTenant,
    DomainCreated,
    DomainDeleted,
    DomainSaved,
    DomainUpdated,
    SavingDomain,
    SavingTenant,
    TenantCreated,
    TenantDeleted,
    TenantSaved,
    TenantUpdated,
    UpdatingDomain,
    UpdatingTenant,
)
from tenantforge.tenancy.models import Domain, Tenant

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tenantforge.tenancy.event_bus import EventBus

logger = logging.getLogger(__name__)


class TenantRepository:
    """In-process tenant and domain store publishing lifecycle events.

    Writes are serialized with an asyncio lock so the domain uniqueness
    check and the write happen atomically. ``*ing`` events are dispatched
    while the lock is held; their listeners must not write to the repository.
    """

    def __init__(self, events: EventBus) -> None:
        self._events = events
        self._tenants: dict[str, Tenant] = {}
        self._domains: dict[str, str] = {}
        self._lock = asyncio.Lock()

    # -- Queries --------------------------------------------------------------

    def find(self, tenant_id: str) -> Tenant | None:
        return self._tenants.get(tenant_id)

    def get(self, tenant_id: str) -> Tenant:
        tenant = self._tenants.get(tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant", tenant_id)
        return tenant

    def all(self) -> list[Tenant]:
        return sorted(self._tenants.values(), key=lambda t: t.created_at)

    def find_by_domain(self, domain: str) -> Tenant | None:
        tenant_id = self._domains.get(domain.lower())
        return self._tenants.get(tenant_id) if tenant_id is not None else None

    def __len__(self) -> int:
        return len(self._tenants)

    # -- Tenants --------------------------------------------------------------

    async def create(
        self,
        tenant_id: str,
        data: dict[str, Any] | None = None,
        domains: Iterable[str] = (),
    ) -> Tenant:
        """Create a tenant, then bind each of ``domains`` to it.

        The tenant is stored before ``TenantCreated`` runs the creation
        pipeline. When a pipeline step fails the tenant stays stored without
        its domains and the error propagates; :meth:`provision` re-runs the
        pipeline and binds the domains once it succeeds.
        """
        tenant = Tenant(id=tenant_id, data=data or {})  # type: ignore[arg-type]
        async with self._lock:
            if tenant_id in self._tenants:
                raise ConflictError(f"Tenant '{tenant_id}' already exists", tenant_id=tenant_id)
            await self._events.dispatch(SavingTenant(tenant=tenant))
            await self._events.dispatch(CreatingTenant(tenant=tenant))
            self._tenants[tenant_id] = tenant
            logger.info("tenant_created", extra={"tenant_id": tenant_id})

        await self._events.dispatch(TenantCreated(tenant=tenant))
        await self._events.dispatch(TenantSaved(tenant=tenant))

        for domain in domains:
            await self.create_domain(tenant_id, domain)
        return self.get(tenant_id)

    async def provision(self, tenant_id: str, domains: Iterable[str] = ()) -> Tenant:
        """Re-publish ``TenantCreated`` for a stored tenant.

        Recovery path for a tenant whose creation pipeline failed. The steps
        are idempotent, so completed ones are skipped over harmlessly.
        Domains in ``domains`` that the tenant does not own yet are bound
        afterwards.
        """
        tenant = self.get(tenant_id)
        logger.info("tenant_provisioning", extra={"tenant_id": tenant_id})
        await self._events.dispatch(TenantCreated(tenant=tenant))
        await self._events.dispatch(TenantSaved(tenant=tenant))

        owned = {d.domain for d in tenant.domains}
        for domain in domains:
            if Domain(domain=domain, tenant_id=tenant_id).domain not in owned:
                await self.create_domain(tenant_id, domain)
        return self.get(tenant_id)

    async def update(self, tenant_id: str, data: dict[str, Any]) -> Tenant:
        async with self._lock:
            tenant = self.get(tenant_id).with_data(data)
            await self._events.dispatch(SavingTenant(tenant=tenant))
            await self._events.dispatch(UpdatingTenant(tenant=tenant))
            self._tenants[tenant_id] = tenant
        await self._events.dispatch(TenantUpdated(tenant=tenant))
        await self._events.dispatch(TenantSaved(tenant=tenant))
        return tenant

    async def delete(self, tenant_id: str) -> Tenant:
        """Delete a tenant after releasing its domains."""
        tenant = self.get(tenant_id)
        for domain in tenant.domains:
            await self.delete_domain(domain.domain)

        async with self._lock:
            tenant = self.get(tenant_id)
            await self._events.dispatch(DeletingTenant(tenant=tenant))
            del self._tenants[tenant_id]
            logger.info("tenant_deleted", extra={"tenant_id": tenant_id})
        await self._events.dispatch(TenantDeleted(tenant=tenant))
        return tenant

    # -- Domains --------------------------------------------------------------

    async def create_domain(self, tenant_id: str, domain: str) -> Domain:
        record = Domain(domain=domain, tenant_id=tenant_id)
        async with self._lock:
            tenant = self.get(tenant_id)
            owner = self._domains.get(record.domain)
            if owner is not None:
                raise ConflictError(
                    f"Domain '{record.domain}' is already bound to a tenant",
                    domain=record.domain,
                    tenant_id=owner,
                )
            await self._events.dispatch(SavingDomain(domain=record))
            await self._events.dispatch(CreatingDomain(domain=record))
            self._domains[record.domain] = tenant_id
            self._tenants[tenant_id] = tenant.with_domains((*tenant.domains, record))
        await self._events.dispatch(DomainCreated(domain=record))
        await self._events.dispatch(DomainSaved(domain=record))
        return record

    async def update_domain(self, old_domain: str, new_domain: str) -> Domain:
        """Rename a domain while keeping its tenant."""
        async with self._lock:
            tenant_id = self._domains.get(old_domain.lower())
            if tenant_id is None:
                raise NotFoundError("Domain", old_domain)
            record = Domain(domain=new_domain, tenant_id=tenant_id)
            owner = self._domains.get(record.domain)
            if owner is not None and record.domain != old_domain.lower():
                raise ConflictError(
                    f"Domain '{record.domain}' is already bound to a tenant",
                    domain=record.domain,
                    tenant_id=owner,
                )
            await self._events.dispatch(SavingDomain(domain=record))
            await self._events.dispatch(UpdatingDomain(domain=record))
            del self._domains[old_domain.lower()]
            self._domains[record.domain] = tenant_id
            tenant = self._tenants[tenant_id]
            self._tenants[tenant_id] = tenant.with_domains(
                tuple(record if d.domain == old_domain.lower() else d for d in tenant.domains)
            )
        await self._events.dispatch(DomainUpdated(domain=record))
        await self._events.dispatch(DomainSaved(domain=record))
        return record

    async def delete_domain(self, domain: str) -> Domain:
        async with self._lock:
            tenant_id = self._domains.get(domain.lower())
            if tenant_id is None:
                raise NotFoundError("Domain", domain)
            record = Domain(domain=domain, tenant_id=tenant_id)
            await self._events.dispatch(DeletingDomain(domain=record))
            del self._domains[record.domain]
            tenant = self._tenants[tenant_id]
            self._tenants[tenant_id] = tenant.with_domains(
                tuple(d for d in tenant.domains if d.domain != record.domain)
            )
        await self._events.dispatch(DomainDeleted(domain=record))
        return record
