"""Lifecycle events published on the tenancy event bus.

Each event class is a topic. Events are frozen dataclasses; the payload is
the affected tenant, domain or active tenancy. For every verb the ``*ing``
event is published before the matching ``*ed`` event.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from tenantforge.tenancy.models import Domain, Tenant
    from tenantforge.tenancy.tenancy import Tenancy


class EventKind(StrEnum):
    TENANT = "tenant"
    DOMAIN = "domain"
    DATABASE = "database"
    TENANCY = "tenancy"


@dataclass(frozen=True, slots=True)
class TenancyEvent:
    """Base class for every lifecycle event."""

    kind: ClassVar[EventKind]


# -- Tenant -------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TenantEvent(TenancyEvent):
    kind: ClassVar[EventKind] = EventKind.TENANT

    tenant: Tenant


class CreatingTenant(TenantEvent):
    pass


class TenantCreated(TenantEvent):
    pass


class SavingTenant(TenantEvent):
    pass


class TenantSaved(TenantEvent):
    pass


class UpdatingTenant(TenantEvent):
    pass


class TenantUpdated(TenantEvent):
    pass


class DeletingTenant(TenantEvent):
    pass


class TenantDeleted(TenantEvent):
    pass


# -- Domain -------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DomainEvent(TenancyEvent):
    kind: ClassVar[EventKind] = EventKind.DOMAIN

    domain: Domain


class CreatingDomain(DomainEvent):
    pass


class DomainCreated(DomainEvent):
    pass


class SavingDomain(DomainEvent):
    pass


class DomainSaved(DomainEvent):
    pass


class UpdatingDomain(DomainEvent):
    pass


class DomainUpdated(DomainEvent):
    pass


class DeletingDomain(DomainEvent):
    pass


class DomainDeleted(DomainEvent):
    pass


# -- Database -----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DatabaseEvent(TenancyEvent):
    kind: ClassVar[EventKind] = EventKind.DATABASE

    tenant: Tenant


class DatabaseCreated(DatabaseEvent):
    pass


class DatabaseMigrated(DatabaseEvent):
    pass


class DatabaseSeeded(DatabaseEvent):
    pass


class DatabaseRolledBack(DatabaseEvent):
    pass


class DatabaseDeleted(DatabaseEvent):
    pass


# -- Tenancy context ----------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TenancyContextEvent(TenancyEvent):
    kind: ClassVar[EventKind] = EventKind.TENANCY

    tenancy: Tenancy


class InitializingTenancy(TenancyContextEvent):
    pass


class TenancyInitialized(TenancyContextEvent):
    pass


class EndingTenancy(TenancyContextEvent):
    pass


class TenancyEnded(TenancyContextEvent):
    pass


class BootstrappingTenancy(TenancyContextEvent):
    pass


class TenancyBootstrapped(TenancyContextEvent):
    pass


class RevertingToCentralContext(TenancyContextEvent):
    pass


class RevertedToCentralContext(TenancyContextEvent):
    pass


ALL_EVENTS: tuple[type[TenancyEvent], ...] = (
    CreatingTenant,
    TenantCreated,
    SavingTenant,
    TenantSaved,
    UpdatingTenant,
    TenantUpdated,
    DeletingTenant,
    TenantDeleted,
    CreatingDomain,
    DomainCreated,
    SavingDomain,
    DomainSaved,
    UpdatingDomain,
    DomainUpdated,
    DeletingDomain,
    DomainDeleted,
    DatabaseCreated,
    DatabaseMigrated,
    DatabaseSeeded,
    DatabaseRolledBack,
    DatabaseDeleted,
    InitializingTenancy,
    TenancyInitialized,
    EndingTenancy,
    TenancyEnded,
    BootstrappingTenancy,
    TenancyBootstrapped,
    RevertingToCentralContext,
    RevertedToCentralContext,
)
