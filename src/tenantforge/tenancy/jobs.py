"""Provisioning and deprovisioning steps for tenant job pipelines.

Every job is idempotent: running it twice leaves the same state as
running it once. Blocking database and filesystem work runs on a worker
thread so the event loop stays responsive.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import Callable
from typing import TYPE_CHECKING

from tenantforge.tenancy.events import (
    DatabaseCreated,
    DatabaseDeleted,
    DatabaseMigrated,
    DatabaseRolledBack,
    DatabaseSeeded,
)

if TYPE_CHECKING:
    from sqlalchemy import Connection

    from tenantforge.tenancy.database import TenantDatabaseManager
    from tenantforge.tenancy.event_bus import EventBus
    from tenantforge.tenancy.models import Tenant
    from tenantforge.tenancy.settings import TenancySettings

logger = logging.getLogger(__name__)

# Directories the framework expects inside each tenant's storage root.
FRAMEWORK_DIRECTORIES: tuple[str, ...] = (
    "framework/cache",
    "framework/sessions",
    "framework/views",
    "app/public",
)

Seeder = Callable[["Connection", "Tenant"], None]


class CreateDatabase:
    name = "create_database"

    def __init__(self, databases: TenantDatabaseManager, events: EventBus) -> None:
        self._databases = databases
        self._events = events

    async def handle(self, tenant: Tenant) -> None:
        await asyncio.to_thread(self._databases.create_database, tenant)
        await self._events.dispatch(DatabaseCreated(tenant=tenant))


class MigrateDatabase:
    name = "migrate_database"

    def __init__(self, databases: TenantDatabaseManager, events: EventBus) -> None:
        self._databases = databases
        self._events = events

    async def handle(self, tenant: Tenant) -> None:
        await asyncio.to_thread(self._databases.migrate, tenant)
        logger.info("tenant_database_migrated: %s", tenant.id)
        await self._events.dispatch(DatabaseMigrated(tenant=tenant))


class SeedDatabase:
    """Runs a seeder against the tenant database inside one transaction."""

    name = "seed_database"

    def __init__(
        self,
        databases: TenantDatabaseManager,
        events: EventBus,
        seeder: Seeder | None = None,
    ) -> None:
        self._databases = databases
        self._events = events
        self._seeder = seeder

    def _seed(self, tenant: Tenant) -> None:
        if self._seeder is None:
            return
        with self._databases.engine_for(tenant).begin() as conn:
            self._seeder(conn, tenant)

    async def handle(self, tenant: Tenant) -> None:
        await asyncio.to_thread(self._seed, tenant)
        await self._events.dispatch(DatabaseSeeded(tenant=tenant))


class RollbackDatabase:
    name = "rollback_database"

    def __init__(self, databases: TenantDatabaseManager, events: EventBus) -> None:
        self._databases = databases
        self._events = events

    async def handle(self, tenant: Tenant) -> None:
        await asyncio.to_thread(self._databases.rollback, tenant)
        await self._events.dispatch(DatabaseRolledBack(tenant=tenant))


class DeleteDatabase:
    name = "delete_database"

    def __init__(self, databases: TenantDatabaseManager, events: EventBus) -> None:
        self._databases = databases
        self._events = events

    async def handle(self, tenant: Tenant) -> None:
        await asyncio.to_thread(self._databases.delete_database, tenant)
        await self._events.dispatch(DatabaseDeleted(tenant=tenant))


class CreateFrameworkDirectoriesForTenant:
    name = "create_framework_directories"

    def __init__(self, settings: TenancySettings) -> None:
        self._settings = settings

    def _create(self, tenant: Tenant) -> None:
        root = self._settings.storage_root_for(tenant.get_tenant_key())
        for directory in FRAMEWORK_DIRECTORIES:
            (root / directory).mkdir(parents=True, exist_ok=True)

    async def handle(self, tenant: Tenant) -> None:
        await asyncio.to_thread(self._create, tenant)
        logger.info("tenant_directories_created: %s", tenant.id)


class DeleteFrameworkDirectoriesForTenant:
    name = "delete_framework_directories"

    def __init__(self, settings: TenancySettings) -> None:
        self._settings = settings

    def _delete(self, tenant: Tenant) -> None:
        root = self._settings.storage_root_for(tenant.get_tenant_key())
        if root.exists():
            shutil.rmtree(root)

    async def handle(self, tenant: Tenant) -> None:
        await asyncio.to_thread(self._delete, tenant)
        logger.info("tenant_directories_deleted: %s", tenant.id)
