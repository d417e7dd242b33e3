"""Wiring of the tenancy services shared by one application.

:class:`TenancyRuntime` owns the long-lived collaborators (event bus,
tenant repository, database manager, cache store, job registry) and
creates a fresh :class:`~tenantforge.tenancy.tenancy.Tenancy` per
execution context.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from tenantforge.tenancy.bootstrappers import (
    CacheTenancyBootstrapper,
    DatabaseTenancyBootstrapper,
    FilesystemTenancyBootstrapper,
    LogContextTenancyBootstrapper,
    TenancyBootstrapper,
)
from tenantforge.tenancy.cache import TenantAwareCache
from tenantforge.tenancy.database import TenantDatabaseManager
from tenantforge.tenancy.event_bus import EventBus
from tenantforge.tenancy.jobs import (
    CreateDatabase,
    CreateFrameworkDirectoriesForTenant,
    DeleteDatabase,
    DeleteFrameworkDirectoriesForTenant,
    MigrateDatabase,
    RollbackDatabase,
    SeedDatabase,
)
from tenantforge.tenancy.pipeline import JobRegistry, JobRunner, PipelineQueue
from tenantforge.tenancy.repository import TenantRepository
from tenantforge.tenancy.resolvers import (
    DomainTenantResolver,
    PathTenantResolver,
    RequestDataTenantResolver,
)
from tenantforge.tenancy.tenancy import ResourceBindings, Tenancy

if TYPE_CHECKING:
    from tenantforge.tenancy.jobs import Seeder
    from tenantforge.tenancy.settings import TenancySettings


@dataclass
class TenancyRuntime:
    settings: TenancySettings
    events: EventBus
    tenants: TenantRepository
    databases: TenantDatabaseManager
    cache_store: TenantAwareCache
    jobs: JobRegistry
    runner: JobRunner
    bootstrappers: list[TenancyBootstrapper] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        settings: TenancySettings,
        *,
        queue: PipelineQueue | None = None,
        seeder: Seeder | None = None,
    ) -> TenancyRuntime:
        """Create the default runtime: SQLAlchemy databases, TTL cache, local storage."""
        jobs = JobRegistry()
        runner = JobRunner(jobs, queue=queue)
        events = EventBus(job_runner=runner)
        databases = TenantDatabaseManager(settings)
        cache_store = TenantAwareCache(maxsize=settings.cache_maxsize, ttl=settings.cache_ttl)

        for job in (
            CreateDatabase(databases, events),
            MigrateDatabase(databases, events),
            SeedDatabase(databases, events, seeder),
            RollbackDatabase(databases, events),
            DeleteDatabase(databases, events),
            CreateFrameworkDirectoriesForTenant(settings),
            DeleteFrameworkDirectoriesForTenant(settings),
        ):
            jobs.register(job)

        return cls(
            settings=settings,
            events=events,
            tenants=TenantRepository(events),
            databases=databases,
            cache_store=cache_store,
            jobs=jobs,
            runner=runner,
            bootstrappers=[
                DatabaseTenancyBootstrapper(databases),
                CacheTenancyBootstrapper(settings, cache_store),
                FilesystemTenancyBootstrapper(settings),
                LogContextTenancyBootstrapper(),
            ],
        )

    def central_bindings(self) -> ResourceBindings:
        return ResourceBindings.central(self.settings, self.cache_store)

    def new_tenancy(self) -> Tenancy:
        return Tenancy(self.events, self.central_bindings)

    def domain_resolver(self) -> DomainTenantResolver:
        return DomainTenantResolver(self.tenants)

    def path_resolver(self) -> PathTenantResolver:
        return PathTenantResolver(self.tenants)

    def request_data_resolver(self) -> RequestDataTenantResolver:
        return RequestDataTenantResolver(self.tenants)

    def attach_queue(self, queue: PipelineQueue) -> None:
        """Enable queued pipelines; the queue itself needs the job registry."""
        self.runner.use_queue(queue)

    def close(self) -> None:
        self.databases.dispose()
