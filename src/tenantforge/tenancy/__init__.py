"""TenantForge Tenancy: tenants, lifecycle events, pipelines and the tenancy context."""

from tenantforge.tenancy.actions import CentralUser, CreateTenantUserAction
from tenantforge.tenancy.bootstrappers import (
    BootstrapTenancy,
    CacheTenancyBootstrapper,
    DatabaseTenancyBootstrapper,
    FilesystemTenancyBootstrapper,
    LogContextTenancyBootstrapper,
    PermissionCacheKeyListeners,
    RevertToCentralContext,
    TenancyBootstrapper,
    TenantDatabaseDoesNotExistError,
)
from tenantforge.tenancy.cache import ScopedCache, TenantAwareCache
from tenantforge.tenancy.event_bus import EventBus, Listener, ListenerMap
from tenantforge.tenancy.models import Domain, Tenant
from tenantforge.tenancy.pipeline import Job, JobPipeline, JobRegistry, JobRunner, PipelineQueue
from tenantforge.tenancy.repository import TenantRepository
from tenantforge.tenancy.runtime import TenancyRuntime
from tenantforge.tenancy.settings import TenancySettings, get_tenancy_settings
from tenantforge.tenancy.tenancy import ResourceBindings, Tenancy

__all__ = [
    "BootstrapTenancy",
    "CacheTenancyBootstrapper",
    "CentralUser",
    "CreateTenantUserAction",
    "DatabaseTenancyBootstrapper",
    "Domain",
    "EventBus",
    "FilesystemTenancyBootstrapper",
    "Job",
    "JobPipeline",
    "JobRegistry",
    "JobRunner",
    "Listener",
    "ListenerMap",
    "LogContextTenancyBootstrapper",
    "PermissionCacheKeyListeners",
    "PipelineQueue",
    "ResourceBindings",
    "RevertToCentralContext",
    "ScopedCache",
    "Tenancy",
    "TenancyBootstrapper",
    "TenancyRuntime",
    "TenancySettings",
    "Tenant",
    "TenantAwareCache",
    "TenantDatabaseDoesNotExistError",
    "TenantRepository",
    "get_tenancy_settings",
]
