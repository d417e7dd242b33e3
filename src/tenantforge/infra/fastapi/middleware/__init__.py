"""Middleware components for the TenantForge FastAPI integration."""

from tenantforge.infra.fastapi.middleware.file_url import TenantFileUrlMiddleware
from tenantforge.infra.fastapi.middleware.request_context import RequestContextMiddleware
from tenantforge.infra.fastapi.middleware.request_id import (
    RequestIdMiddleware,
    get_request_id,
)
from tenantforge.infra.fastapi.middleware.tenancy import (
    TENANCY_MIDDLEWARE,
    InitializeTenancyByDomain,
    InitializeTenancyByDomainOrSubdomain,
    InitializeTenancyByPath,
    InitializeTenancyByRequestData,
    InitializeTenancyBySubdomain,
    PreventAccessFromCentralDomains,
)

__all__ = [
    "TENANCY_MIDDLEWARE",
    "InitializeTenancyByDomain",
    "InitializeTenancyByDomainOrSubdomain",
    "InitializeTenancyByPath",
    "InitializeTenancyByRequestData",
    "InitializeTenancyBySubdomain",
    "PreventAccessFromCentralDomains",
    "RequestContextMiddleware",
    "RequestIdMiddleware",
    "TenantFileUrlMiddleware",
    "get_request_id",
]
