"""TenantForge Infra FastAPI: app factory, tenancy provider, middleware kernel."""

from tenantforge.infra.fastapi.app_factory import create_app
from tenantforge.infra.fastapi.dependencies import get_current_tenant, get_runtime, get_tenancy
from tenantforge.infra.fastapi.error_handlers import ProblemDetail, register_exception_handlers
from tenantforge.infra.fastapi.kernel import MiddlewareKernel
from tenantforge.infra.fastapi.provider import TenancyServiceProvider
from tenantforge.infra.fastapi.settings import AppSettings, CORSSettings

__all__ = [
    "AppSettings",
    "CORSSettings",
    "MiddlewareKernel",
    "ProblemDetail",
    "TenancyServiceProvider",
    "create_app",
    "get_current_tenant",
    "get_runtime",
    "get_tenancy",
    "register_exception_handlers",
]
