"""FastAPI dependencies exposing the tenancy runtime and the request's tenancy."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request  # noqa: TC002 - FastAPI resolves the annotation at runtime

from tenantforge.foundation.exceptions import TenancyNotInitializedError

if TYPE_CHECKING:
    from tenantforge.tenancy.models import Tenant
    from tenantforge.tenancy.runtime import TenancyRuntime
    from tenantforge.tenancy.tenancy import Tenancy


def get_runtime(request: Request) -> TenancyRuntime:
    """The application's tenancy runtime, set up by ``create_app``."""
    runtime: TenancyRuntime | None = getattr(request.app.state, "tenancy_runtime", None)
    if runtime is None:
        msg = "Tenancy runtime is not configured on this application"
        raise RuntimeError(msg)
    return runtime


def get_tenancy(request: Request) -> Tenancy:
    """The tenancy created for this request by an identification middleware.

    Raises:
        TenancyNotInitializedError: When the route runs without tenancy middleware.
    """
    tenancy: Tenancy | None = getattr(request.state, "tenancy", None)
    if tenancy is None or not tenancy.initialized:
        raise TenancyNotInitializedError()
    return tenancy


def get_current_tenant(request: Request) -> Tenant:
    return get_tenancy(request).require_tenant()
