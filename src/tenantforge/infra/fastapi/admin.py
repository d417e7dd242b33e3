"""Central-domain administration API for tenants and their domains.

Mounted only on central domains. Creating and deleting tenants publishes
the lifecycle events whose pipelines provision and remove the tenant's
database and directories.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field

from tenantforge.infra.fastapi.dependencies import get_runtime
from tenantforge.tenancy.actions import CentralUser, CreateTenantUserAction
from tenantforge.tenancy.models import Tenant
from tenantforge.tenancy.runtime import TenancyRuntime

logger = logging.getLogger(__name__)

Runtime = Annotated[TenancyRuntime, Depends(get_runtime)]


class TenantCreate(BaseModel):
    id: str = Field(..., min_length=1, max_length=63, examples=["acme"])
    data: dict[str, Any] = Field(default_factory=dict)
    domains: list[str] = Field(default_factory=list, examples=[["acme"]])


class TenantUpdate(BaseModel):
    data: dict[str, Any]


class DomainCreate(BaseModel):
    domain: str = Field(..., min_length=1, max_length=253)


class TenantProvision(BaseModel):
    domains: list[str] = Field(default_factory=list, examples=[["acme"]])


class TenantUserCreate(BaseModel):
    global_id: str
    name: str
    email: str
    password: str = Field(..., description="Already hashed password of the central user")


class TenantResponse(BaseModel):
    id: str
    data: dict[str, Any]
    domains: list[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_tenant(cls, tenant: Tenant) -> TenantResponse:
        return cls(
            id=tenant.id,
            data=dict(tenant.data),
            domains=[d.domain for d in tenant.domains],
            created_at=tenant.created_at,
            updated_at=tenant.updated_at,
        )


class TenantUserResponse(BaseModel):
    id: int
    global_id: str
    name: str
    email: str


router = APIRouter(prefix="/admin/tenants", tags=["admin"])


@router.get("", response_model=list[TenantResponse])
async def list_tenants(runtime: Runtime) -> list[TenantResponse]:
    return [TenantResponse.from_tenant(t) for t in runtime.tenants.all()]


@router.post("", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant(body: TenantCreate, runtime: Runtime) -> TenantResponse:
    tenant = await runtime.tenants.create(body.id, body.data, body.domains)
    return TenantResponse.from_tenant(tenant)


@router.get("/{tenant_id}", response_model=TenantResponse)
async def get_tenant(tenant_id: str, runtime: Runtime) -> TenantResponse:
    return TenantResponse.from_tenant(runtime.tenants.get(tenant_id))


@router.patch("/{tenant_id}", response_model=TenantResponse)
async def update_tenant(tenant_id: str, body: TenantUpdate, runtime: Runtime) -> TenantResponse:
    tenant = await runtime.tenants.update(tenant_id, body.data)
    return TenantResponse.from_tenant(tenant)


@router.delete("/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tenant(tenant_id: str, runtime: Runtime) -> Response:
    await runtime.tenants.delete(tenant_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{tenant_id}/provision", response_model=TenantResponse)
async def provision_tenant(
    tenant_id: str, runtime: Runtime, body: TenantProvision | None = None
) -> TenantResponse:
    """Re-run the creation pipeline of a tenant whose provisioning failed."""
    domains = body.domains if body is not None else []
    tenant = await runtime.tenants.provision(tenant_id, domains)
    return TenantResponse.from_tenant(tenant)


@router.post(
    "/{tenant_id}/domains",
    response_model=TenantResponse,
    status_code=status.HTTP_201_CREATED,
)
async def attach_domain(tenant_id: str, body: DomainCreate, runtime: Runtime) -> TenantResponse:
    await runtime.tenants.create_domain(tenant_id, body.domain)
    return TenantResponse.from_tenant(runtime.tenants.get(tenant_id))


@router.post(
    "/{tenant_id}/users",
    response_model=TenantUserResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_tenant_user(
    tenant_id: str, body: TenantUserCreate, runtime: Runtime
) -> TenantUserResponse:
    """Copy a central user into the tenant's own database."""
    tenant = runtime.tenants.get(tenant_id)
    action = CreateTenantUserAction(runtime.new_tenancy())
    row = await action.handle(tenant, CentralUser(**body.model_dump()))
    return TenantUserResponse(**row)
