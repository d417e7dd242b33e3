"""Tenant routes, identified by subdomain and closed to central domains."""

from __future__ import annotations

import asyncio
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from sqlalchemy import func, select

from tenantforge.infra.fastapi.dependencies import get_tenancy
from tenantforge.tenancy.database import users
from tenantforge.tenancy.tenancy import Tenancy

middleware = [
    "web",
    "InitializeTenancyBySubdomain",
    "PreventAccessFromCentralDomains",
]

router = APIRouter(tags=["tenant"])

ActiveTenancy = Annotated[Tenancy, Depends(get_tenancy)]


def _count_users(engine: Any) -> int:
    with engine.connect() as conn:
        return int(conn.execute(select(func.count()).select_from(users)).scalar_one())


@router.get("/dashboard")
async def dashboard(tenancy: ActiveTenancy) -> dict[str, Any]:
    tenant = tenancy.require_tenant()
    bindings = tenancy.bindings
    visits = int(bindings.cache.get("visits", 0)) + 1
    bindings.cache.set("visits", visits)
    return {
        "tenant": tenant.get_tenant_key(),
        "name": tenant.data.get("name"),
        "visits": visits,
        "users": await asyncio.to_thread(_count_users, bindings.engine),
        "storage_root": str(bindings.storage_root),
        "permission_cache_key": bindings.permission_cache_key,
    }
