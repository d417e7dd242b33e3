"""Application actions that run inside a tenant's context."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from tenantforge.tenancy.database import users

if TYPE_CHECKING:
    from tenantforge.tenancy.models import Tenant
    from tenantforge.tenancy.tenancy import Tenancy

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CentralUser:
    """A user account held in the central database.

    ``password`` is already hashed; it is copied verbatim.
    """

    global_id: str
    name: str
    email: str
    password: str


class CreateTenantUserAction:
    """Copies a central user into a tenant's ``users`` table."""

    def __init__(self, tenancy: Tenancy) -> None:
        self._tenancy = tenancy

    async def handle(self, tenant: Tenant, user: CentralUser) -> dict[str, Any]:
        async def create(active: Tenant) -> dict[str, Any]:
            engine = self._tenancy.bindings.engine
            if engine is None:
                msg = f"No database bound for tenant '{active.id}'"
                raise RuntimeError(msg)
            row = await asyncio.to_thread(self._insert, engine, user)
            logger.info(
                "tenant_user_created",
                extra={"tenant_id": active.id, "global_id": user.global_id},
            )
            return row

        return await self._tenancy.run_for(tenant, create)

    @staticmethod
    def _insert(engine: Any, user: CentralUser) -> dict[str, Any]:
        with engine.begin() as conn:
            result = conn.execute(
                users.insert().values(
                    global_id=user.global_id,
                    name=user.name,
                    email=user.email,
                    password=user.password,
                )
            )
            user_id = result.inserted_primary_key[0]
        return {"id": user_id, "global_id": user.global_id, "name": user.name, "email": user.email}
