"""Tenant resolvers: map request data to a tenant or fail.

Resolvers are framework-agnostic; the tenancy middleware extracts the
host, route parameter or request payload and hands it to a resolver.
"""

from __future__ import annotations

import ipaddress
from typing import TYPE_CHECKING

from tenantforge.foundation.exceptions import (
    TenantCouldNotBeIdentifiedByPathError,
    TenantCouldNotBeIdentifiedByRequestDataError,
    TenantCouldNotBeIdentifiedOnDomainError,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tenantforge.tenancy.models import Tenant
    from tenantforge.tenancy.repository import TenantRepository


def _is_ip_address(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def is_subdomain_host(host: str, central_domains: Iterable[str]) -> bool:
    """True when ``host`` sits strictly below one of the central domains."""
    host = host.lower()
    if _is_ip_address(host):
        return False
    return any(host.endswith(f".{central}") for central in central_domains)


def subdomain_of(host: str, central_domains: Iterable[str]) -> str | None:
    """Leftmost label of ``host`` when it is a subdomain of a central domain."""
    if not is_subdomain_host(host, central_domains):
        return None
    return host.lower().split(".", 1)[0]


class DomainTenantResolver:
    """Resolves a host or bare subdomain through the tenant's domain records."""

    def __init__(self, tenants: TenantRepository) -> None:
        self._tenants = tenants

    def resolve(self, domain: str) -> Tenant:
        tenant = self._tenants.find_by_domain(domain)
        if tenant is None:
            raise TenantCouldNotBeIdentifiedOnDomainError(domain)
        return tenant


class PathTenantResolver:
    """Resolves the tenant key carried in the `tenant` route parameter."""

    tenant_parameter_name = "tenant"

    def __init__(self, tenants: TenantRepository) -> None:
        self._tenants = tenants

    def resolve(self, tenant_id: str) -> Tenant:
        tenant = self._tenants.find(tenant_id) if tenant_id else None
        if tenant is None:
            raise TenantCouldNotBeIdentifiedByPathError(tenant_id)
        return tenant


class RequestDataTenantResolver:
    """Resolves the tenant key sent in a header or query parameter."""

    header = "x-tenant"
    query_parameter = "tenant"

    def __init__(self, tenants: TenantRepository) -> None:
        self._tenants = tenants

    def resolve(self, payload: str) -> Tenant:
        tenant = self._tenants.find(payload) if payload else None
        if tenant is None:
            raise TenantCouldNotBeIdentifiedByRequestDataError(payload)
        return tenant
