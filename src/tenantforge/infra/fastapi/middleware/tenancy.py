"""Tenant identification route middleware.

Each identification middleware resolves the request's tenant, creates the
request's :class:`~tenantforge.tenancy.tenancy.Tenancy`, stores it in
``request.state.tenancy`` and ends it once the downstream app returns or
raises, so bootstrapped resources never outlive the request.

Failures raise :class:`~tenantforge.foundation.exceptions.TenantCouldNotBeIdentifiedError`
subclasses; the problem-details handlers render them as 404.

Middleware are referenced by name from route groups; the names are the
class names, which is also how the kernel priority list refers to them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from starlette.datastructures import Headers, QueryParams

from tenantforge.foundation.exceptions import (
    AccessFromCentralDomainError,
    NotASubdomainError,
    TenantCouldNotBeIdentifiedByPathError,
)
from tenantforge.infra.fastapi.middleware._headers import request_host
from tenantforge.tenancy.resolvers import is_subdomain_host, subdomain_of

if TYPE_CHECKING:
    from collections.abc import Callable

    from tenantforge.tenancy.models import Tenant
    from tenantforge.tenancy.runtime import TenancyRuntime

logger = logging.getLogger(__name__)

TENANCY_STATE_KEY = "tenancy"


class _IdentificationMiddleware:
    """Shared request flow: identify, initialize, call the app, end."""

    strategy: str = ""

    def __init__(self, app: Any, runtime: TenancyRuntime) -> None:
        self.app = app
        self.runtime = runtime

    def identify(self, scope: dict[str, Any]) -> Tenant:
        raise NotImplementedError

    def rewrite_scope(self, scope: dict[str, Any], tenant: Tenant) -> dict[str, Any]:
        return scope

    async def __call__(
        self,
        scope: dict[str, Any],
        receive: Callable[..., Any],
        send: Callable[..., Any],
    ) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        tenant = self.identify(scope)
        scope = self.rewrite_scope(scope, tenant)
        state = scope.setdefault("state", {})

        existing = state.get(TENANCY_STATE_KEY)
        if existing is not None and existing.initialized:
            # An outer identification middleware owns this tenancy.
            await existing.initialize(tenant)
            await self.app(scope, receive, send)
            return

        tenancy = self.runtime.new_tenancy()
        state[TENANCY_STATE_KEY] = tenancy
        logger.debug(
            "tenant_identified",
            extra={"tenant_id": tenant.id, "strategy": self.strategy},
        )
        try:
            await tenancy.initialize(tenant)
            await self.app(scope, receive, send)
        finally:
            await tenancy.end()


class InitializeTenancyByDomain(_IdentificationMiddleware):
    """Identifies the tenant by the full request host."""

    strategy = "domain"

    def identify(self, scope: dict[str, Any]) -> Tenant:
        return self.runtime.domain_resolver().resolve(request_host(scope))


class InitializeTenancyBySubdomain(_IdentificationMiddleware):
    """Identifies the tenant by the leftmost label below a central domain.

    ``acme.example.com`` with central domain ``example.com`` resolves the
    domain record ``acme``. Hosts that are not subdomains of a central
    domain (including IP addresses) raise ``NotASubdomainError``.
    """

    strategy = "subdomain"

    def identify(self, scope: dict[str, Any]) -> Tenant:
        host = request_host(scope)
        subdomain = subdomain_of(host, self.runtime.settings.central_domains)
        if subdomain is None:
            raise NotASubdomainError(host)
        return self.runtime.domain_resolver().resolve(subdomain)


class InitializeTenancyByDomainOrSubdomain(_IdentificationMiddleware):
    """Subdomain lookup for subdomains of a central domain, full-host lookup otherwise."""

    strategy = "domain_or_subdomain"

    def identify(self, scope: dict[str, Any]) -> Tenant:
        host = request_host(scope)
        resolver = self.runtime.domain_resolver()
        if is_subdomain_host(host, self.runtime.settings.central_domains):
            return resolver.resolve(host.split(".", 1)[0])
        return resolver.resolve(host)


class InitializeTenancyByPath(_IdentificationMiddleware):
    """Identifies the tenant by the ``{tenant}`` route parameter.

    The parameter is removed from the path parameters before the endpoint
    runs, so handlers receive only their own parameters.
    """

    strategy = "path"

    def identify(self, scope: dict[str, Any]) -> Tenant:
        resolver = self.runtime.path_resolver()
        path_params = scope.get("path_params") or {}
        if resolver.tenant_parameter_name not in path_params:
            raise TenantCouldNotBeIdentifiedByPathError("")
        return resolver.resolve(str(path_params[resolver.tenant_parameter_name]))

    def rewrite_scope(self, scope: dict[str, Any], tenant: Tenant) -> dict[str, Any]:
        name = self.runtime.path_resolver().tenant_parameter_name
        path_params = {k: v for k, v in scope["path_params"].items() if k != name}
        return {**scope, "path_params": path_params}


class InitializeTenancyByRequestData(_IdentificationMiddleware):
    """Identifies the tenant by the ``X-Tenant`` header or ``tenant`` query parameter."""

    strategy = "request_data"

    def identify(self, scope: dict[str, Any]) -> Tenant:
        resolver = self.runtime.request_data_resolver()
        payload = Headers(scope=scope).get(resolver.header, "")
        if not payload:
            query = QueryParams(scope.get("query_string", b""))
            payload = query.get(resolver.query_parameter, "")
        return resolver.resolve(payload)


class PreventAccessFromCentralDomains:
    """Rejects tenant routes requested on a central domain."""

    def __init__(self, app: Any, runtime: TenancyRuntime) -> None:
        self.app = app
        self.runtime = runtime

    async def __call__(
        self,
        scope: dict[str, Any],
        receive: Callable[..., Any],
        send: Callable[..., Any],
    ) -> None:
        if scope["type"] in ("http", "websocket"):
            host = request_host(scope)
            if self.runtime.settings.is_central_domain(host):
                raise AccessFromCentralDomainError(host)
        await self.app(scope, receive, send)


TENANCY_MIDDLEWARE: tuple[type[Any], ...] = (
    PreventAccessFromCentralDomains,
    InitializeTenancyBySubdomain,
    InitializeTenancyByDomain,
    InitializeTenancyByDomainOrSubdomain,
    InitializeTenancyByPath,
    InitializeTenancyByRequestData,
)
