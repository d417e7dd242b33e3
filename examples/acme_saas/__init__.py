"""Acme SaaS: example subdomain-based multi-tenant app built on TenantForge.

Central domains serve the marketing page and the tenant admin API;
``<tenant>.<central domain>`` serves the tenant dashboard from the
tenant's own database, cache namespace and storage root.

Modules:
    app:    Application factory (create_acme_app)
    routes: Route modules loaded by the tenancy provider
            (web.py central, tenant.py tenant, universal.py everywhere)
"""

from .app import ROUTES_PATH, create_acme_app

__all__ = ["ROUTES_PATH", "create_acme_app"]
