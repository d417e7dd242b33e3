"""TenantForge: subdomain-based multi-tenancy for FastAPI applications."""

__version__ = "0.1.0"
