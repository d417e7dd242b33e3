"""Tenancy configuration using Pydantic settings.

Settings are loaded from environment variables with the ``TENANCY_``
prefix. List values accept comma-separated strings, e.g.
``TENANCY_CENTRAL_DOMAINS=admin.example.com,example.com``.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_PERMISSION_CACHE_KEY = "tenantforge.permission.cache"


class TenancySettings(BaseSettings):
    """Configuration for tenant identification, provisioning and scoping.

    Environment Variables:
        TENANCY_CENTRAL_DOMAINS: Hosts that serve the central (non-tenant) app.
        TENANCY_ROUTES_PATH: Directory holding ``web.py``, ``tenant.py``
            and ``universal.py`` route modules.
        TENANCY_STORAGE_PATH: Root directory for per-tenant storage.
        TENANCY_DATABASE_DRIVER: ``sqlite`` or ``postgresql``.
        TENANCY_QUEUE_PIPELINES: Run provisioning pipelines on the taskiq
            worker instead of inside the request (default: false).

    Example:
        >>> settings = TenancySettings(central_domains="admin.example.com")
        >>> settings.central_domains
        ['admin.example.com']
    """

    model_config = SettingsConfigDict(
        env_prefix="TENANCY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    central_domains: Annotated[list[str], NoDecode] = Field(
        default=["127.0.0.1", "localhost"],
        description="Hosts served by central routes; never tenant-resolved",
    )
    routes_path: Path = Field(default=Path("routes"), description="Route module directory")

    storage_path: Path = Field(default=Path("storage"), description="Central storage root")
    storage_suffix_base: str = Field(default="tenant", description="Tenant storage dir prefix")

    database_driver: Literal["sqlite", "postgresql"] = Field(default="sqlite")
    central_database_url: str = Field(
        default="sqlite:///database/central.sqlite",
        description="Connection URL of the central database",
    )
    database_path: Path = Field(
        default=Path("database"),
        description="Directory for tenant SQLite files",
    )
    database_prefix: str = Field(default="tenant", description="Tenant database name prefix")
    database_suffix: str = Field(default="", description="Tenant database name suffix")

    cache_prefix_base: str = Field(default="tenant_", description="Tenant cache key prefix")
    cache_maxsize: int = Field(default=10_000, ge=1)
    cache_ttl: int = Field(default=300, ge=1, description="Cache TTL in seconds")

    queue_pipelines: bool = Field(
        default=False,
        description="Queue provisioning pipelines instead of running them inline",
    )
    permission_cache_key: str = Field(default=DEFAULT_PERMISSION_CACHE_KEY)

    @field_validator("central_domains", mode="before")
    @classmethod
    def _parse_comma_separated(cls, v: Any) -> list[str]:
        if isinstance(v, str):
            return [s.strip().lower() for s in v.split(",") if s.strip()]
        if isinstance(v, list | tuple):
            return [str(s).strip().lower() for s in v]
        msg = "central_domains must be a list or a comma-separated string"
        raise ValueError(msg)

    def storage_root_for(self, tenant_key: str) -> Path:
        """Storage root of a tenant, e.g. ``storage/tenantacme``."""
        return self.storage_path / f"{self.storage_suffix_base}{tenant_key}"

    def database_name_for(self, tenant_key: str) -> str:
        return f"{self.database_prefix}{tenant_key}{self.database_suffix}"

    def is_central_domain(self, host: str) -> bool:
        return host.lower() in self.central_domains


@lru_cache(maxsize=1)
def get_tenancy_settings() -> TenancySettings:
    """Get cached tenancy settings singleton.

    Clear with ``get_tenancy_settings.cache_clear()`` in tests.
    """
    return TenancySettings()
