"""Tenant database management on SQLAlchemy.

Each tenant owns one database named ``<prefix><tenant key><suffix>``:

- ``sqlite``: one file per tenant under ``TenancySettings.database_path``.
- ``postgresql``: a database on the central server, created and dropped
  through the central engine in AUTOCOMMIT mode.

Usage:
    manager = TenantDatabaseManager(settings)
    manager.create_database(tenant)
    engine = manager.engine_for(tenant)
    manager.dispose()
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import (
    Column,
    Engine,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    text,
)
from sqlalchemy.engine import URL, make_url

if TYPE_CHECKING:
    from tenantforge.tenancy.models import Tenant
    from tenantforge.tenancy.settings import TenancySettings

logger = logging.getLogger(__name__)

# Schema migrated into every tenant database.
tenant_metadata = MetaData()

users = Table(
    "users",
    tenant_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("global_id", String(64), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password", String(255), nullable=False),
)


class TenantDatabaseManager:
    """Creates, deletes and connects to tenant databases.

    Engines are cached per tenant and disposed when the tenant database is
    deleted or the manager is disposed.
    """

    def __init__(self, settings: TenancySettings) -> None:
        self._settings = settings
        self._engines: dict[str, Engine] = {}
        self._central_engine: Engine | None = None
        self._lock = threading.Lock()

    @property
    def driver(self) -> str:
        return self._settings.database_driver

    def database_name(self, tenant: Tenant) -> str:
        return self._settings.database_name_for(tenant.get_tenant_key())

    def _sqlite_path(self, tenant: Tenant) -> Path:
        return self._settings.database_path / f"{self.database_name(tenant)}.sqlite"

    def url_for(self, tenant: Tenant) -> URL:
        """Connection URL of the tenant's database."""
        if self.driver == "sqlite":
            return make_url(f"sqlite:///{self._sqlite_path(tenant)}")
        return make_url(self._settings.central_database_url).set(database=self.database_name(tenant))

    def central_url(self) -> URL:
        return make_url(self._settings.central_database_url)

    def _create_engine(self, url: URL, **kwargs: object) -> Engine:
        if url.get_backend_name() == "sqlite":
            # Pipeline steps and handlers run engines on worker threads.
            return create_engine(url, connect_args={"check_same_thread": False})
        return create_engine(url, pool_pre_ping=True, **kwargs)  # type: ignore[arg-type]

    def central_engine(self) -> Engine:
        with self._lock:
            if self._central_engine is None:
                url = self.central_url()
                if url.get_backend_name() == "sqlite" and url.database:
                    Path(url.database).parent.mkdir(parents=True, exist_ok=True)
                self._central_engine = self._create_engine(url)
            return self._central_engine

    def engine_for(self, tenant: Tenant) -> Engine:
        """Get or create the cached engine bound to the tenant's database."""
        key = tenant.get_tenant_key()
        with self._lock:
            engine = self._engines.get(key)
            if engine is None:
                engine = self._create_engine(self.url_for(tenant))
                self._engines[key] = engine
            return engine

    def database_exists(self, tenant: Tenant) -> bool:
        if self.driver == "sqlite":
            return self._sqlite_path(tenant).exists()
        with self.central_engine().connect() as conn:
            row = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": self.database_name(tenant)},
            ).first()
        return row is not None

    def create_database(self, tenant: Tenant) -> bool:
        """Create the tenant database. Returns False if it already existed."""
        if self.database_exists(tenant):
            logger.info("tenant_database_exists: %s", self.database_name(tenant))
            return False
        if self.driver == "sqlite":
            path = self._sqlite_path(tenant)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.touch()
        else:
            name = self._quoted_name(tenant)
            engine = self.central_engine().execution_options(isolation_level="AUTOCOMMIT")
            with engine.connect() as conn:
                conn.execute(text(f"CREATE DATABASE {name}"))
        logger.info("tenant_database_created: %s", self.database_name(tenant))
        return True

    def delete_database(self, tenant: Tenant) -> bool:
        """Drop the tenant database. Returns False if it did not exist."""
        self._dispose_tenant_engine(tenant)
        if not self.database_exists(tenant):
            return False
        if self.driver == "sqlite":
            self._sqlite_path(tenant).unlink(missing_ok=True)
        else:
            name = self._quoted_name(tenant)
            engine = self.central_engine().execution_options(isolation_level="AUTOCOMMIT")
            with engine.connect() as conn:
                conn.execute(text(f"DROP DATABASE IF EXISTS {name}"))
        logger.info("tenant_database_deleted: %s", self.database_name(tenant))
        return True

    def migrate(self, tenant: Tenant) -> None:
        tenant_metadata.create_all(self.engine_for(tenant))

    def rollback(self, tenant: Tenant) -> None:
        tenant_metadata.drop_all(self.engine_for(tenant))

    def _quoted_name(self, tenant: Tenant) -> str:
        preparer = self.central_engine().dialect.identifier_preparer
        return preparer.quote(self.database_name(tenant))

    def _dispose_tenant_engine(self, tenant: Tenant) -> None:
        with self._lock:
            engine = self._engines.pop(tenant.get_tenant_key(), None)
        if engine is not None:
            engine.dispose()

    def dispose(self) -> None:
        """Dispose every cached engine."""
        with self._lock:
            engines = list(self._engines.values())
            self._engines.clear()
            central, self._central_engine = self._central_engine, None
        for engine in engines:
            engine.dispose()
        if central is not None:
            central.dispose()
