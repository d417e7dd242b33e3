"""Shared fixtures: isolated tenancy settings, runtimes and the example app."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from fastapi.testclient import TestClient

from examples.acme_saas.app import create_acme_app
from tenantforge.infra.fastapi.provider import TenancyServiceProvider
from tenantforge.tenancy.events import ALL_EVENTS
from tenantforge.tenancy.runtime import TenancyRuntime
from tenantforge.tenancy.settings import TenancySettings

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from pathlib import Path

    from fastapi import FastAPI

    from tenantforge.tenancy.event_bus import EventBus
    from tenantforge.tenancy.events import TenancyEvent

# Entry-point names excluded in tests (no external services, no global logging).
TEST_EXCLUDE_NAMES = frozenset({"observability", "taskiq"})

CENTRAL_DOMAINS = ["example.com", "localhost"]


class EventRecorder:
    """Listener collecting every event it receives."""

    def __init__(self) -> None:
        self.events: list[TenancyEvent] = []

    def __call__(self, event: TenancyEvent) -> None:
        self.events.append(event)

    @property
    def names(self) -> list[str]:
        return [type(e).__name__ for e in self.events]

    def attach(self, bus: EventBus, event_types: Iterable[type[TenancyEvent]] = ALL_EVENTS) -> None:
        for event_type in event_types:
            bus.listen(event_type, self)

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture()
def tenancy_settings(tmp_path: Path) -> TenancySettings:
    """Settings with every path under the test's temporary directory."""
    return TenancySettings(
        central_domains=CENTRAL_DOMAINS,
        routes_path=tmp_path / "routes",
        storage_path=tmp_path / "storage",
        database_path=tmp_path / "database",
        central_database_url=f"sqlite:///{tmp_path / 'database' / 'central.sqlite'}",
        queue_pipelines=False,
    )


@pytest.fixture()
def runtime(tenancy_settings: TenancySettings) -> Iterator[TenancyRuntime]:
    """A runtime without listeners."""
    rt = TenancyRuntime.build(tenancy_settings)
    yield rt
    rt.close()


@pytest.fixture()
def booted_runtime(runtime: TenancyRuntime) -> TenancyRuntime:
    """A runtime with the provider's listener map subscribed."""
    TenancyServiceProvider(runtime).boot_events()
    return runtime


@pytest.fixture()
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture()
def acme_app(tenancy_settings: TenancySettings) -> FastAPI:
    """A fresh Acme SaaS app for each test."""
    return create_acme_app(tenancy_settings=tenancy_settings, exclude_names=TEST_EXCLUDE_NAMES)


@pytest.fixture()
def client(acme_app: FastAPI) -> Iterator[TestClient]:
    """TestClient for the Acme SaaS app (lifespan hooks executed)."""
    with TestClient(acme_app, raise_server_exceptions=False) as c:
        yield c
