"""Tests for create_app wiring."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
from fastapi import APIRouter
from fastapi.testclient import TestClient

from conftest import TEST_EXCLUDE_NAMES
from tenantforge.foundation.contributions import RouteMiddlewareContribution
from tenantforge.infra.fastapi import AppSettings, create_app
from tenantforge.infra.fastapi.kernel import MiddlewareKernel
from tenantforge.tenancy.runtime import TenancyRuntime

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tenantforge.tenancy.models import Tenant
    from tenantforge.tenancy.settings import TenancySettings


class _PassThrough:
    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(self, scope: Any, receive: Any, send: Any) -> None:
        await self.app(scope, receive, send)


class _RecordingQueue:
    def __init__(self) -> None:
        self.enqueued: list[tuple[list[str], str]] = []

    async def enqueue(self, steps: Sequence[str], tenant: Tenant) -> None:
        self.enqueued.append((list(steps), tenant.id))


def _settings() -> AppSettings:
    return AppSettings(title="Test", version="0.0.1")


class TestCreateApp:
    @pytest.mark.unit
    def test_state_exposes_runtime_and_kernel(self, tenancy_settings: TenancySettings) -> None:
        app = create_app(
            _settings(), tenancy_settings=tenancy_settings, exclude_names=TEST_EXCLUDE_NAMES
        )

        assert isinstance(app.state.tenancy_runtime, TenancyRuntime)
        assert app.state.tenancy_settings is tenancy_settings
        assert isinstance(app.state.middleware_kernel, MiddlewareKernel)
        assert app.state.middleware_kernel.is_booted

    @pytest.mark.unit
    def test_lifespan_prepares_storage_and_closes_runtime(
        self, tenancy_settings: TenancySettings
    ) -> None:
        runtime = TenancyRuntime.build(tenancy_settings)
        closed: list[bool] = []
        runtime.close = lambda: closed.append(True)  # type: ignore[method-assign]
        app = create_app(_settings(), runtime=runtime, exclude_names=TEST_EXCLUDE_NAMES)

        with TestClient(app):
            assert tenancy_settings.storage_path.is_dir()
            assert closed == []

        assert closed == [True]
        runtime.databases.dispose()

    @pytest.mark.unit
    def test_extra_routers_are_included(self, tenancy_settings: TenancySettings) -> None:
        router = APIRouter()

        @router.get("/extra")
        async def extra() -> dict[str, bool]:
            return {"extra": True}

        app = create_app(
            _settings(),
            tenancy_settings=tenancy_settings,
            extra_routers=[router],
            exclude_names=TEST_EXCLUDE_NAMES,
        )

        assert TestClient(app).get("/extra").json() == {"extra": True}

    @pytest.mark.unit
    def test_extra_route_middleware_is_aliased_after_tenancy(
        self, tenancy_settings: TenancySettings
    ) -> None:
        app = create_app(
            _settings(),
            tenancy_settings=tenancy_settings,
            extra_route_middleware=[
                RouteMiddlewareContribution(name="audit", middleware_class=_PassThrough)
            ],
            exclude_names=TEST_EXCLUDE_NAMES,
        )
        kernel: MiddlewareKernel = app.state.middleware_kernel

        assert kernel.has_alias("audit")
        assert kernel.priority[-1] == "audit"
        assert kernel.priority[0] == "PreventAccessFromCentralDomains"

    @pytest.mark.unit
    def test_injected_queue_receives_queued_pipelines(
        self, tenancy_settings: TenancySettings
    ) -> None:
        queue = _RecordingQueue()
        app = create_app(
            _settings(),
            tenancy_settings=tenancy_settings.model_copy(update={"queue_pipelines": True}),
            pipeline_queue=queue,
            exclude_names=TEST_EXCLUDE_NAMES,
        )

        with TestClient(app) as client:
            response = client.post("http://example.com/admin/tenants", json={"id": "acme"})

        assert response.status_code == 201
        assert queue.enqueued == [
            (["create_database", "migrate_database", "create_framework_directories"], "acme")
        ]

    @pytest.mark.unit
    def test_excluded_entry_points_are_not_loaded(self, tenancy_settings: TenancySettings) -> None:
        app = create_app(
            _settings(),
            tenancy_settings=tenancy_settings,
            exclude_groups=frozenset({"tenantforge.middleware", "tenantforge.lifespan"}),
        )

        response = TestClient(app).get("http://example.com/admin/tenants")

        assert response.status_code == 200
        assert "x-request-id" not in response.headers
