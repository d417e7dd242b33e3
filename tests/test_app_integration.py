"""End-to-end tests against the Acme SaaS example application."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from tenantforge.tenancy.events import (
    BootstrappingTenancy,
    EndingTenancy,
    InitializingTenancy,
    RevertedToCentralContext,
    RevertingToCentralContext,
    TenancyBootstrapped,
    TenancyEnded,
    TenancyInitialized,
)

if TYPE_CHECKING:
    from conftest import EventRecorder
    from fastapi import FastAPI
    from fastapi.testclient import TestClient

    from tenantforge.tenancy.models import Tenant
    from tenantforge.tenancy.runtime import TenancyRuntime

ADMIN = "http://example.com/admin/tenants"

TENANCY_EVENTS = (
    InitializingTenancy,
    TenancyInitialized,
    EndingTenancy,
    TenancyEnded,
    BootstrappingTenancy,
    TenancyBootstrapped,
    RevertingToCentralContext,
    RevertedToCentralContext,
)


class _BrokenJob:
    def __init__(self, name: str) -> None:
        self.name = name

    async def handle(self, tenant: Tenant) -> None:
        raise OSError(f"{self.name} failed")


def _runtime(app: FastAPI) -> TenancyRuntime:
    return app.state.tenancy_runtime


def _create(client: TestClient, tenant_id: str = "acme", **body: Any) -> Any:
    payload = {"id": tenant_id, "data": {"name": tenant_id.title()}, "domains": [tenant_id], **body}
    return client.post(ADMIN, json=payload)


@pytest.mark.integration
class TestCentralApp:
    def test_central_home(self, client: TestClient) -> None:
        response = client.get("http://example.com/")

        assert response.status_code == 200
        assert response.json() == {"app": "central"}
        assert "x-correlation-id" in response.headers

    def test_every_central_domain_serves_central_routes(self, client: TestClient) -> None:
        assert client.get("http://localhost/").json() == {"app": "central"}

    def test_universal_routes_on_central_and_tenant_hosts(self, client: TestClient) -> None:
        _create(client)

        assert client.get("http://example.com/up").json() == {"status": "ok"}
        assert client.get("http://acme.example.com/up").json() == {"status": "ok"}

    def test_admin_is_not_served_on_tenant_hosts(self, client: TestClient) -> None:
        _create(client)

        assert client.get("http://acme.example.com/admin/tenants").status_code == 404


@pytest.mark.integration
class TestTenantAdministration:
    def test_create_provisions_database_and_storage(
        self, client: TestClient, acme_app: FastAPI
    ) -> None:
        response = _create(client)

        assert response.status_code == 201
        body = response.json()
        assert body["id"] == "acme"
        assert body["domains"] == ["acme"]
        runtime = _runtime(acme_app)
        tenant = runtime.tenants.get("acme")
        assert runtime.databases.database_exists(tenant)
        assert runtime.settings.storage_root_for("acme").is_dir()

    def test_list_get_and_update(self, client: TestClient) -> None:
        _create(client)
        _create(client, "globex")

        assert [t["id"] for t in client.get(ADMIN).json()] == ["acme", "globex"]
        assert client.get(f"{ADMIN}/globex").json()["data"] == {"name": "Globex"}

        response = client.patch(f"{ADMIN}/acme", json={"data": {"plan": "gold"}})
        assert response.status_code == 200
        assert response.json()["data"] == {"name": "Acme", "plan": "gold"}

    def test_unknown_tenant_is_404(self, client: TestClient) -> None:
        response = client.get(f"{ADMIN}/ghost")

        assert response.status_code == 404
        assert response.json()["error_code"] == "RESOURCE_NOT_FOUND"

    def test_duplicate_tenant_and_domain_conflict(self, client: TestClient) -> None:
        _create(client)

        assert _create(client).status_code == 409
        response = _create(client, "globex", domains=["acme"])
        assert response.status_code == 409
        assert response.json()["type"] == "/errors/conflict"

    def test_invalid_tenant_key_is_rejected(self, client: TestClient) -> None:
        response = _create(client, "Not Valid!", domains=[])

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_attach_domain(self, client: TestClient) -> None:
        _create(client)

        response = client.post(f"{ADMIN}/acme/domains", json={"domain": "acme.test"})

        assert response.status_code == 201
        assert response.json()["domains"] == ["acme", "acme.test"]

    def test_delete_removes_resources_and_routes(
        self, client: TestClient, acme_app: FastAPI
    ) -> None:
        _create(client)
        runtime = _runtime(acme_app)
        tenant = runtime.tenants.get("acme")

        assert client.delete(f"{ADMIN}/acme").status_code == 204

        assert not runtime.databases.database_exists(tenant)
        assert not runtime.settings.storage_root_for("acme").exists()
        assert client.get("http://acme.example.com/dashboard").status_code == 404

    def test_failed_provisioning_is_retried_through_provision(
        self, client: TestClient, acme_app: FastAPI
    ) -> None:
        runtime = _runtime(acme_app)
        migrate = runtime.jobs.get("migrate_database")
        runtime.jobs.register(_BrokenJob("migrate_database"))

        failed = _create(client)

        assert failed.status_code == 500
        assert failed.json()["error_code"] == "JOB_PIPELINE_FAILED"
        assert _create(client).status_code == 409
        assert client.get(f"{ADMIN}/acme").json()["domains"] == []

        runtime.jobs.register(migrate)
        response = client.post(f"{ADMIN}/acme/provision", json={"domains": ["acme"]})

        assert response.status_code == 200
        assert response.json()["domains"] == ["acme"]
        assert client.get("http://acme.example.com/dashboard").json()["users"] == 0

    def test_provision_unknown_tenant_is_404(self, client: TestClient) -> None:
        assert client.post(f"{ADMIN}/ghost/provision").status_code == 404

    def test_create_tenant_user(self, client: TestClient) -> None:
        _create(client)
        user = {
            "global_id": "u-1",
            "name": "Ada",
            "email": "ada@example.com",
            "password": "$2b$12$hash",
        }

        response = client.post(f"{ADMIN}/acme/users", json=user)

        assert response.status_code == 201
        assert response.json() == {
            "id": 1,
            "global_id": "u-1",
            "name": "Ada",
            "email": "ada@example.com",
        }
        assert client.get("http://acme.example.com/dashboard").json()["users"] == 1


@pytest.mark.integration
class TestTenantRoutes:
    def test_dashboard_runs_in_tenant_context(self, client: TestClient, acme_app: FastAPI) -> None:
        _create(client)
        settings = _runtime(acme_app).settings

        body = client.get("http://acme.example.com/dashboard").json()

        assert body["tenant"] == "acme"
        assert body["name"] == "Acme"
        assert body["users"] == 0
        assert body["storage_root"] == str(settings.storage_root_for("acme"))
        assert body["permission_cache_key"].endswith(".tenant.acme")

    def test_cache_is_isolated_between_tenants(self, client: TestClient) -> None:
        _create(client)
        _create(client, "globex")

        assert client.get("http://acme.example.com/dashboard").json()["visits"] == 1
        assert client.get("http://acme.example.com/dashboard").json()["visits"] == 2
        assert client.get("http://globex.example.com/dashboard").json()["visits"] == 1

    def test_dashboard_on_central_domain_is_404(self, client: TestClient) -> None:
        _create(client)

        response = client.get("http://example.com/dashboard")

        assert response.status_code == 404
        assert response.json()["detail"] == "Not Found"

    def test_unknown_subdomain_is_404(self, client: TestClient) -> None:
        response = client.get("http://initech.example.com/dashboard")

        assert response.status_code == 404
        assert response.json()["type"] == "/errors/tenant-not-identified"


@pytest.mark.integration
class TestLiveUpdate:
    def test_update_runs_in_tenant_context(self, client: TestClient) -> None:
        _create(client)

        response = client.post(
            "http://acme.example.com/livewire/update", json={"components": [{"id": "c1"}]}
        )

        assert response.status_code == 200
        assert response.json() == {
            "tenant": "acme",
            "file_url_root": "http://acme.example.com/storage/tenantacme",
            "components": [{"id": "c1"}],
        }

    def test_preview_serves_tenant_uploads(self, client: TestClient, acme_app: FastAPI) -> None:
        _create(client)
        uploads = _runtime(acme_app).settings.storage_root_for("acme") / "livewire-tmp"
        uploads.mkdir(parents=True)
        (uploads / "avatar.txt").write_text("acme avatar")

        response = client.get("http://acme.example.com/livewire/preview-file/avatar.txt")

        assert response.status_code == 200
        assert response.text == "acme avatar"

    def test_preview_of_missing_file_is_404(self, client: TestClient) -> None:
        _create(client)

        response = client.get("http://acme.example.com/livewire/preview-file/missing.txt")

        assert response.status_code == 404

    def test_preview_is_isolated_per_tenant(self, client: TestClient, acme_app: FastAPI) -> None:
        _create(client)
        _create(client, "globex")
        uploads = _runtime(acme_app).settings.storage_root_for("acme") / "livewire-tmp"
        uploads.mkdir(parents=True)
        (uploads / "avatar.txt").write_text("acme avatar")

        response = client.get("http://globex.example.com/livewire/preview-file/avatar.txt")

        assert response.status_code == 404


@pytest.mark.integration
class TestTenancyEventsPerRequest:
    def test_tenant_request_initializes_and_ends_once(
        self, client: TestClient, acme_app: FastAPI, recorder: EventRecorder
    ) -> None:
        _create(client)
        recorder.attach(_runtime(acme_app).events, (TenancyInitialized, TenancyEnded))

        assert client.get("http://acme.example.com/dashboard").status_code == 200
        assert recorder.names == ["TenancyInitialized", "TenancyEnded"]

        recorder.clear()
        assert client.get("http://acme.example.com/dashboard").status_code == 200
        assert recorder.names == ["TenancyInitialized", "TenancyEnded"]

    def test_failing_tenant_handler_still_ends_tenancy_once(
        self, client: TestClient, acme_app: FastAPI, recorder: EventRecorder
    ) -> None:
        _create(client)
        recorder.attach(_runtime(acme_app).events, (TenancyInitialized, TenancyEnded))

        response = client.get("http://acme.example.com/livewire/preview-file/missing.png")

        assert response.status_code == 404
        assert recorder.names == ["TenancyInitialized", "TenancyEnded"]

    @pytest.mark.parametrize(
        "url",
        [
            "http://example.com/",
            "http://example.com/up",
            "http://localhost/",
            "http://example.com/admin/tenants",
        ],
    )
    def test_central_requests_publish_no_tenancy_events(
        self, client: TestClient, acme_app: FastAPI, recorder: EventRecorder, url: str
    ) -> None:
        _create(client)
        recorder.attach(_runtime(acme_app).events, TENANCY_EVENTS)

        assert client.get(url).status_code == 200
        assert recorder.names == []

    def test_central_access_to_tenant_route_publishes_no_tenancy_events(
        self, client: TestClient, acme_app: FastAPI, recorder: EventRecorder
    ) -> None:
        _create(client)
        recorder.attach(_runtime(acme_app).events, TENANCY_EVENTS)

        assert client.get("http://example.com/dashboard").status_code == 404
        assert recorder.names == []
