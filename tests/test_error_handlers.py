"""Unit tests for the problem-details exception handlers."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tenantforge.foundation.exceptions import (
    AccessFromCentralDomainError,
    ConflictError,
    DomainError,
    JobPipelineError,
    NotASubdomainError,
    NotFoundError,
    TenantCouldNotBeIdentifiedOnDomainError,
    ValidationError,
)
from tenantforge.infra.fastapi.error_handlers import (
    PROBLEM_MEDIA_TYPE,
    ProblemDetail,
    _sanitize_context,
    _sanitize_value,
    register_exception_handlers,
)


def _make_client(exc: Exception) -> TestClient:
    """App whose only route raises ``exc``."""
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/boom")
    async def boom() -> None:
        raise exc

    return TestClient(app, raise_server_exceptions=False)


class TestProblemDetail:
    @pytest.mark.unit
    def test_exclude_none_serialization(self) -> None:
        problem = ProblemDetail(type="/errors/test", title="Test", status=400, detail="detail")
        data = problem.model_dump(exclude_none=True)
        assert set(data) == {"type", "title", "status", "detail"}


class TestSanitization:
    @pytest.mark.unit
    def test_sensitive_keys_are_dropped(self) -> None:
        result = _sanitize_context({"tenant_id": "acme", "password": "x", "Token": "y"})
        assert result == {"tenant_id": "acme"}

    @pytest.mark.unit
    def test_empty_context_is_none(self) -> None:
        assert _sanitize_context({}) is None
        assert _sanitize_context(None) is None

    @pytest.mark.unit
    def test_connection_strings_are_redacted(self) -> None:
        result = _sanitize_value("could not connect to postgresql+psycopg://app:pw@db:5432/tenantacme")
        assert "app:pw" not in result
        assert "REDACTED" in result

    @pytest.mark.unit
    def test_values_become_json_safe(self) -> None:
        when = datetime(2024, 1, 15, 10, 30)
        assert _sanitize_value(when) == when.isoformat()
        assert _sanitize_value(("a", 1)) == ["a", 1]
        assert _sanitize_value({1, 2}) in ("{1, 2}", "{2, 1}")


class TestHandlers:
    @pytest.mark.unit
    def test_tenant_not_identified_is_404(self) -> None:
        response = _make_client(TenantCouldNotBeIdentifiedOnDomainError("nope.test")).get("/boom")

        assert response.status_code == 404
        assert response.headers["content-type"] == PROBLEM_MEDIA_TYPE
        body = response.json()
        assert body["type"] == "/errors/tenant-not-identified"
        assert body["title"] == "Tenant Not Found"
        assert body["instance"] == "/boom"
        assert body["context"]["strategy"] == "domain"

    @pytest.mark.unit
    def test_central_domain_access_hides_details(self) -> None:
        response = _make_client(AccessFromCentralDomainError("example.com")).get("/boom")

        assert response.status_code == 404
        body = response.json()
        assert body["detail"] == "Not Found"
        assert "context" not in body

    @pytest.mark.unit
    def test_not_a_subdomain_uses_not_found_handler(self) -> None:
        response = _make_client(NotASubdomainError("acme.test")).get("/boom")

        assert response.status_code == 404
        assert response.json()["type"] == "/errors/not-found"

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("exc", "status", "type_"),
        [
            (NotFoundError("Tenant", "ghost"), 404, "/errors/not-found"),
            (ValidationError("id", "bad key"), 422, "/errors/validation-error"),
            (ConflictError("taken", domain="acme"), 409, "/errors/conflict"),
            (DomainError("generic"), 400, "/errors/domain-error"),
        ],
    )
    def test_domain_errors(self, exc: DomainError, status: int, type_: str) -> None:
        response = _make_client(exc).get("/boom")

        assert response.status_code == status
        assert response.json()["type"] == type_
        assert response.json()["error_code"] == exc.error_code

    @pytest.mark.unit
    def test_job_pipeline_error_names_the_failing_step(self) -> None:
        exc = JobPipelineError("migrate_database", ["create_database"], "acme")

        response = _make_client(exc).get("/boom")

        assert response.status_code == 500
        body = response.json()
        assert body["type"] == "/errors/provisioning-failed"
        assert body["context"] == {
            "step": "migrate_database",
            "completed": ["create_database"],
            "tenant_id": "acme",
        }
        assert body["correlation_id"]

    @pytest.mark.unit
    def test_request_validation_error(self) -> None:
        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/items/{item_id}")
        async def item(item_id: int) -> dict[str, Any]:
            return {"item_id": item_id}

        response = TestClient(app).get("/items/abc")

        assert response.status_code == 422
        assert response.json()["error_code"] == "REQUEST_VALIDATION_ERROR"
        assert response.json()["context"]["errors"][0]["loc"] == ["path", "item_id"]

    @pytest.mark.unit
    def test_unhandled_exception_is_sanitized(self) -> None:
        response = _make_client(RuntimeError("database password=hunter2")).get("/boom")

        assert response.status_code == 500
        body = response.json()
        assert "hunter2" not in body["detail"]
        assert "context" not in body
        assert body["correlation_id"]

