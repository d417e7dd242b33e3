"""Unit tests for contribution types, entry-point discovery and exceptions."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from tenantforge.foundation.contributions import (
    LifespanContribution,
    MiddlewareContribution,
    RouteMiddlewareContribution,
)
from tenantforge.foundation.discovery import GROUP_MIDDLEWARE, DiscoveredContribution, discover
from tenantforge.foundation.exceptions import (
    ConflictError,
    JobPipelineError,
    NotFoundError,
    TenancyNotInitializedError,
    TenantCouldNotBeIdentifiedByPathError,
)


def _entry_point(name: str, value: object = None, error: Exception | None = None) -> MagicMock:
    ep = MagicMock()
    ep.name = name
    if error is not None:
        ep.load.side_effect = error
    else:
        ep.load.return_value = value
    return ep


class TestContributions:
    @pytest.mark.unit
    def test_middleware_priority_band_is_enforced(self) -> None:
        with pytest.raises(ValueError, match="between 0 and 499"):
            MiddlewareContribution(middleware_class=object, priority=500)

    @pytest.mark.unit
    def test_defaults(self) -> None:
        assert MiddlewareContribution(middleware_class=object).priority == 400
        assert LifespanContribution(hook=MagicMock()).priority == 500
        assert RouteMiddlewareContribution(name="x", middleware_class=object).kwargs == {}


class TestDiscover:
    @pytest.mark.unit
    def test_unknown_group_is_empty(self) -> None:
        assert discover("tenantforge.nonexistent.group") == []

    @pytest.mark.unit
    def test_loads_and_filters_entry_points(self) -> None:
        eps = [_entry_point("request_id", 1), _entry_point("skipped", 2)]
        with patch("tenantforge.foundation.discovery.entry_points", return_value=eps):
            result = discover(GROUP_MIDDLEWARE, exclude_names=frozenset({"skipped"}))

        assert result == [DiscoveredContribution(name="request_id", group=GROUP_MIDDLEWARE, value=1)]

    @pytest.mark.unit
    def test_broken_entry_point_is_skipped(self) -> None:
        eps = [_entry_point("broken", error=ImportError("missing extra")), _entry_point("ok", 3)]
        with patch("tenantforge.foundation.discovery.entry_points", return_value=eps):
            result = discover(GROUP_MIDDLEWARE)

        assert [c.name for c in result] == ["ok"]


class TestExceptions:
    @pytest.mark.unit
    def test_not_found_message_and_context(self) -> None:
        exc = NotFoundError("Tenant", "acme")
        assert exc.message == "Tenant not found: acme"
        assert str(exc) == "Tenant not found: acme (resource_type=Tenant, resource_id=acme)"

    @pytest.mark.unit
    def test_conflict_carries_context(self) -> None:
        exc = ConflictError("domain taken", domain="acme")
        assert exc.context == {"domain": "acme"}
        assert exc.error_code == "CONFLICT"

    @pytest.mark.unit
    def test_identification_errors_are_not_found_errors(self) -> None:
        exc = TenantCouldNotBeIdentifiedByPathError("ghost")
        assert isinstance(exc, NotFoundError)
        assert exc.message == "Tenant could not be identified by path: 'ghost'"

    @pytest.mark.unit
    def test_job_pipeline_error(self) -> None:
        exc = JobPipelineError("migrate_database", ["create_database"], "acme")
        assert exc.step == "migrate_database"
        assert exc.completed == ["create_database"]
        assert exc.context["tenant_id"] == "acme"

    @pytest.mark.unit
    def test_tenancy_not_initialized_is_a_runtime_error(self) -> None:
        assert isinstance(TenancyNotInitializedError(), RuntimeError)
