"""Unit tests for tenantforge.tenancy.repository."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from tenantforge.foundation.exceptions import ConflictError, NotFoundError
from tenantforge.tenancy.event_bus import EventBus
from tenantforge.tenancy.events import TenantCreated
from tenantforge.tenancy.repository import TenantRepository

if TYPE_CHECKING:
    from conftest import EventRecorder


def _repository(recorder: EventRecorder) -> TenantRepository:
    bus = EventBus()
    recorder.attach(bus)
    return TenantRepository(bus)


class TestTenantLifecycle:
    @pytest.mark.unit
    @pytest.mark.asyncio(loop_scope="function")
    async def test_create_publishes_saving_creating_created_saved(self, recorder: EventRecorder) -> None:
        repo = _repository(recorder)
        tenant = await repo.create("acme", {"name": "Acme"})

        assert recorder.names == [
            "SavingTenant",
            "CreatingTenant",
            "TenantCreated",
            "TenantSaved",
        ]
        assert repo.get("acme") == tenant
        assert tenant.data["name"] == "Acme"

    @pytest.mark.unit
    @pytest.mark.asyncio(loop_scope="function")
    async def test_create_binds_domains_after_tenant_events(self, recorder: EventRecorder) -> None:
        repo = _repository(recorder)
        tenant = await repo.create("acme", domains=["acme", "acme.test"])

        assert recorder.names[4:] == [
            "SavingDomain",
            "CreatingDomain",
            "DomainCreated",
            "DomainSaved",
        ] * 2
        assert [d.domain for d in tenant.domains] == ["acme", "acme.test"]
        assert repo.find_by_domain("ACME.test") == tenant

    @pytest.mark.unit
    @pytest.mark.asyncio(loop_scope="function")
    async def test_duplicate_tenant_is_a_conflict(self, recorder: EventRecorder) -> None:
        repo = _repository(recorder)
        await repo.create("acme")
        recorder.clear()

        with pytest.raises(ConflictError):
            await repo.create("acme")
        assert recorder.names == []

    @pytest.mark.unit
    @pytest.mark.asyncio(loop_scope="function")
    async def test_update_publishes_saving_updating_updated_saved(self, recorder: EventRecorder) -> None:
        repo = _repository(recorder)
        await repo.create("acme", {"plan": "free"})
        recorder.clear()

        updated = await repo.update("acme", {"plan": "pro"})

        assert recorder.names == [
            "SavingTenant",
            "UpdatingTenant",
            "TenantUpdated",
            "TenantSaved",
        ]
        assert repo.get("acme").data["plan"] == "pro"
        assert updated.data["plan"] == "pro"

    @pytest.mark.unit
    @pytest.mark.asyncio(loop_scope="function")
    async def test_delete_releases_domains_before_the_tenant(self, recorder: EventRecorder) -> None:
        repo = _repository(recorder)
        await repo.create("acme", domains=["acme"])
        recorder.clear()

        await repo.delete("acme")

        assert recorder.names == [
            "DeletingDomain",
            "DomainDeleted",
            "DeletingTenant",
            "TenantDeleted",
        ]
        assert repo.find("acme") is None
        assert repo.find_by_domain("acme") is None
        assert len(repo) == 0

    @pytest.mark.unit
    def test_get_unknown_tenant_raises_not_found(self) -> None:
        repo = TenantRepository(EventBus())
        with pytest.raises(NotFoundError):
            repo.get("missing")


class TestProvision:
    @pytest.mark.unit
    @pytest.mark.asyncio(loop_scope="function")
    async def test_failed_creation_keeps_tenant_without_domains(self) -> None:
        bus = EventBus()

        def fail(event: TenantCreated) -> None:
            raise RuntimeError("provisioning failed")

        bus.listen(TenantCreated, fail)
        repo = TenantRepository(bus)

        with pytest.raises(RuntimeError, match="provisioning failed"):
            await repo.create("acme", domains=["acme"])

        assert repo.get("acme").domains == ()
        assert repo.find_by_domain("acme") is None

    @pytest.mark.unit
    @pytest.mark.asyncio(loop_scope="function")
    async def test_provision_reruns_creation_and_binds_missing_domains(
        self, recorder: EventRecorder
    ) -> None:
        bus = EventBus()
        attempts: list[str] = []

        def fail_once(event: TenantCreated) -> None:
            attempts.append(event.tenant.id)
            if len(attempts) == 1:
                raise RuntimeError("provisioning failed")

        bus.listen(TenantCreated, fail_once)
        recorder.attach(bus)
        repo = TenantRepository(bus)
        with pytest.raises(RuntimeError):
            await repo.create("acme", domains=["acme"])
        recorder.clear()

        tenant = await repo.provision("acme", ["acme", "ACME.test"])

        assert attempts == ["acme", "acme"]
        assert recorder.names[:2] == ["TenantCreated", "TenantSaved"]
        assert [d.domain for d in tenant.domains] == ["acme", "acme.test"]
        assert repo.find_by_domain("acme.test") == tenant

    @pytest.mark.unit
    @pytest.mark.asyncio(loop_scope="function")
    async def test_provision_skips_domains_already_owned(self, recorder: EventRecorder) -> None:
        repo = _repository(recorder)
        await repo.create("acme", domains=["acme"])
        recorder.clear()

        tenant = await repo.provision("acme", ["acme"])

        assert recorder.names == ["TenantCreated", "TenantSaved"]
        assert [d.domain for d in tenant.domains] == ["acme"]

    @pytest.mark.unit
    @pytest.mark.asyncio(loop_scope="function")
    async def test_provision_unknown_tenant_is_not_found(self) -> None:
        with pytest.raises(NotFoundError):
            await TenantRepository(EventBus()).provision("ghost")


class TestDomains:
    @pytest.mark.unit
    @pytest.mark.asyncio(loop_scope="function")
    async def test_domain_maps_to_at_most_one_tenant(self) -> None:
        repo = TenantRepository(EventBus())
        await repo.create("acme", domains=["shared"])
        await repo.create("globex")

        with pytest.raises(ConflictError) as exc_info:
            await repo.create_domain("globex", "SHARED")
        assert exc_info.value.context["tenant_id"] == "acme"
        assert repo.find_by_domain("shared").id == "acme"  # type: ignore[union-attr]
        assert repo.get("globex").domains == ()

    @pytest.mark.unit
    @pytest.mark.asyncio(loop_scope="function")
    async def test_domain_for_unknown_tenant_is_not_found(self) -> None:
        repo = TenantRepository(EventBus())
        with pytest.raises(NotFoundError):
            await repo.create_domain("missing", "missing")

    @pytest.mark.unit
    @pytest.mark.asyncio(loop_scope="function")
    async def test_update_domain_keeps_tenant(self, recorder: EventRecorder) -> None:
        repo = _repository(recorder)
        await repo.create("acme", domains=["acme"])
        recorder.clear()

        await repo.update_domain("acme", "acme-corp")

        assert recorder.names == [
            "SavingDomain",
            "UpdatingDomain",
            "DomainUpdated",
            "DomainSaved",
        ]
        assert repo.find_by_domain("acme") is None
        assert repo.find_by_domain("acme-corp").id == "acme"  # type: ignore[union-attr]
        assert [d.domain for d in repo.get("acme").domains] == ["acme-corp"]

    @pytest.mark.unit
    @pytest.mark.asyncio(loop_scope="function")
    async def test_update_domain_to_taken_domain_is_a_conflict(self) -> None:
        repo = TenantRepository(EventBus())
        await repo.create("acme", domains=["acme"])
        await repo.create("globex", domains=["globex"])

        with pytest.raises(ConflictError):
            await repo.update_domain("acme", "globex")
        assert repo.find_by_domain("acme").id == "acme"  # type: ignore[union-attr]
