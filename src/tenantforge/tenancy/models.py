"""Tenant and Domain value types.

Both are immutable; the repository replaces instances on update so that
events always carry the exact state they were published with.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from tenantforge.foundation.exceptions import ValidationError

# A tenant key doubles as a DNS label (subdomain), so it follows label rules.
_TENANT_KEY_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
_DOMAIN_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9.-]{0,251}[a-z0-9])?$")


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class Domain:
    """A hostname or subdomain bound to exactly one tenant.

    Attributes:
        domain: Lowercased host (``acme.example.com``) or bare subdomain (``acme``).
        tenant_id: Key of the owning tenant.
    """

    domain: str
    tenant_id: str

    def __post_init__(self) -> None:
        normalized = self.domain.strip().lower()
        if not _DOMAIN_PATTERN.match(normalized) or ".." in normalized:
            raise ValidationError("domain", f"'{self.domain}' is not a valid hostname")
        object.__setattr__(self, "domain", normalized)


@dataclass(frozen=True, slots=True)
class Tenant:
    """An isolated customer unit that owns one database and storage root.

    Attributes:
        id: Tenant key (lowercase DNS label, 1-63 chars).
        data: Arbitrary attribute map (read-only view).
        domains: Domains bound to this tenant.
        created_at: Creation timestamp (UTC).
        updated_at: Last update timestamp (UTC).
    """

    id: str
    data: MappingProxyType[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    domains: tuple[Domain, ...] = ()
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def __post_init__(self) -> None:
        if not _TENANT_KEY_PATTERN.match(self.id):
            raise ValidationError(
                "id",
                "tenant key must be 1-63 lowercase alphanumeric characters or hyphens, "
                "starting and ending with an alphanumeric character",
                tenant_id=self.id,
            )
        if not isinstance(self.data, MappingProxyType):
            object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    def get_tenant_key(self) -> str:
        return self.id

    def with_data(self, data: dict[str, Any]) -> Tenant:
        """Return a copy with ``data`` merged over the current attributes."""
        return replace(self, data=MappingProxyType({**self.data, **data}), updated_at=_now())

    def with_domains(self, domains: tuple[Domain, ...]) -> Tenant:
        return replace(self, domains=domains)

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe snapshot used to hand a tenant to a background worker."""
        return {
            "id": self.id,
            "data": dict(self.data),
            "domains": [d.domain for d in self.domains],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Tenant:
        tenant_id = payload["id"]
        return cls(
            id=tenant_id,
            data=payload.get("data") or {},  # type: ignore[arg-type]
            domains=tuple(Domain(domain=d, tenant_id=tenant_id) for d in payload.get("domains", [])),
            created_at=datetime.fromisoformat(payload["created_at"]),
            updated_at=datetime.fromisoformat(payload["updated_at"]),
        )
