"""Exception hierarchy for tenancy and provisioning errors.

Exceptions carry a machine-readable ``error_code`` and structured context
so the HTTP layer can render RFC 7807 problem details and logs stay
queryable.

Example:
    >>> from tenantforge.foundation.exceptions import NotFoundError
    >>> raise NotFoundError("Tenant", "acme")
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "AccessFromCentralDomainError",
    "ConflictError",
    "DomainError",
    "JobPipelineError",
    "NotASubdomainError",
    "NotFoundError",
    "TenancyNotInitializedError",
    "TenantCouldNotBeIdentifiedByPathError",
    "TenantCouldNotBeIdentifiedByRequestDataError",
    "TenantCouldNotBeIdentifiedError",
    "TenantCouldNotBeIdentifiedOnDomainError",
    "ValidationError",
]


class DomainError(Exception):
    """Base class for all domain errors.

    Attributes:
        error_code: Machine-readable error code for client handling.
        message: Human-readable error description.
        context: Structured debugging information (tenant keys, hosts, steps).
    """

    error_code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """String representation including context for logging."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class NotFoundError(DomainError):
    """Raised when a requested resource does not exist.

    Maps to HTTP 404 Not Found.

    Example:
        >>> raise NotFoundError("Tenant", "acme")
        NotFoundError: Tenant not found: acme
    """

    error_code: str = "RESOURCE_NOT_FOUND"

    def __init__(
        self,
        resource_type: str,
        resource_id: str,
        **extra_context: Any,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type} not found: {resource_id}"
        context = {
            "resource_type": resource_type,
            "resource_id": str(resource_id),
            **extra_context,
        }
        super().__init__(message, context)


class ValidationError(DomainError):
    """Raised when input fails domain validation rules.

    Maps to HTTP 422 Unprocessable Entity.
    """

    error_code: str = "VALIDATION_ERROR"

    def __init__(
        self,
        field: str,
        reason: str,
        **extra_context: Any,
    ) -> None:
        self.field = field
        self.reason = reason
        message = f"Validation failed for '{field}': {reason}"
        context = {
            "field": field,
            "reason": reason,
            **extra_context,
        }
        super().__init__(message, context)


class ConflictError(DomainError):
    """Raised when an operation conflicts with current state.

    Maps to HTTP 409 Conflict. Used for duplicate tenant keys and for
    domains that are already bound to another tenant.
    """

    error_code: str = "CONFLICT"

    def __init__(
        self,
        reason: str,
        **context: Any,
    ) -> None:
        self.reason = reason
        message = f"Conflict: {reason}"
        super().__init__(message, context)


# ---------------------------------------------------------------------------
# Tenant identification
# ---------------------------------------------------------------------------


class TenantCouldNotBeIdentifiedError(NotFoundError):
    """Raised when a resolver strategy cannot map a request to a tenant."""

    error_code: str = "TENANT_NOT_IDENTIFIED"

    def __init__(self, strategy: str, value: str) -> None:
        self.strategy = strategy
        self.value = value
        super().__init__("Tenant", value, strategy=strategy)
        self.message = f"Tenant could not be identified by {strategy}: {value!r}"


class TenantCouldNotBeIdentifiedOnDomainError(TenantCouldNotBeIdentifiedError):
    """No tenant owns the requested domain or subdomain."""

    def __init__(self, domain: str) -> None:
        super().__init__("domain", domain)


class TenantCouldNotBeIdentifiedByPathError(TenantCouldNotBeIdentifiedError):
    """The tenant path segment is missing or unknown."""

    def __init__(self, tenant_id: str) -> None:
        super().__init__("path", tenant_id)


class TenantCouldNotBeIdentifiedByRequestDataError(TenantCouldNotBeIdentifiedError):
    """The tenant header or query parameter is missing or unknown."""

    def __init__(self, payload: str) -> None:
        super().__init__("request data", payload)


class NotASubdomainError(NotFoundError):
    """The request host is not a subdomain of any central domain."""

    error_code: str = "NOT_A_SUBDOMAIN"

    def __init__(self, host: str) -> None:
        super().__init__("Subdomain", host, host=host)
        self.message = f"Hostname {host!r} is not a subdomain of a central domain"


class AccessFromCentralDomainError(NotFoundError):
    """A tenant-scoped route was requested on a central domain.

    Rendered as 404 so central hosts do not reveal tenant routes.
    """

    error_code: str = "CENTRAL_DOMAIN_ACCESS"

    def __init__(self, host: str) -> None:
        super().__init__("Route", host, host=host)


# ---------------------------------------------------------------------------
# Tenancy runtime
# ---------------------------------------------------------------------------


class TenancyNotInitializedError(RuntimeError):
    """Raised when tenant-only state is accessed while no tenant is active."""

    def __init__(self) -> None:
        super().__init__(
            "Tenancy is not initialized. "
            "Ensure this code runs behind a tenancy identification middleware."
        )


class JobPipelineError(DomainError):
    """Raised when a synchronous pipeline step fails.

    Remaining steps are not executed. Completed steps are not rolled back.

    Attributes:
        step: Name of the failing step.
        completed: Names of the steps that finished before the failure.
    """

    error_code: str = "JOB_PIPELINE_FAILED"

    def __init__(self, step: str, completed: list[str], tenant_id: str | None = None) -> None:
        self.step = step
        self.completed = completed
        super().__init__(
            f"Job pipeline step '{step}' failed",
            {"step": step, "completed": completed, "tenant_id": tenant_id},
        )
