"""TenantForge Foundation: contributions, discovery and the error hierarchy."""

from tenantforge.foundation.contributions import (
    ErrorHandlerContribution,
    LifespanContribution,
    MiddlewareContribution,
    RouteMiddlewareContribution,
)
from tenantforge.foundation.discovery import (
    DiscoveredContribution,
    discover,
)
from tenantforge.foundation.exceptions import (
    ConflictError,
    DomainError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    "ConflictError",
    "DiscoveredContribution",
    "DomainError",
    "ErrorHandlerContribution",
    "LifespanContribution",
    "MiddlewareContribution",
    "NotFoundError",
    "RouteMiddlewareContribution",
    "ValidationError",
    "discover",
]
