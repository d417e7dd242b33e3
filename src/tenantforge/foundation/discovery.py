"""Entry-point-based auto-discovery utilities.

Loads contributions (middleware, lifespan hooks, error handlers, route
middleware) from installed distributions through
``importlib.metadata.entry_points()``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import Any

logger = logging.getLogger(__name__)

GROUP_ROUTERS = "tenantforge.routers"
GROUP_MIDDLEWARE = "tenantforge.middleware"
GROUP_ROUTE_MIDDLEWARE = "tenantforge.route_middleware"
GROUP_ERROR_HANDLERS = "tenantforge.error_handlers"
GROUP_LIFESPAN = "tenantforge.lifespan"


@dataclass(frozen=True, slots=True)
class DiscoveredContribution:
    """A single discovered entry point contribution.

    Attributes:
        name: Entry point name (e.g., ``"request_id"``).
        group: Entry point group (e.g., ``"tenantforge.middleware"``).
        value: The loaded Python object.
    """

    name: str
    group: str
    value: Any


def discover(
    group: str,
    *,
    exclude_names: frozenset[str] = frozenset(),
) -> list[DiscoveredContribution]:
    """Discover and load all entry points for a given group.

    Entry points that fail to load are logged and skipped (fail-soft).

    Args:
        group: The entry point group name (e.g., ``"tenantforge.lifespan"``).
        exclude_names: Set of entry point names to skip.

    Returns:
        List of successfully loaded contributions.
    """
    contributions: list[DiscoveredContribution] = []

    for ep in entry_points(group=group):
        if ep.name in exclude_names:
            logger.debug("Skipping excluded entry point %s:%s", group, ep.name)
            continue
        try:
            loaded = ep.load()
        except Exception:
            logger.exception("Failed to load entry point %s:%s", group, ep.name)
            continue
        contributions.append(DiscoveredContribution(name=ep.name, group=group, value=loaded))
        logger.debug("Loaded entry point %s:%s", group, ep.name)

    logger.info("Discovered %d contributions in group %r", len(contributions), group)
    return contributions
