"""Lifespan composition for the TenantForge app factory.

Hooks start in ascending priority: observability (50), then the tenancy
runtime (100), then the pipeline broker (150). Hooks with equal priority
start in registration order. Shutdown runs in reverse, so the tenancy
runtime disposes its engines only after the broker has stopped.
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Iterable

    from fastapi import FastAPI

    from tenantforge.foundation import LifespanContribution

logger = logging.getLogger(__name__)


def hook_name(contribution: LifespanContribution) -> str:
    hook = contribution.hook
    return getattr(hook, "__name__", None) or type(hook).__name__


def startup_order(hooks: Iterable[LifespanContribution]) -> list[LifespanContribution]:
    """``hooks`` in start order; ``sorted`` is stable, so ties keep registration order."""
    return sorted(hooks, key=lambda h: h.priority)


def compose_lifespan(
    hooks: list[LifespanContribution],
) -> Callable[[FastAPI], Any]:
    """Create a composite lifespan from :class:`LifespanContribution` hooks.

    A hook that fails to start stops the hooks already started before the
    error propagates.

    Returns:
        An async context manager factory suitable for FastAPI's ``lifespan`` parameter.
    """
    ordered = startup_order(hooks)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        started: list[str] = []
        async with AsyncExitStack() as stack:
            for contribution in ordered:
                name = hook_name(contribution)
                await stack.enter_async_context(contribution.hook(app))
                started.append(name)
                logger.debug(
                    "lifespan_hook_started: %s (priority=%d)", name, contribution.priority
                )
            logger.info("lifespan_started", extra={"hooks": started})
            try:
                yield
            finally:
                logger.info("lifespan_stopping", extra={"hooks": started[::-1]})

    return lifespan
