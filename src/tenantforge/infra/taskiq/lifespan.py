"""TaskIQ lifespan hook for broker startup/shutdown.

Priority 150 starts the broker after the tenancy runtime (100), since
queued pipelines need the tenant databases.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from tenantforge.foundation.contributions import LIFESPAN_PRIORITY_TASKIQ, LifespanContribution
from tenantforge.infra.taskiq.broker import get_broker

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _taskiq_lifespan(app: Any) -> AsyncIterator[None]:
    """Start the broker only when the app queues its pipelines.

    Args:
        app: The FastAPI application.
    """
    settings = getattr(app.state, "tenancy_settings", None)
    if settings is None or not settings.queue_pipelines:
        yield
        return

    _broker = get_broker()
    await _broker.startup()
    logger.info("taskiq_lifespan: broker started")

    try:
        yield
    finally:
        await _broker.shutdown()
        logger.info("taskiq_lifespan: broker shut down")


lifespan_contribution = LifespanContribution(
    hook=_taskiq_lifespan,
    priority=LIFESPAN_PRIORITY_TASKIQ,
)
