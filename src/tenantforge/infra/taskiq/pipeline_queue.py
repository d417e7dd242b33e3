"""Queued execution of tenant job pipelines on a TaskIQ broker.

The publishing side sends the step names and a JSON snapshot of the
tenant; the worker side rebuilds the tenant and runs the steps in order
with its own :class:`~tenantforge.tenancy.pipeline.JobRunner`.

There is no ordering guarantee between a queued pipeline and the HTTP
response of the request that triggered it.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from tenantforge.foundation.exceptions import ValidationError
from tenantforge.infra.taskiq.errors import TaskIQBrokerError, TaskIQSerializationError
from tenantforge.tenancy.models import Tenant

if TYPE_CHECKING:
    from taskiq import AsyncBroker

    from tenantforge.tenancy.pipeline import JobRunner

logger = logging.getLogger(__name__)

PIPELINE_TASK_NAME = "tenantforge:run_job_pipeline"


class TaskiqPipelineQueue:
    """Registers the pipeline task on ``broker`` and enqueues pipelines to it.

    Args:
        broker: Broker shared by the web process and the worker.
        runner: Runner used when the worker executes a pipeline.
    """

    def __init__(self, broker: AsyncBroker, runner: JobRunner) -> None:
        self._runner = runner

        async def run_job_pipeline(steps: list[str], tenant: dict[str, Any]) -> list[str]:
            return await self.run_pipeline(steps, tenant)

        # taskiq renames the registered callable, so it must be a plain function.
        self._task = broker.register_task(run_job_pipeline, task_name=PIPELINE_TASK_NAME)

    async def enqueue(self, steps: Sequence[str], tenant: Tenant) -> None:
        try:
            await self._task.kiq(list(steps), tenant.to_payload())
        except Exception as exc:
            msg = f"Could not enqueue job pipeline for tenant '{tenant.id}'"
            raise TaskIQBrokerError(msg) from exc

    async def run_pipeline(self, steps: list[str], tenant: dict[str, Any]) -> list[str]:
        """Worker entry point: rebuild the tenant and execute ``steps``."""
        try:
            snapshot = Tenant.from_payload(tenant)
        except (KeyError, TypeError, ValueError, ValidationError) as exc:
            msg = f"Malformed tenant payload for job pipeline {steps!r}"
            raise TaskIQSerializationError(msg) from exc
        logger.info("job_pipeline_started", extra={"tenant_id": snapshot.id, "steps": steps})
        return await self._runner.execute(steps, snapshot)
