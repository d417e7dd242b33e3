"""Ordered provisioning pipelines triggered by lifecycle events.

A :class:`JobPipeline` names its steps; a :class:`JobRunner` looks the
steps up in a :class:`JobRegistry` and runs them strictly in order, either
in the publishing context or, for queued pipelines, on a background worker.

Failure policy: a failing step aborts the pipeline and surfaces as
:class:`~tenantforge.foundation.exceptions.JobPipelineError`. Steps that
already completed are left in place (no compensation); every step is
idempotent, so re-dispatching the pipeline is the recovery path.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Protocol

from tenantforge.foundation.exceptions import JobPipelineError

if TYPE_CHECKING:
    from tenantforge.tenancy.events import TenancyEvent
    from tenantforge.tenancy.models import Tenant

logger = logging.getLogger(__name__)


class Job(Protocol):
    """One idempotent pipeline step."""

    name: str

    async def handle(self, tenant: Tenant) -> None: ...


class PipelineQueue(Protocol):
    """Hands a pipeline off to a background worker."""

    async def enqueue(self, steps: Sequence[str], tenant: Tenant) -> None: ...


def _event_tenant(event: Any) -> Tenant:
    return event.tenant


@dataclass(frozen=True, slots=True)
class JobPipeline:
    """An ordered list of step names plus the event-to-payload mapper.

    Build one fluently::

        JobPipeline.make(["create_database", "migrate_database"]) \\
            .send(lambda event: event.tenant) \\
            .should_be_queued(False)

    Attributes:
        steps: Step names, executed in this order.
        mapper: Derives the tenant payload from the triggering event.
        queued: Run on a background worker instead of the publishing context.
            Synchronous by default; provisioning is slow, so production
            deployments usually queue.
    """

    steps: tuple[str, ...]
    mapper: Callable[[TenancyEvent], Tenant] = _event_tenant
    queued: bool = False

    @classmethod
    def make(cls, steps: Iterable[str]) -> JobPipeline:
        return cls(steps=tuple(steps))

    def send(self, mapper: Callable[[TenancyEvent], Tenant]) -> JobPipeline:
        return replace(self, mapper=mapper)

    def should_be_queued(self, queued: bool = True) -> JobPipeline:
        return replace(self, queued=queued)

    def to_listener(self, runner: JobRunner) -> Callable[[TenancyEvent], Awaitable[None]]:
        """Wrap the pipeline as an event listener bound to ``runner``."""

        async def listener(event: TenancyEvent) -> None:
            await runner.run(self, self.mapper(event))

        listener.__qualname__ = f"JobPipeline[{', '.join(self.steps)}]"
        return listener


class JobRegistry:
    """Maps step names to job instances."""

    def __init__(self, jobs: Iterable[Job] = ()) -> None:
        self._jobs: dict[str, Job] = {}
        for job in jobs:
            self.register(job)

    def register(self, job: Job) -> None:
        self._jobs[job.name] = job

    def get(self, name: str) -> Job:
        try:
            return self._jobs[name]
        except KeyError:
            msg = f"Unknown job pipeline step: {name!r}"
            raise LookupError(msg) from None

    def __contains__(self, name: object) -> bool:
        return name in self._jobs

    def names(self) -> list[str]:
        return list(self._jobs)


class JobRunner:
    """Executes pipelines against a job registry.

    Args:
        registry: Source of the step implementations.
        queue: Background queue for pipelines marked ``queued``.
    """

    def __init__(self, registry: JobRegistry, queue: PipelineQueue | None = None) -> None:
        self._registry = registry
        self._queue = queue

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    def use_queue(self, queue: PipelineQueue) -> None:
        self._queue = queue

    async def run(self, pipeline: JobPipeline, tenant: Tenant) -> None:
        if pipeline.queued:
            if self._queue is None:
                msg = "Queued job pipeline dispatched but no pipeline queue is configured"
                raise RuntimeError(msg)
            await self._queue.enqueue(pipeline.steps, tenant)
            logger.info(
                "job_pipeline_queued",
                extra={"tenant_id": tenant.id, "steps": list(pipeline.steps)},
            )
            return
        await self.execute(pipeline.steps, tenant)

    async def execute(self, steps: Sequence[str], tenant: Tenant) -> list[str]:
        """Run ``steps`` in order; return the names of the completed steps.

        Raises:
            JobPipelineError: When a step fails. Later steps are skipped.
        """
        # Resolve every step first so a typo fails before anything runs.
        jobs = [self._registry.get(step) for step in steps]
        completed: list[str] = []
        for job in jobs:
            try:
                await job.handle(tenant)
            except Exception as exc:
                logger.exception(
                    "job_pipeline_step_failed",
                    extra={"tenant_id": tenant.id, "step": job.name, "completed": completed},
                )
                raise JobPipelineError(job.name, completed, tenant.id) from exc
            completed.append(job.name)
            logger.debug("job_pipeline_step_completed: %s tenant=%s", job.name, tenant.id)
        logger.info(
            "job_pipeline_completed",
            extra={"tenant_id": tenant.id, "steps": completed},
        )
        return completed
