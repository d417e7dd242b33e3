"""Worker process entry point for queued tenant pipelines.

Usage:
    taskiq worker tenantforge.infra.taskiq.worker:broker
"""

from __future__ import annotations

from tenantforge.infra.fastapi.provider import TenancyServiceProvider
from tenantforge.infra.taskiq.broker import get_broker
from tenantforge.infra.taskiq.pipeline_queue import TaskiqPipelineQueue
from tenantforge.tenancy.runtime import TenancyRuntime
from tenantforge.tenancy.settings import get_tenancy_settings

broker = get_broker()
runtime = TenancyRuntime.build(get_tenancy_settings())
pipeline_queue = TaskiqPipelineQueue(broker, runtime.runner)
runtime.attach_queue(pipeline_queue)

# Database lifecycle listeners fire on the worker as well.
TenancyServiceProvider(runtime).boot_events()
