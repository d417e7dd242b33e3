"""TenantForge Infra TaskIQ: broker and queued job pipelines."""

from tenantforge.infra.taskiq.broker import get_broker, get_result_backend
from tenantforge.infra.taskiq.errors import (
    TaskIQBrokerError,
    TaskIQError,
    TaskIQSerializationError,
)
from tenantforge.infra.taskiq.lifespan import lifespan_contribution
from tenantforge.infra.taskiq.pipeline_queue import PIPELINE_TASK_NAME, TaskiqPipelineQueue
from tenantforge.infra.taskiq.settings import TaskIQSettings, get_taskiq_settings

__all__ = [
    "PIPELINE_TASK_NAME",
    "TaskIQBrokerError",
    "TaskIQError",
    "TaskIQSerializationError",
    "TaskIQSettings",
    "TaskiqPipelineQueue",
    "get_broker",
    "get_result_backend",
    "get_taskiq_settings",
    "lifespan_contribution",
]
