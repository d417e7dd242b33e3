"""TaskIQ broker configuration with Redis Stream.

Queued tenant pipelines are sent through a Redis Stream broker so that
provisioning survives worker restarts (messages are acknowledged only
after the pipeline finishes).

Usage:
    # Start a worker that runs queued pipelines
    # taskiq worker tenantforge.infra.taskiq.worker:broker
"""

from __future__ import annotations

from functools import lru_cache

from taskiq_redis import RedisAsyncResultBackend, RedisStreamBroker

from tenantforge.infra.taskiq.settings import get_taskiq_settings


@lru_cache(maxsize=1)
def get_result_backend() -> RedisAsyncResultBackend[str]:
    """Get or create the TaskIQ result backend."""
    settings = get_taskiq_settings()
    return RedisAsyncResultBackend(
        redis_url=settings.redis_url,
        result_ex_time=settings.result_ttl,
    )


@lru_cache(maxsize=1)
def get_broker() -> RedisStreamBroker:
    """Get or create the TaskIQ broker.

    Returns:
        RedisStreamBroker configured from TaskIQSettings with result backend.
    """
    settings = get_taskiq_settings()
    return RedisStreamBroker(
        url=settings.redis_url,
        queue_name=settings.queue_name,
    ).with_result_backend(get_result_backend())
