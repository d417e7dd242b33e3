"""In-process publish/subscribe bus for tenancy lifecycle events.

Listeners are plain callables (sync or async) or job pipelines. A pipeline
is turned into a plain listener once, when it is registered, so dispatch
never has to tell the two apart.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, TypeAlias

from tenantforge.tenancy.pipeline import JobPipeline

if TYPE_CHECKING:
    from tenantforge.tenancy.events import TenancyEvent
    from tenantforge.tenancy.pipeline import JobRunner

logger = logging.getLogger(__name__)

Listener: TypeAlias = Callable[[Any], Awaitable[None] | None]
ListenerMap: TypeAlias = Mapping[type["TenancyEvent"], Sequence[Listener | JobPipeline]]


class EventBus:
    """Dispatches events to listeners in registration order.

    Args:
        job_runner: Executes job pipelines registered as listeners. Required
            only when pipelines are registered.
    """

    def __init__(self, job_runner: JobRunner | None = None) -> None:
        self._listeners: defaultdict[type[TenancyEvent], list[Listener]] = defaultdict(list)
        self._job_runner = job_runner

    def listen(self, event_type: type[TenancyEvent], listener: Listener | JobPipeline) -> None:
        """Subscribe ``listener`` to ``event_type``."""
        if isinstance(listener, JobPipeline):
            if self._job_runner is None:
                msg = f"Cannot register job pipeline for {event_type.__name__} without a job runner"
                raise RuntimeError(msg)
            listener = listener.to_listener(self._job_runner)
        self._listeners[event_type].append(listener)

    def listen_many(self, listeners: ListenerMap) -> None:
        for event_type, event_listeners in listeners.items():
            for listener in event_listeners:
                self.listen(event_type, listener)

    def listeners_for(self, event_type: type[TenancyEvent]) -> list[Listener]:
        return list(self._listeners.get(event_type, ()))

    def has_listeners(self, event_type: type[TenancyEvent]) -> bool:
        return bool(self._listeners.get(event_type))

    def forget(self, event_type: type[TenancyEvent]) -> None:
        self._listeners.pop(event_type, None)

    async def dispatch(self, event: TenancyEvent) -> None:
        """Publish ``event`` to every listener of its exact type.

        A listener exception stops dispatch and propagates to the caller.
        """
        listeners = self._listeners.get(type(event))
        if not listeners:
            return
        logger.debug("event_dispatched: %s (%d listeners)", type(event).__name__, len(listeners))
        for listener in list(listeners):
            result = listener(event)
            if inspect.isawaitable(result):
                await result
