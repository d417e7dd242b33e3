"""TaskIQ error hierarchy for queued pipeline dispatch."""

from __future__ import annotations


class TaskIQError(Exception):
    """Base exception for TaskIQ infrastructure errors.

    Subclasses distinguish transient errors (retryable) from
    permanent errors.
    """

    #: Whether this error type is considered transient (retryable).
    transient: bool = False


class TaskIQBrokerError(TaskIQError):
    """Raised when the broker cannot accept a pipeline.

    Typically transient; the broker may recover on retry.
    """

    transient: bool = True


class TaskIQSerializationError(TaskIQError):
    """Raised when a pipeline payload cannot be decoded on the worker.

    Permanent; retrying won't fix a malformed payload.
    """

    transient: bool = False
