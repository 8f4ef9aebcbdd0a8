"""Error taxonomy for the queue lifecycle controller and its gateway boundary.

Adapters translate their library's exceptions into these at the port
boundary; the controller and registry raise the rest. Nothing here is
retried automatically.
"""
from __future__ import annotations

from typing import Any


class QueueLifecycleError(Exception):
    """Base for all queue lifecycle failures."""


class BackendError(QueueLifecycleError):
    """Base for failures reported by (or while talking to) the queue backend."""


class BackendUnavailableError(BackendError):
    """Raised on transport/network failure reaching the backend."""


class BackendRequestError(BackendError):
    """Raised when the backend rejects a request."""


class BackendQueueNotFoundError(BackendRequestError):
    """Raised by the gateway when a queue name or ref does not resolve."""


class LeaseTokenExpiredError(BackendRequestError):
    """Raised by the gateway when a lease token is no longer valid."""


class SerializationError(QueueLifecycleError):
    """Raised when a payload cannot be rendered to the backend transport form."""


class DeserializationError(QueueLifecycleError):
    """Raised when a stored body cannot be turned back into a payload."""

    def __init__(self, message: str, *, message_id: str | None = None) -> None:
        super().__init__(message)
        self.message_id = message_id


class MessageNotFoundError(QueueLifecycleError):
    """Raised when no live lease record exists for a message id."""

    def __init__(self, message_id: str) -> None:
        super().__init__(f"message not found or not reserved: {message_id}")
        self.message_id = message_id


class QueueAlreadyExistsError(QueueLifecycleError):
    def __init__(self, queue_name: str) -> None:
        super().__init__(f"queue already exists: {queue_name}")
        self.queue_name = queue_name


class QueueDoesNotExistError(QueueLifecycleError):
    def __init__(self, queue_name: str) -> None:
        super().__init__(f"queue does not exist: {queue_name}")
        self.queue_name = queue_name


class DeadLetterForwardError(QueueLifecycleError):
    """Raised when the dead-letter enqueue fails after the source delete succeeded.

    The message is gone from the source queue and never reached the
    dead-letter queue; `message` is the only remaining copy.
    """

    def __init__(self, message: Any, cause: Exception) -> None:
        super().__init__(
            f"dead-letter forward failed for message {getattr(message, 'id', None)}: {cause}"
        )
        self.message = message
