"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from queue_lifecycle.app.constants import (
    DEFAULT_MAX_RECEIVE_COUNT,
    DEFAULT_VISIBILITY_TIMEOUT_SECONDS,
)


@dataclass(frozen=True)
class QueueConfiguration:
    """Retry threshold, lease duration and retention policy bound to one queue (value object)."""

    max_receive_count: int = DEFAULT_MAX_RECEIVE_COUNT
    visibility_timeout: timedelta = timedelta(seconds=DEFAULT_VISIBILITY_TIMEOUT_SECONDS)
    message_retention_period: timedelta | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.max_receive_count, int) or self.max_receive_count <= 0:
            raise ValueError("max_receive_count must be a positive int")
        if not isinstance(self.visibility_timeout, timedelta) or self.visibility_timeout <= timedelta(0):
            raise ValueError("visibility_timeout must be a positive timedelta")
        if self.message_retention_period is not None and (
            not isinstance(self.message_retention_period, timedelta)
            or self.message_retention_period <= timedelta(0)
        ):
            raise ValueError("message_retention_period must be a positive timedelta or None")

    @staticmethod
    def default() -> "QueueConfiguration":
        return QueueConfiguration()


@dataclass(frozen=True)
class QueueMessage:
    """The unit of work: identity, payload and lifecycle timestamps.

    `id` is None for envelopes built for sending without an id generator;
    the backend assigns one on send. Reserved envelopes always carry an id.
    acknowledge() returns nothing, so acknowledged_at stays None on envelopes
    handed out by a queue; the acknowledgement time is logged instead.
    """

    payload: Any
    id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    processed_at: datetime | None = None
    acknowledged_at: datetime | None = None

    @staticmethod
    def create(payload: Any, id_generator: Callable[[], str] | None = None) -> "QueueMessage":
        return QueueMessage(
            payload=payload,
            id=id_generator() if id_generator is not None else None,
            created_at=datetime.now(timezone.utc),
        )


@dataclass
class LeaseRecord:
    """Local, ephemeral bookkeeping for one reserved message. Not durable."""

    message_id: str
    lease_token: str
    attempt_count: int
    message: QueueMessage
