"""In-memory backend gateway for tests and local mode.

Emulates the lease model of the real backend closely enough for the
controller: per-receive lease tokens, visibility timeouts, receive counters,
first-receive timestamps and retention. Messages are lost on process restart.

Time comes from an injectable clock (epoch seconds) so tests can let leases
lapse without sleeping.
"""
from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence

from queue_lifecycle.app.constants import (
    DEFAULT_MESSAGE_RETENTION_SECONDS,
    DEFAULT_VISIBILITY_TIMEOUT_SECONDS,
    QUEUE_ATTRIBUTE,
    SYSTEM_ATTRIBUTE,
)
from queue_lifecycle.app.domain.errors import BackendQueueNotFoundError, LeaseTokenExpiredError
from queue_lifecycle.app.ports.backend_gateway import ReceivedMessage

_REF_PREFIX = "memory://queues/"
_POLL_INTERVAL_SECONDS = 0.05


@dataclass
class _StoredMessage:
    message_id: str
    body: str
    message_attributes: dict[str, str]
    sent_at: float
    visible_at: float
    receive_count: int = 0
    first_received_at: float | None = None
    lease_token: str | None = None


@dataclass
class _StoredQueue:
    name: str
    attributes: dict[str, str]
    messages: list[_StoredMessage] = field(default_factory=list)

    @property
    def retention_seconds(self) -> int:
        return int(self.attributes.get(QUEUE_ATTRIBUTE.MESSAGE_RETENTION_PERIOD, DEFAULT_MESSAGE_RETENTION_SECONDS))


def _ms(seconds: float) -> str:
    return str(int(seconds * 1000))


class InMemoryBackendGateway:
    """Implements queue_lifecycle.app.ports.backend_gateway.BackendGateway in process memory.

    report_receive_count=False drops the backend receive counter and
    first-receive timestamp from received messages, like a backend that does
    not expose them.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        report_receive_count: bool = True,
    ) -> None:
        self._clock = clock
        self._report_receive_count = report_receive_count
        self._queues: dict[str, _StoredQueue] = {}

    def _queue(self, queue_ref: str) -> _StoredQueue:
        name = queue_ref[len(_REF_PREFIX):] if queue_ref.startswith(_REF_PREFIX) else None
        queue = self._queues.get(name) if name is not None else None
        if queue is None:
            raise BackendQueueNotFoundError(f"queue does not exist: {queue_ref}")
        return queue

    def _expire(self, queue: _StoredQueue, now: float) -> None:
        retention = queue.retention_seconds
        queue.messages = [m for m in queue.messages if now - m.sent_at < retention]

    def _find_by_token(self, queue: _StoredQueue, lease_token: str) -> _StoredMessage:
        for message in queue.messages:
            if message.lease_token is not None and message.lease_token == lease_token:
                return message
        raise LeaseTokenExpiredError(f"lease token not found or expired: {lease_token}")

    async def send(self, queue_ref: str, body: str, attributes: Mapping[str, str]) -> str:
        queue = self._queue(queue_ref)
        now = self._clock()
        message_id = str(uuid.uuid4())
        queue.messages.append(
            _StoredMessage(
                message_id=message_id,
                body=body,
                message_attributes=dict(attributes),
                sent_at=now,
                visible_at=now,
            )
        )
        return message_id

    def _take_visible(self, queue: _StoredQueue, max_count: int, lease_seconds: int) -> list[ReceivedMessage]:
        now = self._clock()
        self._expire(queue, now)
        taken: list[ReceivedMessage] = []
        for message in queue.messages:
            if len(taken) >= max_count:
                break
            if message.visible_at > now:
                continue
            message.lease_token = uuid.uuid4().hex
            message.receive_count += 1
            if message.first_received_at is None:
                message.first_received_at = now
            message.visible_at = now + lease_seconds

            attributes = {SYSTEM_ATTRIBUTE.SENT_TIMESTAMP: _ms(message.sent_at)}
            if self._report_receive_count:
                attributes[SYSTEM_ATTRIBUTE.APPROXIMATE_RECEIVE_COUNT] = str(message.receive_count)
                attributes[SYSTEM_ATTRIBUTE.APPROXIMATE_FIRST_RECEIVE_TIMESTAMP] = _ms(message.first_received_at)
            taken.append(
                ReceivedMessage(
                    message_id=message.message_id,
                    body=message.body,
                    lease_token=message.lease_token,
                    attributes=attributes,
                    message_attributes=dict(message.message_attributes),
                )
            )
        return taken

    async def receive(
        self,
        queue_ref: str,
        *,
        max_count: int = 1,
        lease_seconds: int,
        wait_seconds: int = 0,
    ) -> list[ReceivedMessage]:
        queue = self._queue(queue_ref)
        max_count = min(max(1, max_count), 10)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(0, wait_seconds)
        while True:
            taken = self._take_visible(queue, max_count, lease_seconds)
            remaining = deadline - loop.time()
            if taken or remaining <= 0:
                return taken
            await asyncio.sleep(min(_POLL_INTERVAL_SECONDS, remaining))

    async def delete(self, queue_ref: str, lease_token: str) -> None:
        queue = self._queue(queue_ref)
        message = self._find_by_token(queue, lease_token)
        queue.messages.remove(message)

    async def reset_lease(self, queue_ref: str, lease_token: str, seconds: int) -> None:
        queue = self._queue(queue_ref)
        message = self._find_by_token(queue, lease_token)
        now = self._clock()
        if message.visible_at <= now:
            raise LeaseTokenExpiredError(f"message is not in flight: {lease_token}")
        message.visible_at = now + max(0, seconds)
        if seconds <= 0:
            message.lease_token = None

    async def create_queue(self, name: str, attributes: Mapping[str, str]) -> str:
        # Same as the real backend: creating an existing name returns its ref.
        if name not in self._queues:
            stored = {
                QUEUE_ATTRIBUTE.VISIBILITY_TIMEOUT: str(DEFAULT_VISIBILITY_TIMEOUT_SECONDS),
                QUEUE_ATTRIBUTE.MESSAGE_RETENTION_PERIOD: str(DEFAULT_MESSAGE_RETENTION_SECONDS),
            }
            stored.update(attributes)
            self._queues[name] = _StoredQueue(name=name, attributes=stored)
        return f"{_REF_PREFIX}{name}"

    async def delete_queue(self, queue_ref: str) -> None:
        queue = self._queue(queue_ref)
        del self._queues[queue.name]

    async def get_queue_ref(self, name: str) -> str:
        if name not in self._queues:
            raise BackendQueueNotFoundError(f"queue does not exist: {name}")
        return f"{_REF_PREFIX}{name}"

    async def get_attributes(self, queue_ref: str, names: Sequence[str]) -> dict[str, str]:
        queue = self._queue(queue_ref)
        if "All" in names:
            return dict(queue.attributes)
        return {name: queue.attributes[name] for name in names if name in queue.attributes}

    def message_count(self, queue_ref: str) -> int:
        """Exact number of stored messages (visible or leased)."""
        queue = self._queue(queue_ref)
        self._expire(queue, self._clock())
        return len(queue.messages)

    async def close(self) -> None:
        return
