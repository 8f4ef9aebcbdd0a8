from __future__ import annotations

from datetime import timedelta
from typing import Any, Mapping, Sequence

import pytest
from pydantic import BaseModel

from queue_lifecycle.app.application.queue_registry import QueueRegistry
from queue_lifecycle.app.domain.models import QueueConfiguration, QueueMessage
from queue_lifecycle.app.infrastructure.gateway.inmemory.in_memory_gateway import InMemoryBackendGateway
from queue_lifecycle.app.ports.backend_gateway import ReceivedMessage


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FlakyGateway:
    """Implements BackendGateway by delegating to a real one; records calls and fails on demand.

    fail_next("delete", exc) makes the next delete raise exc once.
    """

    def __init__(self, inner: InMemoryBackendGateway) -> None:
        self.inner = inner
        self.calls: list[str] = []
        self._failures: dict[str, list[Exception]] = {}

    def fail_next(self, operation: str, exc: Exception) -> None:
        self._failures.setdefault(operation, []).append(exc)

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    async def send(self, queue_ref: str, body: str, attributes: Mapping[str, str]) -> str:
        self._enter("send")
        return await self.inner.send(queue_ref, body, attributes)

    async def receive(
        self,
        queue_ref: str,
        *,
        max_count: int = 1,
        lease_seconds: int,
        wait_seconds: int = 0,
    ) -> list[ReceivedMessage]:
        self._enter("receive")
        return await self.inner.receive(
            queue_ref, max_count=max_count, lease_seconds=lease_seconds, wait_seconds=wait_seconds
        )

    async def delete(self, queue_ref: str, lease_token: str) -> None:
        self._enter("delete")
        await self.inner.delete(queue_ref, lease_token)

    async def reset_lease(self, queue_ref: str, lease_token: str, seconds: int) -> None:
        self._enter("reset_lease")
        await self.inner.reset_lease(queue_ref, lease_token, seconds)

    async def create_queue(self, name: str, attributes: Mapping[str, str]) -> str:
        self._enter("create_queue")
        return await self.inner.create_queue(name, attributes)

    async def delete_queue(self, queue_ref: str) -> None:
        self._enter("delete_queue")
        await self.inner.delete_queue(queue_ref)

    async def get_queue_ref(self, name: str) -> str:
        self._enter("get_queue_ref")
        return await self.inner.get_queue_ref(name)

    async def get_attributes(self, queue_ref: str, names: Sequence[str]) -> dict[str, str]:
        self._enter("get_attributes")
        return await self.inner.get_attributes(queue_ref, names)

    async def close(self) -> None:
        self._enter("close")


class CapturingQueue:
    """Implements the Queue port as a dead-letter target; records enqueued envelopes."""

    name = "capturing-dlq"

    def __init__(self, *, raise_on_enqueue: Exception | None = None) -> None:
        self.enqueued: list[QueueMessage] = []
        self._raise_on_enqueue = raise_on_enqueue

    async def enqueue(self, message: QueueMessage) -> None:
        if self._raise_on_enqueue is not None:
            raise self._raise_on_enqueue
        self.enqueued.append(message)

    async def enqueue_payload(self, payload: Any) -> None:
        await self.enqueue(QueueMessage.create(payload))

    async def reserve(self) -> QueueMessage | None:
        return None

    async def acknowledge(self, message_id: str) -> None:
        return

    async def reject(self, message_id: str, *, requeue: bool = True) -> QueueMessage:
        raise NotImplementedError

    async def extend_lease(self, message_id: str, duration: timedelta | None = None) -> None:
        return

    def dispose(self) -> None:
        return


class Order(BaseModel):
    order_id: str
    customer_id: str
    amount: float
    items: list[str]


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def gateway(clock: FakeClock) -> InMemoryBackendGateway:
    return InMemoryBackendGateway(clock=clock)


@pytest.fixture()
def flaky_gateway(gateway: InMemoryBackendGateway) -> FlakyGateway:
    return FlakyGateway(gateway)


@pytest.fixture()
def config() -> QueueConfiguration:
    return QueueConfiguration(max_receive_count=3, visibility_timeout=timedelta(seconds=30))


@pytest.fixture()
def registry(gateway: InMemoryBackendGateway, config: QueueConfiguration) -> QueueRegistry:
    return QueueRegistry(gateway, configuration=config)

