"""Port: the capability set every queue offers.

A dead-letter target is just another value implementing this; the
controller only ever calls its enqueue().
"""
from __future__ import annotations

from datetime import timedelta
from typing import Any, Protocol

from queue_lifecycle.app.domain.models import QueueMessage


class Queue(Protocol):
    async def enqueue(self, message: QueueMessage) -> None: ...

    async def enqueue_payload(self, payload: Any) -> None: ...

    async def reserve(self) -> QueueMessage | None: ...

    async def acknowledge(self, message_id: str) -> None: ...

    async def reject(self, message_id: str, *, requeue: bool = True) -> QueueMessage: ...

    async def extend_lease(self, message_id: str, duration: timedelta | None = None) -> None: ...

    def dispose(self) -> None: ...
