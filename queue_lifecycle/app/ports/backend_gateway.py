"""Backend gateway port: contract for the remote lease-based queue service.

The controller and registry depend on this port; infrastructure (boto3 SQS,
in-memory emulator) implements it. Implementations translate their own
exceptions into queue_lifecycle.app.domain.errors at this boundary.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Protocol, Sequence, runtime_checkable


@dataclass(frozen=True)
class ReceivedMessage:
    """One message as handed back by a receive call."""

    message_id: str
    body: str
    lease_token: str
    attributes: Mapping[str, str] = field(default_factory=dict)
    message_attributes: Mapping[str, str] = field(default_factory=dict)


@runtime_checkable
class BackendGateway(Protocol):
    """Port: send/receive/delete/reset-lease plus queue provisioning."""

    async def send(self, queue_ref: str, body: str, attributes: Mapping[str, str]) -> str:
        """Send one message; return the backend-assigned message id."""
        ...

    async def receive(
        self,
        queue_ref: str,
        *,
        max_count: int = 1,
        lease_seconds: int,
        wait_seconds: int = 0,
    ) -> list[ReceivedMessage]: ...

    async def delete(self, queue_ref: str, lease_token: str) -> None: ...

    async def reset_lease(self, queue_ref: str, lease_token: str, seconds: int) -> None:
        """Set the remaining lease to `seconds`; 0 makes the message visible immediately."""
        ...

    async def create_queue(self, name: str, attributes: Mapping[str, str]) -> str: ...

    async def delete_queue(self, queue_ref: str) -> None: ...

    async def get_queue_ref(self, name: str) -> str:
        """Resolve a queue name; raise BackendQueueNotFoundError if absent."""
        ...

    async def get_attributes(self, queue_ref: str, names: Sequence[str]) -> dict[str, str]: ...

    async def close(self) -> None:
        """Release resources. No-op allowed if nothing to close."""
        ...
