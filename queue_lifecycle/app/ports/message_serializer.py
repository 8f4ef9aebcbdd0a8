"""Port: payload (de)serialization. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class MessageSerializer(Protocol):
    def serialize(self, payload: Any) -> Any:
        """Return a JSON-encodable representation of payload."""
        ...

    def deserialize(self, data: Any) -> Any: ...
