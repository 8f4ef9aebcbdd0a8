"""MessageSerializer for pydantic models: JSON-mode dump on the way out, validation on the way in."""
from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

ModelT = TypeVar("ModelT", bound=BaseModel)


class PydanticModelSerializer(Generic[ModelT]):
    """Implements queue_lifecycle.app.ports.message_serializer.MessageSerializer for one model type."""

    def __init__(self, model: type[ModelT]) -> None:
        self._model = model

    def serialize(self, payload: ModelT) -> dict[str, Any]:
        if not isinstance(payload, self._model):
            raise TypeError(f"expected {self._model.__name__}, got {type(payload).__name__}")
        return payload.model_dump(mode="json")

    def deserialize(self, data: Any) -> ModelT:
        return self._model.model_validate(data)
