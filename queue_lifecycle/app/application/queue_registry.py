"""Queue registry: creates, caches, resolves and deletes named queues over one gateway.

The registry is the only writer of the name -> queue mapping. It never closes
the gateway: several registries may share one gateway connection.
"""
from __future__ import annotations

from typing import Any, Callable

from loguru import logger

from queue_lifecycle.app.application.lifecycle_queue import LifecycleQueue
from queue_lifecycle.app.constants import QUEUE_ATTRIBUTE
from queue_lifecycle.app.core import SERVICE_NAME
from queue_lifecycle.app.domain.errors import (
    BackendQueueNotFoundError,
    QueueAlreadyExistsError,
    QueueDoesNotExistError,
)
from queue_lifecycle.app.domain.models import QueueConfiguration
from queue_lifecycle.app.domain.queue_attributes import (
    configuration_from_attributes,
    to_backend_attributes,
)
from queue_lifecycle.app.ports.backend_gateway import BackendGateway
from queue_lifecycle.app.ports.message_serializer import MessageSerializer
from queue_lifecycle.app.ports.queue import Queue


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class QueueRegistry:
    """Factory and cache of LifecycleQueue instances bound to one BackendGateway."""

    def __init__(
        self,
        gateway: BackendGateway,
        *,
        serializer: MessageSerializer | None = None,
        id_generator: Callable[[], str] | None = None,
        configuration: QueueConfiguration | None = None,
        receive_wait_seconds: int = 0,
    ) -> None:
        self._gateway = gateway
        self._serializer = serializer
        self._id_generator = id_generator
        self._configuration = configuration or QueueConfiguration.default()
        self._receive_wait_seconds = receive_wait_seconds
        self._queues: dict[str, LifecycleQueue] = {}
        # names with a create_queue in flight
        self._pending: set[str] = set()

    @property
    def default_configuration(self) -> QueueConfiguration:
        return self._configuration

    def __contains__(self, name: object) -> bool:
        return name in self._queues

    async def _exists_on_backend(self, name: str) -> bool:
        try:
            await self._gateway.get_queue_ref(name)
        except BackendQueueNotFoundError:
            return False
        return True

    def _bind(
        self,
        name: str,
        queue_ref: str,
        configuration: QueueConfiguration,
        dead_letter_queue: Queue | None = None,
    ) -> LifecycleQueue:
        queue = LifecycleQueue(
            self._gateway,
            queue_ref,
            configuration,
            name=name,
            dead_letter_queue=dead_letter_queue,
            id_generator=self._id_generator,
            serializer=self._serializer,
            receive_wait_seconds=self._receive_wait_seconds,
        )
        self._queues[name] = queue
        return queue

    async def create_queue(
        self,
        name: str,
        configuration: QueueConfiguration | None = None,
        dead_letter_queue: Queue | None = None,
    ) -> LifecycleQueue:
        if name in self._queues or name in self._pending:
            raise QueueAlreadyExistsError(name)
        self._pending.add(name)
        try:
            # another process may already own a queue with this name
            if await self._exists_on_backend(name):
                raise QueueAlreadyExistsError(name)

            config = configuration or self._configuration
            attributes = to_backend_attributes(config)
            queue_ref = await self._gateway.create_queue(name, attributes)
            queue = self._bind(name, queue_ref, config, dead_letter_queue)
        finally:
            self._pending.discard(name)
        _log(
            "queue_created",
            queue=name,
            queue_ref=queue_ref,
            attributes=attributes,
            max_receive_count=config.max_receive_count,
            dead_letter_queue=getattr(dead_letter_queue, "name", None),
        )
        return queue

    async def get_queue(self, name: str) -> LifecycleQueue:
        cached = self._queues.get(name)
        if cached is not None:
            return cached

        try:
            queue_ref = await self._gateway.get_queue_ref(name)
            attributes = await self._gateway.get_attributes(
                queue_ref,
                [QUEUE_ATTRIBUTE.VISIBILITY_TIMEOUT, QUEUE_ATTRIBUTE.MESSAGE_RETENTION_PERIOD],
            )
        except BackendQueueNotFoundError as exc:
            raise QueueDoesNotExistError(name) from exc

        # the backend has no notion of a retry threshold; fall back to ours
        config = configuration_from_attributes(
            attributes,
            max_receive_count=self._configuration.max_receive_count,
        )
        queue = self._bind(name, queue_ref, config)
        _log("queue_resolved", queue=name, queue_ref=queue_ref, attributes=dict(attributes))
        return queue

    async def delete_queue(self, name: str) -> None:
        try:
            queue_ref = await self._gateway.get_queue_ref(name)
            await self._gateway.delete_queue(queue_ref)
        except BackendQueueNotFoundError as exc:
            raise QueueDoesNotExistError(name) from exc

        self._queues.pop(name, None)
        _log("queue_deleted", queue=name, queue_ref=queue_ref)

    def dispose(self) -> None:
        """Forget cached queues. Handles already given out keep working."""
        count = len(self._queues)
        self._queues.clear()
        _log("registry_disposed", queues=count)
