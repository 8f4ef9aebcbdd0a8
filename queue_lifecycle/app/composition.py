"""
Composition root: build and lifecycle-manage the gateway and queue registry.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle. The registry never closes the gateway; this class does.
"""
from __future__ import annotations

from typing import Callable

from loguru import logger

from queue_lifecycle.app.application.queue_registry import QueueRegistry
from queue_lifecycle.app.config.settings import Settings
from queue_lifecycle.app.infrastructure.gateway.factory import create_backend_gateway
from queue_lifecycle.app.ports.backend_gateway import BackendGateway
from queue_lifecycle.app.ports.message_serializer import MessageSerializer


class QueueDependencies:
    """Holds the wired gateway and registry and their lifecycle."""

    def __init__(
        self,
        *,
        settings: Settings,
        serializer: MessageSerializer | None = None,
        id_generator: Callable[[], str] | None = None,
    ) -> None:
        self._settings = settings
        self._serializer = serializer
        self._id_generator = id_generator
        self._gateway: BackendGateway | None = None
        self._registry: QueueRegistry | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def gateway(self) -> BackendGateway:
        if self._gateway is None:
            raise RuntimeError("gateway is not initialized")
        return self._gateway

    @property
    def registry(self) -> QueueRegistry:
        if self._registry is None:
            raise RuntimeError("registry is not initialized")
        return self._registry

    async def connect(self) -> None:
        self._gateway = create_backend_gateway(self._settings)
        self._registry = QueueRegistry(
            self._gateway,
            serializer=self._serializer,
            id_generator=self._id_generator,
            configuration=self._settings.default_queue_configuration(),
            receive_wait_seconds=self._settings.receive_wait_seconds,
        )

    async def close(self) -> None:
        if self._registry is not None:
            self._registry.dispose()
            self._registry = None

        if self._gateway is not None:
            try:
                await self._gateway.close()
            except Exception as exc:
                logger.warning("gateway close failed: {}", exc)
            self._gateway = None


def create_queue_dependencies(
    settings: Settings | None = None,
    *,
    serializer: MessageSerializer | None = None,
    id_generator: Callable[[], str] | None = None,
) -> QueueDependencies:
    return QueueDependencies(
        settings=settings or Settings(),
        serializer=serializer,
        id_generator=id_generator,
    )
