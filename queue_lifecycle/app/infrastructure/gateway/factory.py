"""Backend gateway factory: selects implementation from config. Only place that imports concrete gateways."""
from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config
from loguru import logger

from queue_lifecycle.app.config.settings import Settings
from queue_lifecycle.app.core import SERVICE_NAME
from queue_lifecycle.app.infrastructure.gateway.inmemory.in_memory_gateway import InMemoryBackendGateway
from queue_lifecycle.app.infrastructure.gateway.sqs.sqs_gateway import SqsBackendGateway
from queue_lifecycle.app.ports.backend_gateway import BackendGateway


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def create_sqs_client(settings: Settings) -> Any:
    return boto3.client(
        "sqs",
        region_name=settings.aws_region,
        endpoint_url=settings.sqs_endpoint_url or None,
        aws_access_key_id=settings.aws_access_key_id or None,
        aws_secret_access_key=settings.aws_secret_access_key or None,
        config=Config(
            retries={"max_attempts": settings.sqs_max_attempts, "mode": "standard"},
            connect_timeout=settings.sqs_connect_timeout_seconds,
            # must outlive a long poll
            read_timeout=max(settings.sqs_read_timeout_seconds, settings.receive_wait_seconds + 5),
        ),
    )


def create_backend_gateway(settings: Settings) -> BackendGateway:
    backend = settings.gateway_backend.strip().lower()

    if backend == "sqs":
        _log("gateway_created", backend=backend, region=settings.aws_region, endpoint_url=settings.sqs_endpoint_url)
        return SqsBackendGateway(create_sqs_client(settings))

    if backend == "inmemory":
        _log("gateway_created", backend=backend)
        return InMemoryBackendGateway()

    raise ValueError(f"Unsupported gateway backend: {backend}")
