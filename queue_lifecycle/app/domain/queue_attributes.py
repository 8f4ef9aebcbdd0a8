"""Translation between QueueConfiguration and backend queue attributes.

The backend only accepts whole seconds within fixed bounds, so durations are
rounded up and clamped silently rather than rejected. The retry threshold is
a client-side concept and never reaches the backend.
"""
from __future__ import annotations

import math
from datetime import timedelta
from typing import Mapping

from queue_lifecycle.app.constants import (
    DEFAULT_VISIBILITY_TIMEOUT_SECONDS,
    MAX_MESSAGE_RETENTION_SECONDS,
    MAX_VISIBILITY_TIMEOUT_SECONDS,
    MIN_MESSAGE_RETENTION_SECONDS,
    MIN_VISIBILITY_TIMEOUT_SECONDS,
    QUEUE_ATTRIBUTE,
)
from queue_lifecycle.app.domain.models import QueueConfiguration


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def lease_seconds(duration: timedelta) -> int:
    seconds = math.ceil(duration.total_seconds())
    return _clamp(seconds, MIN_VISIBILITY_TIMEOUT_SECONDS, MAX_VISIBILITY_TIMEOUT_SECONDS)


def retention_seconds(duration: timedelta) -> int:
    seconds = int(duration.total_seconds())
    return _clamp(seconds, MIN_MESSAGE_RETENTION_SECONDS, MAX_MESSAGE_RETENTION_SECONDS)


def to_backend_attributes(configuration: QueueConfiguration) -> dict[str, str]:
    attributes = {
        QUEUE_ATTRIBUTE.VISIBILITY_TIMEOUT: str(lease_seconds(configuration.visibility_timeout)),
    }
    if configuration.message_retention_period is not None:
        attributes[QUEUE_ATTRIBUTE.MESSAGE_RETENTION_PERIOD] = str(
            retention_seconds(configuration.message_retention_period)
        )
    return attributes


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def configuration_from_attributes(
    attributes: Mapping[str, str],
    *,
    max_receive_count: int,
) -> QueueConfiguration:
    """Best-effort configuration from whatever the backend reports."""
    visibility = _parse_int(attributes.get(QUEUE_ATTRIBUTE.VISIBILITY_TIMEOUT))
    if visibility is None or visibility <= 0:
        visibility = DEFAULT_VISIBILITY_TIMEOUT_SECONDS
    retention = _parse_int(attributes.get(QUEUE_ATTRIBUTE.MESSAGE_RETENTION_PERIOD))

    return QueueConfiguration(
        max_receive_count=max_receive_count,
        visibility_timeout=timedelta(seconds=visibility),
        message_retention_period=timedelta(seconds=retention) if retention and retention > 0 else None,
    )
