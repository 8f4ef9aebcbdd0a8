"""
Lifecycle controller: enqueue, reserve, acknowledge, reject with retry/dead-letter routing.

Lifecycle of one message id:
  enqueue -> (backend) available -> reserve -> RESERVED (lease record)
  RESERVED -> acknowledge -> deleted, bookkeeping retired
  RESERVED -> reject(requeue, attempts left) -> lease reset to 0, token retired,
              attempt count carried -> available -> reserve -> RESERVED ...
  RESERVED -> reject(no requeue or attempts exhausted) -> deleted
              -> dead-letter queue enqueue (only when exhausted and configured)
  RESERVED -> lease lapses -> available again; next reserve bumps the count

The attempt count is tracked locally because the backend's receive counter is
advisory only; when the backend reports one it is used as a floor.
"""
from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from loguru import logger

from queue_lifecycle.app.application.lease_table import LeaseTable
from queue_lifecycle.app.constants import (
    DEFAULT_MESSAGE_RETENTION_SECONDS,
    MESSAGE_ATTRIBUTE,
    SYSTEM_ATTRIBUTE,
)
from queue_lifecycle.app.core import SERVICE_NAME
from queue_lifecycle.app.domain.errors import (
    DeadLetterForwardError,
    DeserializationError,
    SerializationError,
)
from queue_lifecycle.app.domain.models import LeaseRecord, QueueConfiguration, QueueMessage
from queue_lifecycle.app.domain.queue_attributes import lease_seconds, retention_seconds
from queue_lifecycle.app.ports.backend_gateway import BackendGateway, ReceivedMessage
from queue_lifecycle.app.ports.message_serializer import MessageSerializer
from queue_lifecycle.app.ports.queue import Queue


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _from_epoch_ms(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_count(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class LifecycleQueue:
    """
    Queue implementation over a BackendGateway.

    max_receive_count is the total number of attempts a message gets: with
    max_receive_count=3 a message may be rejected with requeue twice; the
    third reject (attempt 3 >= 3) deletes it and forwards it to the
    dead-letter queue when one is configured.
    """

    def __init__(
        self,
        gateway: BackendGateway,
        queue_ref: str,
        configuration: QueueConfiguration,
        *,
        name: str | None = None,
        dead_letter_queue: Queue | None = None,
        id_generator: Callable[[], str] | None = None,
        serializer: MessageSerializer | None = None,
        receive_wait_seconds: int = 0,
    ) -> None:
        self._gateway = gateway
        self._queue_ref = queue_ref
        self._configuration = configuration
        self._name = name or queue_ref
        self._dead_letter_queue = dead_letter_queue
        self._id_generator = id_generator
        self._serializer = serializer
        self._receive_wait_seconds = int(receive_wait_seconds)
        retention = configuration.message_retention_period
        self._leases = LeaseTable(
            horizon_seconds=max(
                retention_seconds(retention) if retention is not None else DEFAULT_MESSAGE_RETENTION_SECONDS,
                lease_seconds(configuration.visibility_timeout),
            )
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def queue_ref(self) -> str:
        return self._queue_ref

    @property
    def configuration(self) -> QueueConfiguration:
        return self._configuration

    @property
    def dead_letter_queue(self) -> Queue | None:
        return self._dead_letter_queue

    @property
    def id_generator(self) -> Callable[[], str] | None:
        return self._id_generator

    @property
    def serializer(self) -> MessageSerializer | None:
        return self._serializer

    async def enqueue(self, message: QueueMessage) -> None:
        body = self._serialize(message.payload)
        attributes = {MESSAGE_ATTRIBUTE.CREATED_AT: message.created_at.isoformat()}
        if message.id is not None:
            attributes[MESSAGE_ATTRIBUTE.CLIENT_MESSAGE_ID] = message.id
        backend_id = await self._gateway.send(self._queue_ref, body, attributes)
        _log("message_enqueued", queue=self._name, message_id=message.id or backend_id)

    async def enqueue_payload(self, payload: Any) -> None:
        await self.enqueue(QueueMessage.create(payload, self._id_generator))

    async def reserve(self) -> QueueMessage | None:
        received = await self._gateway.receive(
            self._queue_ref,
            max_count=1,
            lease_seconds=lease_seconds(self._configuration.visibility_timeout),
            wait_seconds=self._receive_wait_seconds,
        )
        if not received:
            return None

        raw = received[0]
        message_id = raw.message_attributes.get(MESSAGE_ATTRIBUTE.CLIENT_MESSAGE_ID) or raw.message_id
        payload = self._deserialize(raw.body, message_id)
        backend_count = _parse_count(raw.attributes.get(SYSTEM_ATTRIBUTE.APPROXIMATE_RECEIVE_COUNT))

        async with self._leases.locked(message_id):
            message = self._build_message(message_id, payload, raw)
            attempt = self._leases.next_attempt(message_id, backend_count)
            self._leases.record(
                LeaseRecord(
                    message_id=message_id,
                    lease_token=raw.lease_token,
                    attempt_count=attempt,
                    message=message,
                )
            )

        _log("message_reserved", queue=self._name, message_id=message_id, attempt_count=attempt)
        return message

    async def acknowledge(self, message_id: str) -> None:
        async with self._leases.claim(message_id) as record:
            await self._gateway.delete(self._queue_ref, record.lease_token)
            # only retire after the backend delete succeeded so a failed ack can be retried
            self._leases.retire(message_id)

        _log(
            "message_acknowledged",
            queue=self._name,
            message_id=message_id,
            acknowledged_at=datetime.now(timezone.utc).isoformat(),
        )

    async def reject(self, message_id: str, *, requeue: bool = True) -> QueueMessage:
        max_receive_count = self._configuration.max_receive_count
        async with self._leases.claim(message_id) as record:
            new_attempt = self._leases.bump(record)
            message = record.message

            if requeue and new_attempt < max_receive_count:
                await self._gateway.reset_lease(self._queue_ref, record.lease_token, 0)
                self._leases.retire_lease(message_id)
                _log(
                    "message_requeued",
                    queue=self._name,
                    message_id=message_id,
                    attempt_count=new_attempt,
                    max_receive_count=max_receive_count,
                )
                return message

            await self._gateway.delete(self._queue_ref, record.lease_token)
            self._leases.retire(message_id)

        exhausted = new_attempt >= max_receive_count
        if self._dead_letter_queue is not None and exhausted:
            try:
                await self._dead_letter_queue.enqueue(message)
            except Exception as exc:
                logger.exception("dead-letter forward failed, message lost from both queues: {}", exc)
                _log("dead_letter_forward_failed", queue=self._name, message_id=message_id, error=str(exc))
                raise DeadLetterForwardError(message, exc) from exc
            _log("message_dead_lettered", queue=self._name, message_id=message_id, attempt_count=new_attempt)
            return message

        _log(
            "message_discarded",
            queue=self._name,
            message_id=message_id,
            attempt_count=new_attempt,
            reason="retries_exhausted" if exhausted else "requeue_disabled",
        )
        return message

    async def extend_lease(self, message_id: str, duration: timedelta | None = None) -> None:
        seconds = lease_seconds(duration if duration is not None else self._configuration.visibility_timeout)
        async with self._leases.claim(message_id) as record:
            await self._gateway.reset_lease(self._queue_ref, record.lease_token, seconds)
        _log("lease_extended", queue=self._name, message_id=message_id, lease_seconds=seconds)

    def attempt_count(self, message_id: str) -> int | None:
        return self._leases.attempt_count(message_id)

    def dispose(self) -> None:
        self._leases.clear()

    def _build_message(self, message_id: str, payload: Any, raw: ReceivedMessage) -> QueueMessage:
        now = datetime.now(timezone.utc)
        created_at = (
            _from_iso(raw.message_attributes.get(MESSAGE_ATTRIBUTE.CREATED_AT))
            or _from_epoch_ms(raw.attributes.get(SYSTEM_ATTRIBUTE.SENT_TIMESTAMP))
            or now
        )
        processed_at = (
            _from_epoch_ms(raw.attributes.get(SYSTEM_ATTRIBUTE.APPROXIMATE_FIRST_RECEIVE_TIMESTAMP))
            or self._leases.first_processed_at(message_id)
            or now
        )
        if processed_at < created_at:
            processed_at = created_at
        return QueueMessage(
            payload=payload,
            id=message_id,
            created_at=created_at,
            processed_at=processed_at,
        )

    def _serialize(self, payload: Any) -> str:
        if payload is None:
            raise SerializationError("cannot enqueue a message without a payload")
        if self._serializer is not None:
            try:
                data = self._serializer.serialize(payload)
            except Exception as exc:
                raise SerializationError(
                    f"serializer failed for payload of type {type(payload).__name__}: {exc}"
                ) from exc
            if data is None:
                raise SerializationError(f"serializer returned no data for {type(payload).__name__}")
        else:
            data = payload

        try:
            return json.dumps(data)
        except (TypeError, ValueError) as exc:
            raise SerializationError(
                f"cannot serialize payload of type {type(payload).__name__}; provide a MessageSerializer"
            ) from exc

    def _deserialize(self, body: str, message_id: str) -> Any:
        try:
            data = json.loads(body)
        except (TypeError, ValueError) as exc:
            raise DeserializationError(f"message body is not valid JSON: {exc}", message_id=message_id) from exc
        if data is None:
            raise DeserializationError("no payload data found in message", message_id=message_id)
        if self._serializer is None:
            return data
        try:
            return self._serializer.deserialize(data)
        except Exception as exc:
            raise DeserializationError(
                f"serializer could not deserialize message: {exc}", message_id=message_id
            ) from exc
