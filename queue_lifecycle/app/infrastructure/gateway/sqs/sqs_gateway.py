"""Concrete backend gateway over Amazon SQS (or LocalStack) using a boto3 client.

boto3 is synchronous; every call runs in a worker thread via asyncio.to_thread
so concurrent callers do not block the event loop. botocore exceptions are
mapped to queue_lifecycle.app.domain.errors here and nowhere else.
"""
from __future__ import annotations

import asyncio
from typing import Any, Mapping, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from queue_lifecycle.app.domain.errors import (
    BackendQueueNotFoundError,
    BackendRequestError,
    BackendUnavailableError,
    LeaseTokenExpiredError,
)
from queue_lifecycle.app.ports.backend_gateway import ReceivedMessage

_QUEUE_NOT_FOUND_CODES = {
    "AWS.SimpleQueueService.NonExistentQueue",
    "QueueDoesNotExist",
}
_LEASE_TOKEN_CODES = {
    "ReceiptHandleIsInvalid",
    "AWS.SimpleQueueService.MessageNotInflight",
    "MessageNotInflight",
}
_UNAVAILABLE_CODES = {
    "ServiceUnavailable",
    "InternalError",
    "InternalFailure",
    "RequestTimeout",
    "Throttling",
    "ThrottlingException",
    "RequestThrottled",
}


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class SqsBackendGateway:
    """BackendGateway implementation using a boto3 SQS client."""

    def __init__(self, client: Any) -> None:
        self._client = client

    async def _call(self, operation: str, **params: Any) -> dict[str, Any]:
        method = getattr(self._client, operation)
        try:
            return await asyncio.to_thread(method, **params)
        except ClientError as exc:
            code = _error_code(exc)
            if code in _QUEUE_NOT_FOUND_CODES:
                raise BackendQueueNotFoundError(f"sqs {operation}: queue does not exist") from exc
            if code in _LEASE_TOKEN_CODES:
                raise LeaseTokenExpiredError(f"sqs {operation}: lease token invalid ({code})") from exc
            if code in _UNAVAILABLE_CODES:
                raise BackendUnavailableError(f"sqs {operation} unavailable: {code}") from exc
            raise BackendRequestError(f"sqs {operation} failed: {code or exc}") from exc
        except BotoCoreError as exc:
            raise BackendUnavailableError(f"sqs {operation} failed: {exc}") from exc

    async def send(self, queue_ref: str, body: str, attributes: Mapping[str, str]) -> str:
        response = await self._call(
            "send_message",
            QueueUrl=queue_ref,
            MessageBody=body,
            MessageAttributes={
                name: {"DataType": "String", "StringValue": value}
                for name, value in attributes.items()
            },
        )
        return str(response.get("MessageId", ""))

    async def receive(
        self,
        queue_ref: str,
        *,
        max_count: int = 1,
        lease_seconds: int,
        wait_seconds: int = 0,
    ) -> list[ReceivedMessage]:
        response = await self._call(
            "receive_message",
            QueueUrl=queue_ref,
            MaxNumberOfMessages=max(1, min(int(max_count), 10)),
            VisibilityTimeout=int(lease_seconds),
            WaitTimeSeconds=max(0, min(int(wait_seconds), 20)),
            AttributeNames=["All"],
            MessageAttributeNames=["All"],
        )
        received: list[ReceivedMessage] = []
        for raw in response.get("Messages", []) or []:
            message_attributes = {
                name: value["StringValue"]
                for name, value in (raw.get("MessageAttributes") or {}).items()
                if "StringValue" in value
            }
            received.append(
                ReceivedMessage(
                    message_id=raw["MessageId"],
                    body=raw.get("Body", ""),
                    lease_token=raw["ReceiptHandle"],
                    attributes=dict(raw.get("Attributes") or {}),
                    message_attributes=message_attributes,
                )
            )
        return received

    async def delete(self, queue_ref: str, lease_token: str) -> None:
        await self._call("delete_message", QueueUrl=queue_ref, ReceiptHandle=lease_token)

    async def reset_lease(self, queue_ref: str, lease_token: str, seconds: int) -> None:
        await self._call(
            "change_message_visibility",
            QueueUrl=queue_ref,
            ReceiptHandle=lease_token,
            VisibilityTimeout=int(seconds),
        )

    async def create_queue(self, name: str, attributes: Mapping[str, str]) -> str:
        response = await self._call("create_queue", QueueName=name, Attributes=dict(attributes))
        return str(response["QueueUrl"])

    async def delete_queue(self, queue_ref: str) -> None:
        await self._call("delete_queue", QueueUrl=queue_ref)

    async def get_queue_ref(self, name: str) -> str:
        response = await self._call("get_queue_url", QueueName=name)
        return str(response["QueueUrl"])

    async def get_attributes(self, queue_ref: str, names: Sequence[str]) -> dict[str, str]:
        response = await self._call("get_queue_attributes", QueueUrl=queue_ref, AttributeNames=list(names))
        return dict(response.get("Attributes") or {})

    async def close(self) -> None:
        close = getattr(self._client, "close", None)
        if callable(close):
            await asyncio.to_thread(close)
