"""Unit tests for LifecycleQueue.reject: requeue vs terminal removal vs dead-letter routing."""
from __future__ import annotations

from datetime import timedelta

import pytest

from queue_lifecycle.app.application.lifecycle_queue import LifecycleQueue
from queue_lifecycle.app.domain.errors import (
    BackendUnavailableError,
    DeadLetterForwardError,
    MessageNotFoundError,
)
from queue_lifecycle.app.domain.models import QueueConfiguration
from tests.conftest import CapturingQueue


def _config(max_receive_count: int) -> QueueConfiguration:
    return QueueConfiguration(max_receive_count=max_receive_count, visibility_timeout=timedelta(seconds=30))


async def _make_queue(gateway, max_receive_count: int, dead_letter_queue=None) -> LifecycleQueue:
    ref = await gateway.create_queue("work", {})
    return LifecycleQueue(
        gateway,
        ref,
        _config(max_receive_count),
        name="work",
        dead_letter_queue=dead_letter_queue,
    )


@pytest.mark.asyncio
async def test_reject_with_attempts_left_requeues_same_message_and_bumps_count_by_one(gateway):
    queue = await _make_queue(gateway, max_receive_count=3)
    await queue.enqueue_payload({"job": 1})
    message = await queue.reserve()
    before = queue.attempt_count(message.id)

    rejected = await queue.reject(message.id, requeue=True)
    again = await queue.reserve()

    assert rejected.id == message.id
    assert again is not None
    assert again.id == message.id
    assert again.payload == {"job": 1}
    assert queue.attempt_count(message.id) == before + 1


@pytest.mark.asyncio
async def test_reject_retires_lease_token_until_next_reservation(gateway):
    queue = await _make_queue(gateway, max_receive_count=3)
    await queue.enqueue_payload("x")
    message = await queue.reserve()

    await queue.reject(message.id)

    with pytest.raises(MessageNotFoundError):
        await queue.acknowledge(message.id)
    assert queue.attempt_count(message.id) == 2


@pytest.mark.asyncio
async def test_threshold_reached_routes_to_dead_letter_and_source_no_longer_returns_it(gateway):
    dlq = CapturingQueue()
    queue = await _make_queue(gateway, max_receive_count=3, dead_letter_queue=dlq)
    await queue.enqueue_payload("poison")

    first = await queue.reserve()
    await queue.reject(first.id, requeue=True)
    second = await queue.reserve()
    assert second.id == first.id

    routed = await queue.reject(second.id, requeue=True)

    assert [m.id for m in dlq.enqueued] == [first.id]
    assert dlq.enqueued[0].payload == "poison"
    assert routed.id == first.id
    assert await queue.reserve() is None
    assert gateway.message_count(queue.queue_ref) == 0
    assert queue.attempt_count(first.id) is None


@pytest.mark.asyncio
async def test_threshold_counts_the_reservation_itself(gateway):
    dlq = CapturingQueue()
    queue = await _make_queue(gateway, max_receive_count=2, dead_letter_queue=dlq)
    await queue.enqueue_payload("poison")
    message = await queue.reserve()

    # reservation is attempt 1, the reject makes it 2 which meets the threshold
    await queue.reject(message.id, requeue=True)

    assert [m.id for m in dlq.enqueued] == [message.id]
    assert await queue.reserve() is None


@pytest.mark.asyncio
async def test_reject_without_requeue_deletes_but_does_not_dead_letter_below_threshold(gateway):
    dlq = CapturingQueue()
    queue = await _make_queue(gateway, max_receive_count=5, dead_letter_queue=dlq)
    await queue.enqueue_payload("bad input")
    message = await queue.reserve()

    await queue.reject(message.id, requeue=False)

    assert dlq.enqueued == []
    assert gateway.message_count(queue.queue_ref) == 0
    assert await queue.reserve() is None


@pytest.mark.asyncio
async def test_reject_without_requeue_dead_letters_once_threshold_reached(gateway):
    dlq = CapturingQueue()
    queue = await _make_queue(gateway, max_receive_count=3, dead_letter_queue=dlq)
    await queue.enqueue_payload("flaky")

    message = await queue.reserve()
    await queue.reject(message.id, requeue=True)  # attempt 2
    message = await queue.reserve()
    await queue.reject(message.id, requeue=False)  # attempt 3 >= 3

    assert [m.id for m in dlq.enqueued] == [message.id]
    assert gateway.message_count(queue.queue_ref) == 0


@pytest.mark.asyncio
async def test_threshold_without_dead_letter_queue_just_deletes(gateway):
    queue = await _make_queue(gateway, max_receive_count=1)
    await queue.enqueue_payload("once")
    message = await queue.reserve()

    returned = await queue.reject(message.id)

    assert returned.payload == "once"
    assert gateway.message_count(queue.queue_ref) == 0


@pytest.mark.asyncio
async def test_reject_unknown_id_raises_message_not_found(gateway):
    queue = await _make_queue(gateway, max_receive_count=3)

    with pytest.raises(MessageNotFoundError):
        await queue.reject("ghost")


@pytest.mark.asyncio
async def test_failed_requeue_keeps_record_and_persists_increment(flaky_gateway):
    queue = await _make_queue(flaky_gateway, max_receive_count=5)
    await queue.enqueue_payload("x")
    message = await queue.reserve()

    flaky_gateway.fail_next("reset_lease", BackendUnavailableError("timeout"))
    with pytest.raises(BackendUnavailableError):
        await queue.reject(message.id)

    assert queue.attempt_count(message.id) == 2
    await queue.acknowledge(message.id)


@pytest.mark.asyncio
async def test_failed_terminal_delete_keeps_record_and_skips_dead_letter(flaky_gateway):
    dlq = CapturingQueue()
    queue = await _make_queue(flaky_gateway, max_receive_count=1, dead_letter_queue=dlq)
    await queue.enqueue_payload("x")
    message = await queue.reserve()

    flaky_gateway.fail_next("delete", BackendUnavailableError("timeout"))
    with pytest.raises(BackendUnavailableError):
        await queue.reject(message.id)

    assert dlq.enqueued == []
    await queue.reject(message.id)
    assert [m.id for m in dlq.enqueued] == [message.id]


@pytest.mark.asyncio
async def test_dead_letter_forward_failure_is_surfaced_distinctly(gateway):
    dlq = CapturingQueue(raise_on_enqueue=BackendUnavailableError("dlq unreachable"))
    queue = await _make_queue(gateway, max_receive_count=1, dead_letter_queue=dlq)
    await queue.enqueue_payload({"important": True})
    message = await queue.reserve()

    with pytest.raises(DeadLetterForwardError) as exc_info:
        await queue.reject(message.id)

    assert exc_info.value.message.payload == {"important": True}
    assert isinstance(exc_info.value.__cause__, BackendUnavailableError)
    assert gateway.message_count(queue.queue_ref) == 0
    with pytest.raises(MessageNotFoundError):
        await queue.acknowledge(message.id)


@pytest.mark.asyncio
async def test_dead_letter_queue_is_just_another_lifecycle_queue(registry, gateway):
    dlq = await registry.create_queue("work-dlq")
    queue = await registry.create_queue("work", _config(1), dead_letter_queue=dlq)
    await queue.enqueue_payload({"job": 42})
    message = await queue.reserve()

    await queue.reject(message.id)
    dead = await dlq.reserve()

    assert dead is not None
    assert dead.id == message.id
    assert dead.payload == {"job": 42}
    assert dead.created_at == message.created_at
    await dlq.acknowledge(dead.id)
