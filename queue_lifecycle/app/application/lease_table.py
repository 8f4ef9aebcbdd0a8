"""Local lease bookkeeping for one queue: id -> lease record, id -> attempt count.

Concurrency:
  - Every read-modify-write for a message id runs under that id's asyncio.Lock,
    including the backend call it guards, so acknowledge/reject/extend for one
    id are serialized while different ids proceed in parallel.
  - claim() re-checks the record after acquiring the lock; a caller that lost a
    race sees MessageNotFoundError.
  - A lock exists only while some caller holds or waits on it.

Bounds:
  - Entries untouched for longer than horizon_seconds are forgotten. The queue
    passes its retention period, after which the backend has dropped the
    message anyway.
  - At most max_carried requeued ids keep a carried count; the oldest go first.

State is best-effort and lost on restart; the backend's receive counter is
the only thing that survives a crash.
"""
from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable

from queue_lifecycle.app.constants import DEFAULT_MESSAGE_RETENTION_SECONDS, MAX_CARRIED_ATTEMPTS
from queue_lifecycle.app.domain.errors import MessageNotFoundError
from queue_lifecycle.app.domain.models import LeaseRecord


class LeaseTable:
    def __init__(
        self,
        *,
        horizon_seconds: float = DEFAULT_MESSAGE_RETENTION_SECONDS,
        max_carried: int = MAX_CARRIED_ATTEMPTS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._horizon_seconds = horizon_seconds
        self._max_carried = max_carried
        self._clock = clock
        self._leases: dict[str, LeaseRecord] = {}
        self._attempts: dict[str, int] = {}
        self._first_processed: dict[str, datetime] = {}
        # ordered oldest touch first
        self._touched: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def locked(self, message_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(message_id)
        if lock is None:
            lock = self._locks[message_id] = asyncio.Lock()
        self._lock_users[message_id] = self._lock_users.get(message_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            users = self._lock_users.get(message_id, 1) - 1
            if users > 0:
                self._lock_users[message_id] = users
            else:
                self._lock_users.pop(message_id, None)
                self._locks.pop(message_id, None)

    @asynccontextmanager
    async def claim(self, message_id: str) -> AsyncIterator[LeaseRecord]:
        """Hold the id's lock and yield its live record, or raise MessageNotFoundError."""
        async with self.locked(message_id):
            record = self._leases.get(message_id)
            if record is None:
                raise MessageNotFoundError(message_id)
            yield record

    def next_attempt(self, message_id: str, backend_count: int | None) -> int:
        """Attempt count for a fresh reservation of message_id. Caller holds the lock."""
        live = self._leases.get(message_id)
        if live is not None:
            # lease lapsed and the backend redelivered without a reject
            attempt = live.attempt_count + 1
        else:
            attempt = self._attempts.get(message_id, 1)
        if backend_count is not None:
            attempt = max(attempt, backend_count)
        return attempt

    def first_processed_at(self, message_id: str) -> datetime | None:
        return self._first_processed.get(message_id)

    def record(self, record: LeaseRecord) -> None:
        self._leases[record.message_id] = record
        self._attempts[record.message_id] = record.attempt_count
        if record.message.processed_at is not None:
            self._first_processed.setdefault(record.message_id, record.message.processed_at)
        self._touch(record.message_id)
        self._prune()

    def bump(self, record: LeaseRecord) -> int:
        record.attempt_count += 1
        self._attempts[record.message_id] = record.attempt_count
        return record.attempt_count

    def retire_lease(self, message_id: str) -> None:
        """Drop the lease token but keep the attempt count for the next reservation."""
        self._leases.pop(message_id, None)
        self._touch(message_id)
        self._prune()

    def retire(self, message_id: str) -> None:
        """Drop all bookkeeping for message_id."""
        self._forget(message_id)

    def get(self, message_id: str) -> LeaseRecord | None:
        return self._leases.get(message_id)

    def attempt_count(self, message_id: str) -> int | None:
        return self._attempts.get(message_id)

    def sizes(self) -> dict[str, int]:
        return {
            "leases": len(self._leases),
            "attempts": len(self._attempts),
            "first_processed": len(self._first_processed),
            "locks": len(self._locks),
        }

    def __len__(self) -> int:
        return len(self._leases)

    def clear(self) -> None:
        # locks are left to their holders; they go away on release
        self._leases.clear()
        self._attempts.clear()
        self._first_processed.clear()
        self._touched.clear()

    def _touch(self, message_id: str) -> None:
        self._touched.pop(message_id, None)
        self._touched[message_id] = self._clock()

    def _forget(self, message_id: str) -> None:
        self._leases.pop(message_id, None)
        self._attempts.pop(message_id, None)
        self._first_processed.pop(message_id, None)
        self._touched.pop(message_id, None)

    def _prune(self) -> None:
        cutoff = self._clock() - self._horizon_seconds
        carried = len(self._attempts) - len(self._leases)
        for message_id, touched in list(self._touched.items()):
            stale = touched <= cutoff
            if not stale and carried <= self._max_carried:
                break
            if message_id in self._lock_users:
                continue
            live = message_id in self._leases
            if stale or not live:
                self._forget(message_id)
                if not live:
                    carried -= 1
