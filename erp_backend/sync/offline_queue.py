# erp_backend/sync/offline_queue.py
"""Offline write queue.

Mutating requests that cannot reach the network are persisted and replayed
later, oldest first. Each operation moves

    pending -> processing -> removed              (2xx)
                          -> pending              (transient failure, attempts left)
                          -> failed               (attempts exhausted)

Failed operations stay parked until `retry_failed()` or `clear()`.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel

from erp_backend.sync.queue_store import OfflineQueueStore, OperationStatus, QueuedOperation

logger = logging.getLogger("erp_backend.sync")

MAX_ATTEMPTS = 3
MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


class QueueStats(BaseModel):
    pending: int = 0
    processing: int = 0
    failed: int = 0


class DrainResult(BaseModel):
    succeeded: int = 0
    failed: int = 0
    # another drain was already running
    skipped: bool = False


class OfflineQueue:
    def __init__(
        self,
        store: OfflineQueueStore,
        max_attempts: int = MAX_ATTEMPTS,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.transport = transport
        self._draining = False
        self._listeners: List[Callable[[QueueStats], None]] = []

        # live counters, loaded once and then kept in step with every transition
        self._counts = store.count_by_status()

    # -------------------------
    # Queue management
    # -------------------------

    def enqueue(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
    ) -> str:
        op = self.store.add(method, url, headers or {}, body)
        self._bump(OperationStatus.PENDING, +1)
        logger.info("operation_queued", extra={"operation_id": op.id, "method": op.method, "url": op.url})
        return op.id

    def enqueue_json(self, method: str, url: str, payload: Any, headers: Optional[Dict[str, str]] = None) -> str:
        headers = {"Content-Type": "application/json", **(headers or {})}
        return self.enqueue(method, url, headers, json.dumps(payload))

    def pending(self) -> List[QueuedOperation]:
        return self.store.list(OperationStatus.PENDING)

    def failed(self) -> List[QueuedOperation]:
        return self.store.list(OperationStatus.FAILED)

    def remove(self, op_id: str) -> bool:
        op = self.store.get(op_id)
        if op is None:
            return False
        self.store.delete(op_id)
        self._bump(op.status, -1)
        return True

    def clear(self) -> None:
        self.store.clear()
        self._counts = {s.value: 0 for s in OperationStatus}
        self._notify()
        logger.info("queue_cleared")

    def retry_failed(self, op_id: Optional[str] = None) -> int:
        """Move failed operations back to pending with a fresh attempt budget."""
        targets = [op for op in self.failed() if op_id is None or op.id == op_id]
        for op in targets:
            self._move(op, OperationStatus.PENDING, retries=0)
        return len(targets)

    # -------------------------
    # Stats
    # -------------------------

    def stats(self) -> QueueStats:
        return QueueStats(
            pending=self._counts.get(OperationStatus.PENDING.value, 0),
            processing=self._counts.get(OperationStatus.PROCESSING.value, 0),
            failed=self._counts.get(OperationStatus.FAILED.value, 0),
        )

    def subscribe(self, listener: Callable[[QueueStats], None]) -> None:
        self._listeners.append(listener)

    @property
    def is_draining(self) -> bool:
        return self._draining

    # -------------------------
    # Drain
    # -------------------------

    async def drain(self) -> DrainResult:
        if self._draining:
            logger.debug("drain_already_running")
            return DrainResult(skipped=True)

        self._draining = True
        result = DrainResult()
        try:
            operations = self.pending()
            if not operations:
                return result

            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                for op in operations:
                    outcome = await self._replay(client, op)
                    if outcome is True:
                        result.succeeded += 1
                    elif outcome == OperationStatus.FAILED:
                        result.failed += 1
        finally:
            self._draining = False

        logger.info("drain_finished", extra={"succeeded": result.succeeded, "failed": result.failed})
        return result

    async def _replay(self, client: httpx.AsyncClient, op: QueuedOperation):
        attempts = op.retries + 1
        self._move(op, OperationStatus.PROCESSING, retries=attempts)

        try:
            response = await client.request(
                op.method,
                op.url,
                headers=op.headers,
                content=op.body.encode() if op.body is not None else None,
            )
            ok = response.is_success
            error = None if ok else f"HTTP {response.status_code}"
        except httpx.HTTPError as exc:
            ok = False
            error = str(exc) or exc.__class__.__name__

        if ok:
            self.store.delete(op.id)
            self._bump(OperationStatus.PROCESSING, -1)
            logger.info("operation_succeeded", extra={"operation_id": op.id})
            return True

        processing = op.model_copy(update={"status": OperationStatus.PROCESSING, "retries": attempts})
        if attempts >= self.max_attempts:
            self._move(processing, OperationStatus.FAILED)
            logger.warning(
                "operation_failed",
                extra={"operation_id": op.id, "attempts": attempts, "error": error},
            )
            return OperationStatus.FAILED

        self._move(processing, OperationStatus.PENDING)
        logger.info(
            "operation_retry_scheduled",
            extra={"operation_id": op.id, "attempts": attempts, "error": error},
        )
        return OperationStatus.PENDING

    # -------------------------
    # Internals
    # -------------------------

    def _move(self, op: QueuedOperation, status: OperationStatus, retries: Optional[int] = None) -> None:
        self.store.update(op.id, status, retries)
        self._counts[op.status.value] = max(0, self._counts.get(op.status.value, 0) - 1)
        self._counts[status.value] = self._counts.get(status.value, 0) + 1
        self._notify()

    def _bump(self, status: OperationStatus, delta: int) -> None:
        self._counts[status.value] = max(0, self._counts.get(status.value, 0) + delta)
        self._notify()

    def _notify(self) -> None:
        stats = self.stats()
        for listener in self._listeners:
            listener(stats)
