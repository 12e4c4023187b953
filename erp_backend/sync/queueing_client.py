# erp_backend/sync/queueing_client.py
from __future__ import annotations

import json as jsonlib
import logging
from typing import Any, Dict, Optional

import httpx

from erp_backend.sync.offline_queue import MUTATING_METHODS, OfflineQueue
from erp_backend.sync.sync_monitor import SyncMonitor

logger = logging.getLogger("erp_backend.sync")

QUEUED_STATUS = 202


def queued_response(op_id: str, request: Optional[httpx.Request] = None) -> httpx.Response:
    return httpx.Response(
        QUEUED_STATUS,
        json={"queued": True, "id": op_id},
        headers={"X-Queued-Operation": op_id},
        request=request,
    )


def is_queued(response: httpx.Response) -> bool:
    return response.status_code == QUEUED_STATUS and "X-Queued-Operation" in response.headers


class QueueingClient:
    """Sends writes straight through when it can, queues them when it can't."""

    def __init__(
        self,
        queue: OfflineQueue,
        monitor: Optional[SyncMonitor] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.queue = queue
        self.monitor = monitor
        self._client = httpx.AsyncClient(transport=transport, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "QueueingClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        json: Any = None,
        content: Optional[str] = None,
        defer: bool = False,
    ) -> httpx.Response:
        method = method.upper()
        headers = dict(headers or {})
        if json is not None:
            content = jsonlib.dumps(json)
            headers.setdefault("Content-Type", "application/json")

        if method not in MUTATING_METHODS:
            return await self._client.request(method, url, headers=headers, content=content)

        offline = self.monitor is not None and not self.monitor.is_online
        if defer or offline:
            return self._enqueue(method, url, headers, content)

        try:
            return await self._client.request(method, url, headers=headers, content=content)
        except httpx.TransportError as exc:
            logger.warning("write_request_unreachable", extra={"url": url, "error": str(exc)})
            return self._enqueue(method, url, headers, content)

    def _enqueue(self, method: str, url: str, headers: Dict[str, str], content: Optional[str]) -> httpx.Response:
        op_id = self.queue.enqueue(method, url, headers, content)
        return queued_response(op_id, httpx.Request(method, url))

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)
