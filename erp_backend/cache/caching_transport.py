# erp_backend/cache/caching_transport.py
"""Client-side cache manager, as an httpx transport.

Wraps the real transport and routes every request through an ordered list
of (predicate, handler) rules; the first matching rule answers. Requests
that match nothing go to the network untouched.

    client = httpx.AsyncClient(transport=CachingTransport(origin="https://app.example"))
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from erp_backend.cache import cache_strategy as strategy
from erp_backend.cache.cache_storage import CacheEntry, CacheStorage, request_key
from erp_backend.config import Settings

logger = logging.getLogger("erp_backend.cache")

DEFAULT_VERSION = "v2"
MAX_CACHE_SIZE = 50 * 1024 * 1024
MAX_IMAGE_SIZE = 5 * 1024 * 1024
APP_SHELL_ASSETS = ("/", "/dashboard", "/index.html")
STALE_HEADER = "X-Cached-Data"

Handler = Callable[[httpx.Request], Awaitable[httpx.Response]]


def text_response(status: int, text: str, request: Optional[httpx.Request] = None) -> httpx.Response:
    return httpx.Response(status, text=text, request=request)


class CachingTransport(httpx.AsyncBaseTransport):
    def __init__(
        self,
        origin: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        storage: Optional[CacheStorage] = None,
        version: str = DEFAULT_VERSION,
        max_cache_size: int = MAX_CACHE_SIZE,
        app_shell_assets: Sequence[str] = APP_SHELL_ASSETS,
    ):
        self.origin = httpx.URL(origin)
        self.wrapped = transport or httpx.AsyncHTTPTransport()
        self.storage = storage or CacheStorage()
        self.version = version
        self.max_cache_size = max_cache_size
        self.app_shell_assets = tuple(app_shell_assets)

        # until activation the manager does not control requests
        self.controlling = False
        self._activation: Optional[asyncio.Task] = None
        self._background: set = set()

        self.rules: List[Tuple[Callable[[httpx.Request], bool], Handler]] = [
            (self._is_uncached_write, self._passthrough),
            (lambda r: strategy.should_never_cache(r.url), self._passthrough),
            (strategy.has_auth_token, self._network_only),
            (lambda r: self._same_origin(r) and strategy.is_image(r), self._cache_first_image),
            (lambda r: self._same_origin(r) and strategy.is_static_asset(r), self._cache_first_static),
            (lambda r: self._same_origin(r) and strategy.is_navigation(r), self._stale_while_revalidate),
            (lambda r: strategy.is_data_api(r.url), self._network_first),
        ]

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "CachingTransport":
        settings.require("app_url")
        return cls(settings.app_url, transport=transport, version=settings.cache_version)

    def bucket_name(self, resource_type: str) -> str:
        return strategy.get_cache_name(resource_type, self.version)

    # -------------------------
    # Transport
    # -------------------------

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if not self.controlling:
            return await self._passthrough(request)
        for predicate, handler in self.rules:
            if predicate(request):
                return await handler(request)
        return await self._passthrough(request)

    async def aclose(self) -> None:
        for task in list(self._background):
            task.cancel()
        await self.wrapped.aclose()

    # -------------------------
    # Classification
    # -------------------------

    def _same_origin(self, request: httpx.Request) -> bool:
        url = request.url
        return (url.scheme, url.host, url.port) == (self.origin.scheme, self.origin.host, self.origin.port)

    def _is_uncached_write(self, request: httpx.Request) -> bool:
        return strategy.is_write_operation(request) and request.url.path not in self.app_shell_assets

    # -------------------------
    # Strategies
    # -------------------------

    async def _fetch(self, request: httpx.Request) -> httpx.Response:
        response = await self.wrapped.handle_async_request(request)
        await response.aread()
        return response

    async def _passthrough(self, request: httpx.Request) -> httpx.Response:
        return await self.wrapped.handle_async_request(request)

    async def _network_only(self, request: httpx.Request) -> httpx.Response:
        # credentialed: never read from or written to the cache
        try:
            return await self._fetch(request)
        except httpx.TransportError:
            return text_response(503, "Network error", request)

    async def _cache_first_image(self, request: httpx.Request) -> httpx.Response:
        cached = self._match(request)
        if cached is not None:
            return cached.to_response(request)

        response = await self._fetch(request)
        if response.status_code == 200:
            length = response.headers.get("Content-Length")
            if length and length.isdigit() and int(length) < MAX_IMAGE_SIZE:
                self._put(strategy.IMAGES, request, response)
        return response

    async def _cache_first_static(self, request: httpx.Request) -> httpx.Response:
        cached = self._match(request)
        if cached is not None:
            return cached.to_response(request)

        response = await self._fetch(request)
        if response.status_code == 200:
            self._put(strategy.STATIC, request, response)
        return response

    async def _stale_while_revalidate(self, request: httpx.Request) -> httpx.Response:
        cached = self._match(request, strategy.APP_SHELL)
        if cached is not None:
            self._spawn(self._revalidate(request))
            return cached.to_response(request)

        try:
            response = await self._fetch(request)
        except httpx.TransportError:
            return text_response(503, "Offline", request)
        if response.status_code == 200:
            self._put(strategy.APP_SHELL, request, response)
        return response

    async def _revalidate(self, request: httpx.Request) -> None:
        try:
            response = await self._fetch(request)
        except httpx.TransportError as exc:
            logger.debug("cache_revalidate_failed", extra={"url": str(request.url), "error": str(exc)})
            return
        if response.status_code == 200:
            self._put(strategy.APP_SHELL, request, response)

    async def _network_first(self, request: httpx.Request) -> httpx.Response:
        try:
            response = await self._fetch(request)
        except httpx.TransportError:
            cached = self._match(request)
            if cached is not None:
                logger.info("cache_served_stale", extra={"url": str(request.url)})
                return cached.to_response(request, {STALE_HEADER: "true"})
            return text_response(503, "Network error", request)

        if strategy.should_cache_response(response, request):
            self._put(strategy.API, request, response)
        return response

    # -------------------------
    # Storage
    # -------------------------

    def _match(self, request: httpx.Request, resource_type: Optional[str] = None) -> Optional[CacheEntry]:
        """Stored entry for a GET request. Other methods never read from or write to storage."""
        if request.method != "GET":
            return None
        if resource_type is None:
            return self.storage.match(request_key(request))
        return self.storage.open(self.bucket_name(resource_type)).match(request_key(request))

    def _put(self, resource_type: str, request: httpx.Request, response: httpx.Response) -> None:
        if request.method != "GET":
            return
        key = request_key(request)
        self.storage.open(self.bucket_name(resource_type)).put(CacheEntry.from_response(key, response))
        self.enforce_budget()

    def enforce_budget(self) -> List[str]:
        """Delete whole buckets, smallest first, until the total fits."""
        sizes = self.storage.sizes()
        total = sum(sizes.values())
        deleted = []
        if total <= self.max_cache_size:
            return deleted

        for name, size in sorted(sizes.items(), key=lambda item: item[1]):
            if total <= self.max_cache_size:
                break
            self.storage.delete(name)
            total -= size
            deleted.append(name)
            logger.info("cache_bucket_evicted", extra={"bucket": name, "size": size})
        return deleted

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_for_background(self) -> None:
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # -------------------------
    # Lifecycle
    # -------------------------

    async def install(self) -> int:
        """Precache the app shell. Individual failures are logged, not fatal."""
        cached = 0
        for path in self.app_shell_assets:
            request = httpx.Request("GET", self.origin.join(path))
            try:
                response = await self._fetch(request)
            except httpx.TransportError as exc:
                logger.warning("app_shell_precache_failed", extra={"path": path, "error": str(exc)})
                continue
            if response.status_code != 200:
                logger.warning("app_shell_precache_failed", extra={"path": path, "status": response.status_code})
                continue
            self._put(strategy.APP_SHELL, request, response)
            cached += 1
        logger.info("app_shell_precached", extra={"cached": cached, "version": self.version})
        return cached

    async def activate(self) -> List[str]:
        """Purge stale-versioned buckets and enforce the size budget.

        Concurrent callers share one in-flight activation.
        """
        task = self._activation
        if task is None:
            task = asyncio.get_running_loop().create_task(self._activate())
            self._activation = task
            task.add_done_callback(self._clear_activation)
        return await task

    def _clear_activation(self, task: asyncio.Task) -> None:
        if self._activation is task:
            self._activation = None

    async def _activate(self) -> List[str]:
        suffix = f"-{self.version}"
        deleted = []
        for name in self.storage.keys():
            if strategy.is_known_bucket(name) and not name.endswith(suffix):
                self.storage.delete(name)
                deleted.append(name)
                logger.info("cache_bucket_stale_deleted", extra={"bucket": name})

        deleted.extend(self.enforce_budget())
        self.controlling = True
        logger.info("cache_manager_activated", extra={"version": self.version, "deleted": len(deleted)})
        return deleted

    async def handle_message(
        self,
        message: Dict[str, Any],
        reply: Optional[Callable[[Dict[str, Any]], None]] = None,
    ) -> Optional[Dict[str, Any]]:
        kind = message.get("type") if isinstance(message, dict) else None

        if kind == "CLEAR_CACHE":
            for name in self.storage.keys():
                self.storage.delete(name)
            logger.info("cache_cleared")
            result = {"success": True}
            if reply is not None:
                reply(result)
            return result

        if kind == "SKIP_WAITING":
            await self.activate()
            return None

        logger.debug("cache_message_ignored", extra={"message_type": kind})
        return None
