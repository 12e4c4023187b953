# erp_backend/cache/cache_storage.py
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx

# recomputed from the stored (already decoded) body
_DROPPED_HEADERS = {"content-encoding", "content-length", "transfer-encoding"}


def request_key(request: httpx.Request) -> str:
    return f"{request.method.upper()} {request.url}"


@dataclass
class CacheEntry:
    key: str
    status: int
    headers: Dict[str, str]
    body: bytes
    bucket: str = ""

    @property
    def size(self) -> int:
        return len(self.body)

    @classmethod
    def from_response(cls, key: str, response: httpx.Response) -> "CacheEntry":
        headers = {k: v for k, v in response.headers.items() if k.lower() not in _DROPPED_HEADERS}
        return cls(key=key, status=response.status_code, headers=headers, body=response.content)

    def to_response(self, request: Optional[httpx.Request] = None, extra_headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        headers = dict(self.headers)
        if extra_headers:
            headers.update(extra_headers)
        return httpx.Response(self.status, headers=headers, content=self.body, request=request)


@dataclass
class CacheBucket:
    name: str
    entries: "OrderedDict[str, CacheEntry]" = field(default_factory=OrderedDict)

    def match(self, key: str) -> Optional[CacheEntry]:
        return self.entries.get(key)

    def put(self, entry: CacheEntry) -> None:
        entry.bucket = self.name
        self.entries[entry.key] = entry

    def delete(self, key: str) -> bool:
        return self.entries.pop(key, None) is not None

    @property
    def size(self) -> int:
        return sum(e.size for e in self.entries.values())


class CacheStorage:
    """Named buckets of cached responses, in creation order."""

    def __init__(self):
        self._buckets: "OrderedDict[str, CacheBucket]" = OrderedDict()

    def open(self, name: str) -> CacheBucket:
        if name not in self._buckets:
            self._buckets[name] = CacheBucket(name)
        return self._buckets[name]

    def has(self, name: str) -> bool:
        return name in self._buckets

    def keys(self) -> List[str]:
        return list(self._buckets)

    def delete(self, name: str) -> bool:
        return self._buckets.pop(name, None) is not None

    def match(self, key: str) -> Optional[CacheEntry]:
        for bucket in self._buckets.values():
            entry = bucket.match(key)
            if entry is not None:
                return entry
        return None

    def sizes(self) -> Dict[str, int]:
        return {name: bucket.size for name, bucket in self._buckets.items()}

    def total_size(self) -> int:
        return sum(self.sizes().values())
