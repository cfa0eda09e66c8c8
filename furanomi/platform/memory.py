"""
In-process cache storage.

Buckets live in plain dicts for the lifetime of the process; insertion
order doubles as the eviction order.
"""

import logging
import time
from collections import OrderedDict
from typing import Dict, List, Optional, Union

import httpx

from furanomi.exceptions import CacheStorageError
from furanomi.platform.base import (
    CacheBucket,
    CacheEntry,
    CacheStorage,
    clone_response,
    normalize_url,
    request_key,
)

logger = logging.getLogger(__name__)


class MemoryCacheBucket(CacheBucket):
    def __init__(self, name: str):
        super().__init__(name)
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.closed = False

    def _check_open(self) -> None:
        if self.closed:
            raise CacheStorageError("Cache bucket has been deleted", cache_name=self.name)

    async def match(self, request: httpx.Request) -> Optional[httpx.Response]:
        self._check_open()
        entry = self._entries.get(request_key(request))
        if entry is None:
            return None
        return clone_response(entry.response)

    async def put(self, request: httpx.Request, response: httpx.Response) -> None:
        self._check_open()
        if request.method.upper() != "GET":
            raise CacheStorageError(
                f"Only GET requests can be cached, got {request.method}",
                cache_name=self.name,
            )
        key = request_key(request)
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(
            key=key,
            url=normalize_url(request.url),
            response=clone_response(response),
            stored_at=time.time(),
        )

    async def delete(self, request: Union[httpx.Request, str]) -> bool:
        self._check_open()
        key = request if isinstance(request, str) else request_key(request)
        return self._entries.pop(key, None) is not None

    async def entries(self) -> List[CacheEntry]:
        self._check_open()
        return list(self._entries.values())


class MemoryCacheStorage(CacheStorage):
    def __init__(self) -> None:
        self._buckets: Dict[str, MemoryCacheBucket] = {}

    async def open(self, name: str) -> CacheBucket:
        bucket = self._buckets.get(name)
        if bucket is None:
            bucket = MemoryCacheBucket(name)
            self._buckets[name] = bucket
            logger.debug("Created cache bucket %s", name)
        return bucket

    async def has(self, name: str) -> bool:
        return name in self._buckets

    async def delete(self, name: str) -> bool:
        bucket = self._buckets.pop(name, None)
        if bucket is None:
            return False
        bucket.closed = True
        return True

    async def keys(self) -> List[str]:
        return list(self._buckets)
