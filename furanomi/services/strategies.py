"""
Furanomi Worker — Caching Strategies
=====================================

What:  The four policies a routed request can be served with.
How:   Each strategy receives the request and the platform and resolves a
       response from the network, a cache bucket, or both.

Strategy Inventory:
    - NetworkOnly:        always the network, optionally bypassing HTTP caches
    - NetworkFirst:       network, then the bucket on failure or timeout
    - CacheFirst:         the bucket, then the network on a miss
    - CacheMatchFallback: any bucket, then the network; never writes

Error Handling:
    Cache failures (CacheStorageError) are logged and treated as a miss or a
    skipped write. Network failures are recovered from the cache where the
    policy has one; otherwise they propagate to the page as a failed fetch.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Set

import httpx

from furanomi.exceptions import CacheStorageError, NetworkError, NoCachedResponseError
from furanomi.platform.base import WorkerPlatform, clone_response
from furanomi.services.expiration import ExpirationPolicy

logger = logging.getLogger(__name__)

# Only complete, successful responses are mirrored into buckets
DEFAULT_CACHEABLE_STATUSES = (200,)


class CachingStrategy(ABC):
    """Base class for request handling policies."""

    name = "strategy"

    @abstractmethod
    async def handle(self, request: httpx.Request, platform: WorkerPlatform) -> httpx.Response:
        ...


class NetworkOnly(CachingStrategy):
    """
    Always fetch from the network; never read or write a bucket.

    With no_store=True every HTTP cache on the way is bypassed too, so a
    freshly deployed HTML shell never references asset bundles that no
    longer exist.
    """

    name = "network-only"

    def __init__(self, no_store: bool = True):
        self.no_store = no_store

    async def handle(self, request: httpx.Request, platform: WorkerPlatform) -> httpx.Response:
        path = request.url.path
        try:
            response = await platform.fetch(request, cache_mode="no-store" if self.no_store else None)
        except NetworkError as e:
            logger.error("Failed to fetch %s from network: %s", path, e.message)
            raise
        logger.debug("Fetched %s from network (no-store=%s)", path, self.no_store)
        return response


class _BucketStrategy(CachingStrategy):
    """Shared cache read/write helpers for strategies that own a bucket."""

    def __init__(
        self,
        cache_name: str,
        expiration: Optional[ExpirationPolicy] = None,
        cacheable_statuses: Iterable[int] = DEFAULT_CACHEABLE_STATUSES,
    ):
        self.cache_name = cache_name
        self.expiration = expiration or ExpirationPolicy()
        self.cacheable_statuses = frozenset(cacheable_statuses)

    async def _cache_match(
        self, request: httpx.Request, platform: WorkerPlatform
    ) -> Optional[httpx.Response]:
        try:
            bucket = await platform.caches.open(self.cache_name)
            return await self.expiration.match(bucket, request)
        except CacheStorageError as e:
            logger.warning("Cache read from %s failed, treating as miss: %s", self.cache_name, e.message)
            return None

    async def _cache_put(
        self, request: httpx.Request, response: httpx.Response, platform: WorkerPlatform
    ) -> None:
        try:
            bucket = await platform.caches.open(self.cache_name)
            await bucket.put(request, response)
            await self.expiration.enforce(bucket)
        except CacheStorageError as e:
            logger.warning("Cache write to %s failed, skipping: %s", self.cache_name, e.message)

    async def _fetch_and_cache(
        self, request: httpx.Request, platform: WorkerPlatform
    ) -> httpx.Response:
        response = await platform.fetch(request)
        if response.status_code in self.cacheable_statuses:
            # The stored copy and the returned copy must not share a body
            await self._cache_put(request, clone_response(response), platform)
        return response


class NetworkFirst(_BucketStrategy):
    """
    Prefer the network; fall back to the bucket on failure or timeout.

    Timeout behaviour:
        When `network_timeout_seconds` elapses, the bucket is consulted. On a
        hit the cached response is returned and the network attempt is left
        running: its result is disregarded for this response but still
        refreshes the bucket. On a miss the strategy keeps waiting for the
        network, since there is nothing better to return.
    """

    name = "network-first"

    def __init__(
        self,
        cache_name: str,
        expiration: Optional[ExpirationPolicy] = None,
        network_timeout_seconds: Optional[float] = None,
        cacheable_statuses: Iterable[int] = DEFAULT_CACHEABLE_STATUSES,
    ):
        super().__init__(cache_name, expiration, cacheable_statuses)
        self.network_timeout_seconds = network_timeout_seconds
        self._background: Set[asyncio.Task] = set()

    async def handle(self, request: httpx.Request, platform: WorkerPlatform) -> httpx.Response:
        network = asyncio.ensure_future(self._fetch_and_cache(request, platform))

        if self.network_timeout_seconds is not None:
            done, _ = await asyncio.wait({network}, timeout=self.network_timeout_seconds)
            if network not in done:
                logger.warning(
                    "Network timeout after %ss for %s, trying %s",
                    self.network_timeout_seconds,
                    request.url.path,
                    self.cache_name,
                )
                cached = await self._cache_match(request, platform)
                if cached is not None:
                    self._detach(network)
                    return cached

        try:
            return await network
        except NetworkError as e:
            return await self._fallback(request, platform, e)

    async def _fallback(
        self, request: httpx.Request, platform: WorkerPlatform, error: NetworkError
    ) -> httpx.Response:
        cached = await self._cache_match(request, platform)
        if cached is None:
            logger.error(
                "Network failed and %s has no entry for %s: %s",
                self.cache_name,
                request.url.path,
                error.message,
            )
            raise NoCachedResponseError(url=str(request.url), cache_name=self.cache_name) from error
        logger.info("Network failed, served %s from %s", request.url.path, self.cache_name)
        return cached

    def _detach(self, task: asyncio.Future) -> None:
        self._background.add(task)
        task.add_done_callback(self._reap)

    def _reap(self, task: asyncio.Future) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.info("Late network attempt failed after cache fallback: %s", error)

    async def drain(self) -> None:
        """Wait for network attempts that outlived their timeout."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)


class CacheFirst(_BucketStrategy):
    """Serve from the bucket when possible; fetch and populate on a miss."""

    name = "cache-first"

    async def handle(self, request: httpx.Request, platform: WorkerPlatform) -> httpx.Response:
        cached = await self._cache_match(request, platform)
        if cached is not None:
            logger.debug("Served %s from %s", request.url.path, self.cache_name)
            return cached
        return await self._fetch_and_cache(request, platform)


class CacheMatchFallback(CachingStrategy):
    """Look in every bucket, else go to the network. Never writes."""

    name = "cache-match"

    async def handle(self, request: httpx.Request, platform: WorkerPlatform) -> httpx.Response:
        try:
            cached = await platform.caches.match(request)
        except CacheStorageError as e:
            logger.warning("Cache lookup failed, going to network: %s", e.message)
            cached = None
        if cached is not None:
            return cached
        return await platform.fetch(request)
