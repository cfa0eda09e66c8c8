"""
Furanomi Worker — Cache Expiration Policy
==========================================

What:  Age and size limits for one cache bucket.
How:   Reads treat entries older than `max_age_seconds` as a miss and delete
       them. After every write the bucket is trimmed, oldest insertion first,
       down to `max_entries`. Overwriting an entry moves it to the back of the
       line, so this approximates LRU by insertion rather than by access.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from furanomi.platform.base import CacheBucket, request_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpirationPolicy:
    max_entries: Optional[int] = None
    max_age_seconds: Optional[float] = None
    clock: Callable[[], float] = time.time

    def is_expired(self, stored_at: float) -> bool:
        if self.max_age_seconds is None:
            return False
        return self.clock() - stored_at > self.max_age_seconds

    async def match(self, bucket: CacheBucket, request: httpx.Request) -> Optional[httpx.Response]:
        """Look up a fresh entry; expired entries are removed and reported as a miss."""
        if self.max_age_seconds is None:
            return await bucket.match(request)
        key = request_key(request)
        for entry_key, stored_at in await bucket.timestamps():
            if entry_key != key:
                continue
            if self.is_expired(stored_at):
                await bucket.delete(key)
                logger.debug("Expired %s from %s", key, bucket.name)
                return None
            return await bucket.match(request)
        return None

    async def enforce(self, bucket: CacheBucket) -> int:
        """Drop expired entries, then the oldest ones over the cap. Returns the count removed."""
        removed = 0
        survivors = []
        for key, stored_at in await bucket.timestamps():
            if self.is_expired(stored_at):
                if await bucket.delete(key):
                    removed += 1
            else:
                survivors.append(key)
        if self.max_entries is not None and len(survivors) > self.max_entries:
            for key in survivors[: len(survivors) - self.max_entries]:
                if await bucket.delete(key):
                    removed += 1
        if removed:
            logger.debug("Evicted %d entries from %s", removed, bucket.name)
        return removed
