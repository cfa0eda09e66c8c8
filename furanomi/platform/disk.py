"""
Furanomi Worker — Persistent Cache Storage
===========================================

What:  Cache buckets that survive process restarts, stored under `cache_dir`.
How:   Each bucket is a directory holding an `index.json` (entry metadata in
       insertion order) and one body file per entry. Bodies and indexes are
       written with aiofiles so disk I/O does not block the event loop.

Directory Structure:
    cache_dir/
    ├── buckets.json                 ← bucket names, creation order
    └── <sha1(bucket name)>/
        ├── index.json               ← [{key, url, status, headers, stored_at, body}]
        └── <sha1(cache key)>.body

Concurrency:
    Many fetch events write to the same bucket at once. Every read-modify-write
    of an index runs under that bucket's asyncio.Lock, and every change to
    `buckets.json` runs under the storage lock. Files are written to a unique
    temporary name and moved into place with os.replace, so a reader only ever
    sees a complete file. Two writers of the same key both succeed; the later
    one is the entry that remains.
"""

import asyncio
import hashlib
import json
import logging
import os
import shutil
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import aiofiles
import httpx

from furanomi.exceptions import CacheStorageError
from furanomi.platform.base import (
    CacheBucket,
    CacheEntry,
    CacheStorage,
    normalize_url,
    request_key,
)

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"
BUCKETS_FILE = "buckets.json"


def _digest(value: str) -> str:
    return hashlib.sha1(value.encode("utf-8")).hexdigest()


def _temp_path(path: Path) -> Path:
    return path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")


async def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        return json.loads(await f.read())


async def _write_atomic(path: Path, data: Union[str, bytes]) -> None:
    tmp = _temp_path(path)
    mode = "wb" if isinstance(data, bytes) else "w"
    encoding = None if isinstance(data, bytes) else "utf-8"
    try:
        async with aiofiles.open(tmp, mode, encoding=encoding) as f:
            await f.write(data)
        os.replace(tmp, path)
    except OSError:
        try:
            os.remove(tmp)
        except FileNotFoundError:
            pass
        raise


async def _write_json(path: Path, data: Any) -> None:
    await _write_atomic(path, json.dumps(data, ensure_ascii=False))


class DiskCacheBucket(CacheBucket):
    """A bucket persisted as an index file plus one body file per entry."""

    def __init__(self, name: str, directory: Path):
        super().__init__(name)
        self.directory = directory
        self.deleted = False
        self.lock = asyncio.Lock()

    @property
    def index_path(self) -> Path:
        return self.directory / INDEX_FILE

    def _check_open(self) -> None:
        if self.deleted:
            raise CacheStorageError("Cache bucket has been deleted", cache_name=self.name)

    async def _load_index(self) -> List[Dict[str, Any]]:
        try:
            return await _read_json(self.index_path, [])
        except (OSError, ValueError) as e:
            raise CacheStorageError(
                "Failed to read cache index",
                cache_name=self.name,
                context={"path": str(self.index_path), "error": str(e)},
            )

    async def _save_index(self, index: List[Dict[str, Any]]) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            await _write_json(self.index_path, index)
        except OSError as e:
            raise CacheStorageError(
                "Failed to write cache index",
                cache_name=self.name,
                context={"path": str(self.index_path), "os_error": str(e)},
            )

    async def _read_entry(self, meta: Dict[str, Any]) -> CacheEntry:
        body_path = self.directory / meta["body"]
        try:
            async with aiofiles.open(body_path, "rb") as f:
                body = await f.read()
        except OSError as e:
            raise CacheStorageError(
                "Failed to read cached body",
                cache_name=self.name,
                context={"path": str(body_path), "os_error": str(e)},
            )
        response = httpx.Response(
            status_code=meta["status"],
            headers=meta["headers"],
            content=body,
            request=httpx.Request("GET", meta["url"]),
        )
        return CacheEntry(
            key=meta["key"], url=meta["url"], response=response, stored_at=meta["stored_at"]
        )

    async def match(self, request: httpx.Request) -> Optional[httpx.Response]:
        self._check_open()
        key = request_key(request)
        async with self.lock:
            for meta in await self._load_index():
                if meta["key"] == key:
                    return (await self._read_entry(meta)).response
        return None

    async def put(self, request: httpx.Request, response: httpx.Response) -> None:
        self._check_open()
        if request.method.upper() != "GET":
            raise CacheStorageError(
                f"Only GET requests can be cached, got {request.method}",
                cache_name=self.name,
            )
        key = request_key(request)
        body_name = f"{_digest(key)}.body"
        async with self.lock:
            self._check_open()
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                await _write_atomic(self.directory / body_name, response.content)
            except OSError as e:
                raise CacheStorageError(
                    "Failed to write cached body",
                    cache_name=self.name,
                    context={"key": key, "os_error": str(e)},
                )

            index = [meta for meta in await self._load_index() if meta["key"] != key]
            index.append(
                {
                    "key": key,
                    "url": normalize_url(request.url),
                    "status": response.status_code,
                    "headers": [
                        [k, v]
                        for k, v in response.headers.multi_items()
                        if k.lower() not in ("content-encoding", "content-length")
                    ],
                    "stored_at": time.time(),
                    "body": body_name,
                }
            )
            await self._save_index(index)

    async def delete(self, request: Union[httpx.Request, str]) -> bool:
        self._check_open()
        key = request if isinstance(request, str) else request_key(request)
        async with self.lock:
            index = await self._load_index()
            remaining = [meta for meta in index if meta["key"] != key]
            if len(remaining) == len(index):
                return False
            await self._save_index(remaining)
            for meta in index:
                if meta["key"] == key:
                    try:
                        os.remove(self.directory / meta["body"])
                    except OSError as e:
                        # Orphaned body files are harmless; the index is authoritative
                        logger.warning("Failed to remove cached body for %s: %s", key, e)
        return True

    async def entries(self) -> List[CacheEntry]:
        self._check_open()
        async with self.lock:
            return [await self._read_entry(meta) for meta in await self._load_index()]

    async def timestamps(self) -> List[Tuple[str, float]]:
        self._check_open()
        async with self.lock:
            return [(meta["key"], meta["stored_at"]) for meta in await self._load_index()]


class DiskCacheStorage(CacheStorage):
    """Cache storage rooted at a directory on disk."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self._open: Dict[str, DiskCacheBucket] = {}
        self._lock = asyncio.Lock()
        logger.info("DiskCacheStorage initialized at %s", self.root)

    @property
    def buckets_path(self) -> Path:
        return self.root / BUCKETS_FILE

    async def keys(self) -> List[str]:
        try:
            return await _read_json(self.buckets_path, [])
        except (OSError, ValueError) as e:
            raise CacheStorageError(
                "Failed to read bucket list", context={"path": str(self.buckets_path), "error": str(e)}
            )

    async def _save_keys(self, names: List[str]) -> None:
        try:
            await _write_json(self.buckets_path, names)
        except OSError as e:
            raise CacheStorageError(
                "Failed to write bucket list", context={"os_error": str(e)}
            )

    async def has(self, name: str) -> bool:
        return name in await self.keys()

    async def open(self, name: str) -> CacheBucket:
        async with self._lock:
            names = await self.keys()
            if name not in names:
                names.append(name)
                await self._save_keys(names)
                self._open.pop(name, None)
                logger.debug("Created cache bucket %s", name)
            bucket = self._open.get(name)
            if bucket is None:
                bucket = DiskCacheBucket(name, self.root / _digest(name))
                self._open[name] = bucket
            return bucket

    async def delete(self, name: str) -> bool:
        async with self._lock:
            names = await self.keys()
            if name not in names:
                return False
            names.remove(name)
            await self._save_keys(names)
            bucket = self._open.pop(name, None)
            if bucket is None:
                await self._remove_directory(name)
                return True
            async with bucket.lock:
                bucket.deleted = True
                await self._remove_directory(name)
            return True

    async def _remove_directory(self, name: str) -> None:
        try:
            shutil.rmtree(self.root / _digest(name))
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CacheStorageError(
                "Failed to remove bucket directory", cache_name=name, context={"os_error": str(e)}
            )
