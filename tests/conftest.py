"""
Furanomi Worker — Test Configuration (conftest.py)
===================================================

What:  Shared fixtures: a scriptable fake network, a LocalPlatform wired to it,
       test settings and a registered ServiceWorker.
How:   The network is an httpx.MockTransport whose handler looks up canned
       responses by path, records every request, and can be switched offline
       or slowed down per path.

Fixture Hierarchy:
    network        → FakeNetwork (function-scoped)
    platform       → LocalPlatform on the fake network, in-memory caches
    worker_settings→ Settings with version "v2" and a short API timeout
    worker         → registered ServiceWorker
"""

import asyncio
import os
from typing import Callable, Dict, List, Optional, Tuple, Union

# Override settings for testing BEFORE any package imports
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RETRY_MAX_WAIT"] = "0"
os.environ["LOG_LEVEL"] = "WARNING"

import httpx
import pytest
import pytest_asyncio

from furanomi.config import Settings
from furanomi.platform.local import LocalPlatform
from furanomi.worker import ServiceWorker

ORIGIN = "https://furanomi.test"
API_BASE = "https://api.furanomi.test"

Body = Union[bytes, str, Callable[[], Union[bytes, str]]]


class FakeNetwork:
    """Canned responses keyed by path, with an offline switch and per-path delays."""

    def __init__(self) -> None:
        self.responses: Dict[str, Tuple[Body, int, Dict[str, str]]] = {}
        self.delays: Dict[str, float] = {}
        self.calls: List[httpx.Request] = []
        self.offline = False

    def set(
        self,
        path: str,
        body: Body,
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.responses[path] = (body, status, headers or {})

    def calls_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.calls if r.url.path == path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        delay = self.delays.get(request.url.path)
        if delay:
            await asyncio.sleep(delay)
        if self.offline:
            raise httpx.ConnectError("network unreachable", request=request)
        entry = self.responses.get(request.url.path)
        if entry is None:
            return httpx.Response(404, content=b"not found")
        body, status, headers = entry
        if callable(body):
            body = body()
        if isinstance(body, str):
            body = body.encode("utf-8")
        return httpx.Response(status, content=body, headers=headers)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def url(path: str) -> str:
    return f"{ORIGIN}{path}"


def get(path: str) -> httpx.Request:
    return httpx.Request("GET", url(path))


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def worker_settings():
    return Settings(
        sw_version="v2",
        origin=ORIGIN,
        api_base_url=API_BASE,
        api_network_timeout_seconds=0.05,
    )


@pytest_asyncio.fixture
async def platform(network):
    p = LocalPlatform(ORIGIN, transport=network.transport)
    yield p
    await p.aclose()


@pytest_asyncio.fixture
async def worker(platform, worker_settings):
    w = ServiceWorker(platform, worker_settings)
    await w.register()
    return w
