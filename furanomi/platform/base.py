"""
Furanomi Worker — Abstract Platform Adapter
============================================

What:  Interfaces for everything the worker needs from its runtime: network
       fetch, cache storage, window clients, notifications and the push manager.
How:   Concrete adapters (LocalPlatform, or a test double) inherit from these
       ABCs. The router, lifecycle manager and push bridge only ever talk to
       these interfaces, so they can be tested without a real worker runtime.
Who:   Injected into ServiceWorker, which registers its handlers on it.

Cache identity:
    An entry is keyed by method + normalized URL (fragment removed). Only GET
    requests are ever stored.
"""

import inspect
import logging
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

import httpx

from furanomi.events import ExtendableEvent, FetchEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Union[None, Awaitable[None]]]


def normalize_url(url: Union[str, httpx.URL]) -> str:
    """Drop the fragment; it never reaches the network."""
    return str(url).split("#", 1)[0]


def request_key(request: httpx.Request) -> str:
    """Cache identity of a request."""
    return f"{request.method.upper()} {normalize_url(request.url)}"


def clone_response(response: httpx.Response) -> httpx.Response:
    """
    Copy a response so one copy can be stored and the other returned.

    The body is already decoded, so content-encoding/length headers are
    dropped and recomputed for the copy.
    """
    headers = [
        (k, v)
        for k, v in response.headers.multi_items()
        if k.lower() not in ("content-encoding", "content-length")
    ]
    return httpx.Response(
        status_code=response.status_code,
        headers=headers,
        content=response.content,
        request=response.request if _has_request(response) else None,
    )


def _has_request(response: httpx.Response) -> bool:
    try:
        response.request
    except RuntimeError:
        return False
    return True


@dataclass
class CacheEntry:
    """A stored (request → response snapshot) pair."""

    key: str
    url: str
    response: httpx.Response
    stored_at: float = field(default_factory=time.time)

    @property
    def path(self) -> str:
        return httpx.URL(self.url).path


# ══════════════════════════════════════════════════════════════════════════
# Cache Storage
# ══════════════════════════════════════════════════════════════════════════

class CacheBucket(ABC):
    """
    A named key-value store of request → response snapshots.

    Contract:
        - put() overwrites an existing entry and moves it to the end of the
          insertion order (used for oldest-first eviction)
        - match() returns a fresh clone so callers may consume it freely
        - every failure is raised as CacheStorageError
    """

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def match(self, request: httpx.Request) -> Optional[httpx.Response]:
        ...

    @abstractmethod
    async def put(self, request: httpx.Request, response: httpx.Response) -> None:
        ...

    @abstractmethod
    async def delete(self, request: Union[httpx.Request, str]) -> bool:
        """Delete by request or by cache key. Returns True if an entry existed."""
        ...

    @abstractmethod
    async def entries(self) -> List[CacheEntry]:
        """All entries, oldest insertion first."""
        ...

    async def timestamps(self) -> List[Tuple[str, float]]:
        """(key, stored_at) per entry, oldest insertion first. Backends that
        keep bodies apart from metadata override this to skip the bodies."""
        return [(entry.key, entry.stored_at) for entry in await self.entries()]

    async def keys(self) -> List[str]:
        return [key for key, _ in await self.timestamps()]


class CacheStorage(ABC):
    """The set of all cache buckets of one origin."""

    @abstractmethod
    async def open(self, name: str) -> CacheBucket:
        """Return the bucket, creating it lazily."""
        ...

    @abstractmethod
    async def has(self, name: str) -> bool:
        ...

    @abstractmethod
    async def delete(self, name: str) -> bool:
        ...

    @abstractmethod
    async def keys(self) -> List[str]:
        """Bucket names in creation order."""
        ...

    async def match(self, request: httpx.Request) -> Optional[httpx.Response]:
        """First matching response across all buckets, in creation order."""
        for name in await self.keys():
            bucket = await self.open(name)
            response = await bucket.match(request)
            if response is not None:
                return response
        return None


# ══════════════════════════════════════════════════════════════════════════
# Clients & Push
# ══════════════════════════════════════════════════════════════════════════

class WindowClient(ABC):
    """A page (tab) served by the worker's scope."""

    type = "window"

    def __init__(self, client_id: str, url: str, controlled: bool = True):
        self.id = client_id
        self.url = url
        self.controlled = controlled

    @abstractmethod
    async def focus(self) -> None:
        ...

    @abstractmethod
    async def navigate(self, url: str) -> None:
        ...

    @abstractmethod
    async def post_message(self, message: Dict[str, Any]) -> None:
        ...


class PlatformSubscription(ABC):
    """A push subscription as held by the browser's push service."""

    def __init__(self, endpoint: str):
        self.endpoint = endpoint

    @abstractmethod
    def get_key(self, name: str) -> bytes:
        """Raw key material: 'p256dh' or 'auth'."""
        ...

    @abstractmethod
    async def unsubscribe(self) -> bool:
        ...


class PushManager(ABC):
    @abstractmethod
    async def subscribe(
        self, application_server_key: str, user_visible_only: bool = True
    ) -> PlatformSubscription:
        """Raises PushServiceError when the platform rejects the request."""
        ...

    @abstractmethod
    async def get_subscription(self) -> Optional[PlatformSubscription]:
        ...


# ══════════════════════════════════════════════════════════════════════════
# Worker Platform
# ══════════════════════════════════════════════════════════════════════════

class WorkerPlatform(ABC):
    """
    The runtime a ServiceWorker runs on.

    Handler registry:
        add_event_listener() registers handlers per event type. dispatch()
        runs the registered middleware chain around the handlers and only
        returns once all wait_until() work of the event has settled.
        One platform instance serves every tab in its scope, so handlers
        must not keep per-client state.
    """

    def __init__(self, origin: str):
        self.origin = origin.rstrip("/")
        self._listeners: Dict[str, List[EventHandler]] = defaultdict(list)
        self._middleware: List[Any] = []

    # ── Runtime capabilities ──────────────────────────────────────────────

    @property
    @abstractmethod
    def caches(self) -> CacheStorage:
        ...

    @property
    @abstractmethod
    def push_manager(self) -> PushManager:
        ...

    @abstractmethod
    async def fetch(
        self, request: httpx.Request, cache_mode: Optional[str] = None
    ) -> httpx.Response:
        """
        Perform a network request.

        Args:
            cache_mode: "no-store" bypasses every HTTP cache on the way.

        Raises:
            NetworkError: the request could not be completed.
        """
        ...

    @abstractmethod
    async def match_clients(
        self, type: str = "window", include_uncontrolled: bool = False
    ) -> Sequence[WindowClient]:
        ...

    @abstractmethod
    async def open_window(self, url: str) -> Optional[WindowClient]:
        ...

    @abstractmethod
    async def show_notification(self, title: str, options: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def claim_clients(self) -> None:
        ...

    @abstractmethod
    async def skip_waiting(self) -> None:
        ...

    # ── Handler registry ──────────────────────────────────────────────────

    def add_event_listener(self, event_type: str, handler: EventHandler) -> None:
        self._listeners[event_type].append(handler)

    def listeners(self, event_type: str) -> List[EventHandler]:
        return list(self._listeners.get(event_type, []))

    def add_middleware(self, middleware: Any) -> None:
        """Wrap every dispatch; the first added runs outermost."""
        self._middleware.append(middleware)

    async def dispatch(self, event: ExtendableEvent) -> List[BaseException]:
        """
        Deliver an event to its handlers and wait until it is fully handled.

        Returns:
            Exceptions raised by handlers or by their wait_until() work.
        """

        async def call_handlers(evt: ExtendableEvent) -> List[BaseException]:
            errors: List[BaseException] = []
            for handler in self.listeners(evt.type):
                try:
                    result = handler(evt)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error("Handler for '%s' event raised: %s", evt.type, e, exc_info=True)
                    errors.append(e)
            errors.extend(await evt.settle())
            return errors

        call_next = call_handlers
        for middleware in reversed(self._middleware):
            call_next = _bind(middleware, call_next)
        return await call_next(event)

    async def intercept(self, request: httpx.Request) -> httpx.Response:
        """
        Run a page request through the worker the way a browser would:
        dispatch a fetch event and use the worker's response, or go to the
        network directly when no handler responded.
        """
        event = FetchEvent(request)
        await self.dispatch(event)
        if event.handled:
            return await event.response()
        return await self.fetch(request)


def _bind(middleware: Any, call_next: Callable) -> Callable:
    async def run(event: ExtendableEvent) -> List[BaseException]:
        return await middleware.dispatch(event, call_next)

    return run
