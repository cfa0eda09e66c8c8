"""
Furanomi Worker — Local Platform Adapter
=========================================

What:  A runnable WorkerPlatform backed by httpx for the network and by an
       injected CacheStorage for the buckets.
How:   fetch() goes through an httpx.AsyncClient (the transport is injectable,
       which tests use with httpx.MockTransport). Window clients, shown
       notifications and the push subscription are kept in memory so the
       worker can be driven end-to-end outside a browser.
"""

import itertools
import logging
import secrets
from typing import Any, Dict, List, Optional, Sequence

import httpx

from furanomi.events import Notification
from furanomi.exceptions import NetworkError, NetworkTimeoutError, PushServiceError
from furanomi.platform.base import (
    CacheStorage,
    PlatformSubscription,
    PushManager,
    WindowClient,
    WorkerPlatform,
)
from furanomi.platform.memory import MemoryCacheStorage

logger = logging.getLogger(__name__)

NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


class LocalWindowClient(WindowClient):
    """A window client that records what the worker asked it to do."""

    def __init__(self, client_id: str, url: str, controlled: bool = True):
        super().__init__(client_id, url, controlled)
        self.focused = False
        self.navigations: List[str] = []
        self.messages: List[Dict[str, Any]] = []

    async def focus(self) -> None:
        self.focused = True

    async def navigate(self, url: str) -> None:
        self.navigations.append(url)
        self.url = url

    async def post_message(self, message: Dict[str, Any]) -> None:
        self.messages.append(dict(message))


class LocalPushSubscription(PlatformSubscription):
    def __init__(self, manager: "LocalPushManager", endpoint: str):
        super().__init__(endpoint)
        self._manager = manager
        # Uncompressed P-256 point and a 16-byte auth secret, as browsers issue them
        self._keys = {"p256dh": b"\x04" + secrets.token_bytes(64), "auth": secrets.token_bytes(16)}

    def get_key(self, name: str) -> bytes:
        try:
            return self._keys[name]
        except KeyError:
            raise PushServiceError(f"Unknown subscription key '{name}'")

    async def unsubscribe(self) -> bool:
        return self._manager._remove(self)


class LocalPushManager(PushManager):
    """
    In-memory push manager.

    Args:
        permission: "granted" or "denied"; denied makes subscribe() fail the
                    way a browser does when the user blocks notifications.
    """

    def __init__(self, push_service_url: str = "https://push.example.invalid", permission: str = "granted"):
        self.push_service_url = push_service_url.rstrip("/")
        self.permission = permission
        self._subscription: Optional[LocalPushSubscription] = None

    async def subscribe(
        self, application_server_key: str, user_visible_only: bool = True
    ) -> PlatformSubscription:
        if self.permission != "granted":
            raise PushServiceError("Notification permission denied")
        if not application_server_key:
            raise PushServiceError("An application server key is required")
        if not user_visible_only:
            raise PushServiceError("Only user-visible push subscriptions are supported")
        if self._subscription is None:
            endpoint = f"{self.push_service_url}/send/{secrets.token_urlsafe(16)}"
            self._subscription = LocalPushSubscription(self, endpoint)
        return self._subscription

    async def get_subscription(self) -> Optional[PlatformSubscription]:
        return self._subscription

    def _remove(self, subscription: LocalPushSubscription) -> bool:
        if self._subscription is subscription:
            self._subscription = None
            return True
        return False


class LocalPlatform(WorkerPlatform):
    """
    WorkerPlatform running on httpx and in-memory client state.

    Args:
        origin:       Origin the worker is registered on.
        caches:       Cache storage backend (defaults to MemoryCacheStorage).
        transport:    Optional httpx transport (MockTransport in tests).
        push_manager: Optional push manager (defaults to LocalPushManager).
        timeout:      Per-request network timeout in seconds.
    """

    def __init__(
        self,
        origin: str,
        caches: Optional[CacheStorage] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        push_manager: Optional[PushManager] = None,
        timeout: float = 30.0,
    ):
        super().__init__(origin)
        self._caches = caches or MemoryCacheStorage()
        self._push_manager = push_manager or LocalPushManager()
        self.timeout = timeout
        self._http = httpx.AsyncClient(transport=transport, timeout=timeout)
        self._ids = itertools.count(1)
        self.clients: List[LocalWindowClient] = []
        self.notifications: List[Notification] = []
        self.claimed = False
        self.skip_waiting_calls = 0

    @property
    def caches(self) -> CacheStorage:
        return self._caches

    @property
    def push_manager(self) -> PushManager:
        return self._push_manager

    async def aclose(self) -> None:
        await self._http.aclose()

    async def fetch(
        self, request: httpx.Request, cache_mode: Optional[str] = None
    ) -> httpx.Response:
        if cache_mode == "no-store":
            request = httpx.Request(
                request.method,
                request.url,
                headers={**dict(request.headers), **NO_STORE_HEADERS},
                content=request.content,
            )
        try:
            return await self._http.send(request)
        except httpx.TimeoutException as e:
            raise NetworkTimeoutError(self.timeout, url=str(request.url), context={"error": str(e)})
        except httpx.TransportError as e:
            raise NetworkError("Network request failed", url=str(request.url), context={"error": str(e)})

    # ── Clients ───────────────────────────────────────────────────────────

    def add_client(self, url: str = "/", controlled: bool = True) -> LocalWindowClient:
        client = LocalWindowClient(f"client-{next(self._ids)}", self._absolute(url), controlled)
        self.clients.append(client)
        return client

    def _absolute(self, url: str) -> str:
        return str(httpx.URL(self.origin).join(url))

    async def match_clients(
        self, type: str = "window", include_uncontrolled: bool = False
    ) -> Sequence[WindowClient]:
        return [
            c
            for c in self.clients
            if type in ("window", "all") and (c.controlled or include_uncontrolled)
        ]

    async def open_window(self, url: str) -> Optional[WindowClient]:
        client = self.add_client(url)
        client.focused = True
        logger.debug("Opened window %s at %s", client.id, client.url)
        return client

    async def claim_clients(self) -> None:
        for client in self.clients:
            client.controlled = True
        self.claimed = True

    async def skip_waiting(self) -> None:
        self.skip_waiting_calls += 1

    # ── Notifications ─────────────────────────────────────────────────────

    async def show_notification(self, title: str, options: Dict[str, Any]) -> None:
        self.notifications.append(Notification(title, options))
