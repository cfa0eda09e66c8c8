"""
Furanomi Worker — Service Worker Assembly
==========================================

What:  Wires the router, lifecycle manager and push bridge onto a platform.
How:   register() attaches one handler per event type to the injected
       WorkerPlatform, plus the event-ID and event-logging middleware. It is
       idempotent: calling it again on a registered worker does nothing.

Event → handler map:
    install            → LifecycleManager.install      (skip waiting)
    activate           → LifecycleManager.activate     (cache sweep + reload message)
    fetch              → Router                        (only GET requests a route claims)
    push               → PushBridge.handle_push
    notificationclick  → PushBridge.handle_notification_click
    message            → LifecycleManager.handle_message

Usage:
    platform = create_platform(settings)
    worker = ServiceWorker(platform, settings)
    await worker.register()
    response = await platform.intercept(httpx.Request("GET", f"{settings.origin}/api/shops"))
"""

import logging
from typing import Optional

import httpx

from furanomi.config import Settings, settings as default_settings
from furanomi.events import (
    ActivateEvent,
    FetchEvent,
    InstallEvent,
    MessageEvent,
    NotificationClickEvent,
    PushEvent,
)
from furanomi.log import setup_logging
from furanomi.middleware import EventIDMiddleware, EventLoggingMiddleware
from furanomi.platform.base import WorkerPlatform
from furanomi.platform.disk import DiskCacheStorage
from furanomi.platform.local import LocalPlatform
from furanomi.platform.memory import MemoryCacheStorage
from furanomi.services.initialization import Initializer
from furanomi.services.lifecycle import LifecycleManager
from furanomi.services.push import PushBridge
from furanomi.services.router import Router, build_default_router

logger = logging.getLogger(__name__)


class ServiceWorker:
    """
    Args:
        platform:          Runtime adapter the handlers are registered on.
        settings:          Version tag, cache limits and notification defaults.
        router:            Custom routing table; defaults to the deployed one.
        configure_logging: Set up package logging on register().
    """

    def __init__(
        self,
        platform: WorkerPlatform,
        settings: Optional[Settings] = None,
        router: Optional[Router] = None,
        configure_logging: bool = False,
    ):
        self.platform = platform
        self.settings = settings or default_settings
        self.router = router or build_default_router(platform, self.settings)
        self.lifecycle = LifecycleManager(platform, self.settings)
        self.push = PushBridge(platform, self.settings)
        self.configure_logging = configure_logging
        self._registration = Initializer("service-worker", self._register_handlers)

    @property
    def version(self) -> str:
        return self.settings.sw_version

    async def register(self) -> None:
        await self._registration.ensure()

    async def _register_handlers(self) -> None:
        if self.configure_logging:
            setup_logging(self.settings.log_level)

        self.platform.add_middleware(EventIDMiddleware())
        self.platform.add_middleware(EventLoggingMiddleware())

        self.platform.add_event_listener(InstallEvent.type, self.on_install)
        self.platform.add_event_listener(ActivateEvent.type, self.on_activate)
        self.platform.add_event_listener(FetchEvent.type, self.on_fetch)
        self.platform.add_event_listener(PushEvent.type, self.on_push)
        self.platform.add_event_listener(NotificationClickEvent.type, self.on_notification_click)
        self.platform.add_event_listener(MessageEvent.type, self.on_message)
        logger.info("Service worker %s registered", self.version)

    # ── Handlers ──────────────────────────────────────────────────────────

    def on_install(self, event: InstallEvent) -> None:
        event.wait_until(self.lifecycle.install())

    def on_activate(self, event: ActivateEvent) -> None:
        event.wait_until(self.lifecycle.activate())

    def on_fetch(self, event: FetchEvent) -> None:
        # Unclaimed requests (non-GET, cross-origin non-images) are left alone
        if self.router.match(event.request) is None:
            return
        event.respond_with(self.router.handle(event.request))

    def on_push(self, event: PushEvent) -> None:
        self.push.handle_push(event)

    def on_notification_click(self, event: NotificationClickEvent) -> None:
        self.push.handle_notification_click(event)

    def on_message(self, event: MessageEvent) -> None:
        event.wait_until(self.lifecycle.handle_message(event.data, event.source))


def create_platform(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> LocalPlatform:
    """A LocalPlatform with the cache backend chosen by `settings.cache_backend`."""
    cfg = settings or default_settings
    if cfg.cache_backend == "disk":
        caches = DiskCacheStorage(cfg.cache_dir)
    else:
        caches = MemoryCacheStorage()
    return LocalPlatform(cfg.origin, caches=caches, transport=transport)
