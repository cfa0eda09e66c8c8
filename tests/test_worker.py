"""
Furanomi Worker — Service Worker Assembly Tests
================================================

What we test:
    ✅ register() is idempotent: one listener per event type
    ✅ A full install → activate → fetch cycle through the platform
    ✅ create_platform() picks the configured cache backend
    ✅ Event IDs are attached to events and to log records
    ✅ register() sets up package logging on request
"""

import logging

import httpx
import pytest

from conftest import ORIGIN, get
from furanomi.events import ActivateEvent, FetchEvent, InstallEvent
from furanomi.middleware.event_id import EventIDFilter, event_id_var
from furanomi.platform.disk import DiskCacheStorage
from furanomi.platform.memory import MemoryCacheStorage
from furanomi.worker import ServiceWorker, create_platform


class TestRegistration:

    @pytest.mark.asyncio
    async def test_register_is_idempotent(self, platform, worker_settings):
        worker = ServiceWorker(platform, worker_settings)

        await worker.register()
        await worker.register()

        for event_type in ("install", "activate", "fetch", "push", "notificationclick", "message"):
            assert len(platform.listeners(event_type)) == 1
        assert len(platform._middleware) == 2

    def test_version_comes_from_settings(self, platform, worker_settings):
        assert ServiceWorker(platform, worker_settings).version == "v2"


class TestEndToEnd:

    @pytest.mark.asyncio
    async def test_upgrade_cycle(self, worker, platform, network):
        old = await platform.caches.open("api-cache-v1")
        await old.put(get("/api/shops"), httpx.Response(200, content=b"old"))
        client = platform.add_client("/")
        network.set("/api/shops", b"new")

        assert await platform.dispatch(InstallEvent()) == []
        assert await platform.dispatch(ActivateEvent()) == []
        response = await platform.intercept(get("/api/shops"))

        assert response.content == b"new"
        assert platform.skip_waiting_calls == 1
        assert await platform.caches.keys() == ["api-cache-v2"]
        assert client.messages[0]["type"] == "SW_ACTIVATED"

    @pytest.mark.asyncio
    async def test_unclaimed_fetch_is_not_handled(self, worker, platform):
        event = FetchEvent(httpx.Request("DELETE", f"{ORIGIN}/api/shops/1"))

        await platform.dispatch(event)

        assert not event.handled


class TestCreatePlatform:

    @pytest.mark.asyncio
    async def test_memory_backend(self, worker_settings):
        platform = create_platform(worker_settings)
        try:
            assert isinstance(platform.caches, MemoryCacheStorage)
            assert platform.origin == ORIGIN
        finally:
            await platform.aclose()

    @pytest.mark.asyncio
    async def test_disk_backend(self, worker_settings, tmp_path):
        settings = worker_settings.model_copy(update={"cache_backend": "disk", "cache_dir": str(tmp_path)})
        platform = create_platform(settings)
        try:
            assert isinstance(platform.caches, DiskCacheStorage)
            assert platform.caches.root == tmp_path.resolve()
        finally:
            await platform.aclose()


class TestEventIds:

    @pytest.mark.asyncio
    async def test_event_gets_an_id(self, worker, platform):
        event = InstallEvent()
        await platform.dispatch(event)

        assert len(event.event_id) == 8
        assert event_id_var.get() == "-"

    @pytest.mark.asyncio
    async def test_log_records_carry_the_event_id(self, worker, platform, caplog):
        caplog.handler.addFilter(EventIDFilter())
        event = InstallEvent()

        with caplog.at_level(logging.INFO, logger="furanomi"):
            await platform.dispatch(event)

        install_records = [r for r in caplog.records if r.name == "furanomi.services.lifecycle"]
        assert install_records
        assert all(r.event_id == event.event_id for r in install_records)


class TestLoggingSetup:

    @pytest.mark.asyncio
    async def test_register_configures_logging_when_asked(self, platform, worker_settings, monkeypatch):
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))
        settings = worker_settings.model_copy(update={"log_level": "DEBUG"})

        await ServiceWorker(platform, settings, configure_logging=True).register()

        assert len(calls) == 1
        assert calls[0]["level"] == logging.DEBUG
        assert calls[0]["force"] is True
        handler = calls[0]["handlers"][0]
        assert any(isinstance(f, EventIDFilter) for f in handler.filters)
        assert "%(event_id)s" in calls[0]["format"]
