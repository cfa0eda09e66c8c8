"""
Furanomi Worker — Cache Lifecycle Manager Tests
================================================

What we test:
    ✅ Activation deletes every bucket of the previous version
    ✅ Precache buckets survive the sweep
    ✅ HTML/JS/CSS entries are purged from current-version buckets
    ✅ Every window client (controlled or not) gets the reload message
    ✅ A failing step is logged and the remaining steps still run
    ✅ Install and SKIP_WAITING call skip_waiting; GET_VERSION / CLEAR_CACHES reply
"""

from unittest.mock import AsyncMock

import httpx
import pytest

from conftest import get
from furanomi.events import ActivateEvent, InstallEvent, MessageEvent
from furanomi.exceptions import CacheStorageError
from furanomi.services.lifecycle import (
    LifecycleManager,
    current_cache_names,
    is_stale_asset_path,
    legacy_cache_name,
)


async def seed(platform, name, paths):
    bucket = await platform.caches.open(name)
    for path in paths:
        await bucket.put(get(path), httpx.Response(200, content=path.encode()))
    return bucket


class TestHelpers:

    def test_current_cache_names(self):
        assert current_cache_names("v3") == [
            "html-cache-v3",
            "js-css-cache-v3",
            "api-cache-v3",
            "image-cache-v3",
        ]

    def test_stale_asset_paths(self):
        assert is_stale_asset_path("/")
        assert is_stale_asset_path("/index.html")
        assert is_stale_asset_path("/assets/app.js")
        assert is_stale_asset_path("/assets/app.css")
        assert not is_stale_asset_path("/api/shops")
        assert not is_stale_asset_path("/logo.svg")


class TestActivation:

    @pytest.mark.asyncio
    async def test_previous_version_buckets_are_deleted(self, platform, worker_settings):
        await seed(platform, "api-cache-v1", ["/api/shops"])
        await seed(platform, "image-cache-v1", ["/logo.svg"])
        await seed(platform, legacy_cache_name("v1"), ["/"])
        await seed(platform, "api-cache-v2", ["/api/shops"])

        summary = await LifecycleManager(platform, worker_settings).activate()

        remaining = await platform.caches.keys()
        assert not any(name.endswith("-v1") for name in remaining)
        assert "api-cache-v2" in remaining
        assert sorted(summary["deleted"]) == ["api-cache-v1", "furanomi-cache-v1", "image-cache-v1"]

    @pytest.mark.asyncio
    async def test_precache_buckets_are_kept(self, platform, worker_settings):
        await seed(platform, "workbox-precache-v2-https://furanomi.test/", ["/index.html"])

        await LifecycleManager(platform, worker_settings).activate()

        assert await platform.caches.has("workbox-precache-v2-https://furanomi.test/")

    @pytest.mark.asyncio
    async def test_current_buckets_lose_html_js_css(self, platform, worker_settings):
        await seed(platform, "js-css-cache-v2", ["/assets/app.js", "/assets/app.css"])
        await seed(platform, "api-cache-v2", ["/api/shops", "/", "/about.html"])
        await seed(platform, "image-cache-v2", ["/logo.svg"])

        summary = await LifecycleManager(platform, worker_settings).activate()

        for name in current_cache_names("v2"):
            if not await platform.caches.has(name):
                continue
            bucket = await platform.caches.open(name)
            assert not any(is_stale_asset_path(e.path) for e in await bucket.entries())
        api = await platform.caches.open("api-cache-v2")
        assert [e.path for e in await api.entries()] == ["/api/shops"]
        assert summary["purged"] == 4

    @pytest.mark.asyncio
    async def test_all_window_clients_are_told_to_reload(self, platform, worker_settings):
        controlled = platform.add_client("/shops")
        uncontrolled = platform.add_client("/", controlled=False)

        summary = await LifecycleManager(platform, worker_settings).activate()

        expected = {"type": "SW_ACTIVATED", "version": "v2", "reload": True}
        assert controlled.messages == [expected]
        assert uncontrolled.messages == [expected]
        assert summary["notified"] == 2
        assert platform.claimed

    @pytest.mark.asyncio
    async def test_message_type_is_configurable(self, platform, worker_settings):
        client = platform.add_client("/")
        settings = worker_settings.model_copy(update={"activation_message_type": "activated"})

        await LifecycleManager(platform, settings).activate()

        assert client.messages[0]["type"] == "activated"

    @pytest.mark.asyncio
    async def test_failing_delete_does_not_abort_activation(self, platform, worker_settings):
        await seed(platform, "api-cache-v1", ["/api/shops"])
        await seed(platform, "js-css-cache-v2", ["/assets/app.js"])
        client = platform.add_client("/")
        platform.caches.delete = AsyncMock(side_effect=CacheStorageError("quota", cache_name="api-cache-v1"))

        summary = await LifecycleManager(platform, worker_settings).activate()

        assert summary["deleted"] == []
        assert summary["purged"] == 1
        assert len(client.messages) == 1

    @pytest.mark.asyncio
    async def test_failing_client_does_not_block_others(self, platform, worker_settings):
        broken = platform.add_client("/a")
        broken.post_message = AsyncMock(side_effect=RuntimeError("client gone"))
        healthy = platform.add_client("/b")

        summary = await LifecycleManager(platform, worker_settings).activate()

        assert summary["notified"] == 1
        assert len(healthy.messages) == 1

    @pytest.mark.asyncio
    async def test_activate_event_is_held_open_until_sweep_finishes(self, worker, platform):
        await seed(platform, "api-cache-v1", ["/api/shops"])
        errors = await platform.dispatch(ActivateEvent())

        assert errors == []
        assert not await platform.caches.has("api-cache-v1")


class TestInstallAndMessages:

    @pytest.mark.asyncio
    async def test_install_skips_waiting(self, worker, platform):
        await platform.dispatch(InstallEvent())
        assert platform.skip_waiting_calls == 1

    @pytest.mark.asyncio
    async def test_skip_waiting_message(self, worker, platform):
        await platform.dispatch(MessageEvent({"type": "SKIP_WAITING"}))
        assert platform.skip_waiting_calls == 1

    @pytest.mark.asyncio
    async def test_get_version_replies_to_source(self, worker, platform):
        client = platform.add_client("/")
        await platform.dispatch(MessageEvent({"type": "GET_VERSION"}, source=client))
        assert client.messages == [{"type": "VERSION", "version": "v2"}]

    @pytest.mark.asyncio
    async def test_clear_caches_removes_everything(self, worker, platform):
        await seed(platform, "api-cache-v2", ["/api/shops"])
        await seed(platform, "workbox-precache-v2", ["/index.html"])
        client = platform.add_client("/")

        await platform.dispatch(MessageEvent({"type": "CLEAR_CACHES"}, source=client))

        assert await platform.caches.keys() == []
        assert client.messages[0]["type"] == "CACHES_CLEARED"
        assert sorted(client.messages[0]["deleted"]) == ["api-cache-v2", "workbox-precache-v2"]

    @pytest.mark.asyncio
    async def test_unknown_and_malformed_messages_are_ignored(self, worker, platform):
        assert await platform.dispatch(MessageEvent("reload please")) == []
        assert await platform.dispatch(MessageEvent({"type": "NOPE"})) == []
        assert platform.skip_waiting_calls == 0
