"""
Furanomi Worker — Push Subscription Service Tests (Mocked API)
===============================================================

What:  Subscribe / unsubscribe / status flows against a mocked notifications API.
How:   The API is an httpx.MockTransport; the push manager is LocalPushManager.

What we test:
    ✅ Subscribe posts the serialized record and returns it
    ✅ Missing key, denied permission and server errors degrade to None
    ✅ Unsubscribe without a subscription makes no server call
    ✅ Unsubscribe cancels the platform subscription and sends the endpoint
    ✅ The VAPID key is fetched once and retried on transport errors
    ✅ PushToggle tracks subscribed/loading state
"""

import base64
import json
import warnings
from typing import List

import httpx
import pytest
import pytest_asyncio

from conftest import API_BASE
from furanomi.platform.local import LocalPushManager
from furanomi.services.initialization import InitState
from furanomi.services.subscription import PushSubscriptionService, PushToggle


class FakeApi:
    def __init__(self) -> None:
        self.calls: List[httpx.Request] = []
        self.public_key = "BPublicKeyFromServer"
        self.subscribe_status = 201
        self.unsubscribe_status = 200
        self.transport_failures = 0

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.transport_failures:
            self.transport_failures -= 1
            raise httpx.ConnectError("connection refused", request=request)
        path = request.url.path
        if path == "/api/notifications/vapid-public-key":
            return httpx.Response(200, json={"publicKey": self.public_key})
        if path == "/api/notifications/subscribe":
            return httpx.Response(self.subscribe_status, json={})
        if path == "/api/notifications/unsubscribe":
            return httpx.Response(self.unsubscribe_status, json={})
        return httpx.Response(404)

    def calls_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.calls if r.url.path == path]


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def push_manager():
    return LocalPushManager()


@pytest_asyncio.fixture
async def service(api, push_manager, worker_settings):
    client = httpx.AsyncClient(base_url=API_BASE, transport=httpx.MockTransport(api.handler))
    svc = PushSubscriptionService(push_manager, worker_settings, client=client)
    yield svc
    await client.aclose()


class TestSubscribe:

    @pytest.mark.asyncio
    async def test_subscribe_posts_record(self, service, api, push_manager):
        record = await service.subscribe()

        assert record is not None
        platform_sub = await push_manager.get_subscription()
        assert record.endpoint == platform_sub.endpoint
        assert base64.b64decode(record.keys.p256dh) == platform_sub.get_key("p256dh")
        assert base64.b64decode(record.keys.auth) == platform_sub.get_key("auth")

        posted = api.calls_to("/api/notifications/subscribe")[0]
        assert posted.method == "POST"
        assert json.loads(posted.content) == {"subscription": record.model_dump()}

    @pytest.mark.asyncio
    async def test_missing_public_key_returns_none(self, service, api):
        api.public_key = None
        assert await service.subscribe() is None
        assert api.calls_to("/api/notifications/subscribe") == []

    @pytest.mark.asyncio
    async def test_permission_denied_returns_none(self, service, api, push_manager):
        push_manager.permission = "denied"
        assert await service.subscribe() is None
        assert api.calls_to("/api/notifications/subscribe") == []

    @pytest.mark.asyncio
    async def test_server_rejection_returns_none(self, service, api):
        api.subscribe_status = 500
        assert await service.subscribe() is None

    @pytest.mark.asyncio
    async def test_vapid_key_fetched_once(self, service, api):
        await service.subscribe()
        await service.subscribe()

        assert len(api.calls_to("/api/notifications/vapid-public-key")) == 1
        assert service.vapid_key.state is InitState.READY

    @pytest.mark.asyncio
    async def test_vapid_key_retried_on_transport_error(self, service, api):
        api.transport_failures = 1
        assert await service.get_vapid_public_key() == "BPublicKeyFromServer"
        assert len(api.calls_to("/api/notifications/vapid-public-key")) == 2

    @pytest.mark.asyncio
    async def test_retry_backoff_raises_no_deprecation_warning(self, service, api):
        api.transport_failures = 2
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            assert await service.get_vapid_public_key() == "BPublicKeyFromServer"
        assert len(api.calls_to("/api/notifications/vapid-public-key")) == 3

    @pytest.mark.asyncio
    async def test_unreachable_server_returns_none_and_can_recover(self, service, api):
        api.transport_failures = 10
        assert await service.get_vapid_public_key() is None
        assert service.vapid_key.state is InitState.UNINITIALIZED

        api.transport_failures = 0
        assert await service.get_vapid_public_key() == "BPublicKeyFromServer"


class TestUnsubscribe:

    @pytest.mark.asyncio
    async def test_no_subscription_is_a_no_op(self, service, api):
        assert await service.unsubscribe() is False
        assert api.calls == []

    @pytest.mark.asyncio
    async def test_unsubscribe_cancels_and_informs_server(self, service, api, push_manager):
        record = await service.subscribe()

        assert await service.unsubscribe() is True

        assert await push_manager.get_subscription() is None
        deleted = api.calls_to("/api/notifications/unsubscribe")[0]
        assert deleted.method == "DELETE"
        assert json.loads(deleted.content) == {"endpoint": record.endpoint}

    @pytest.mark.asyncio
    async def test_server_failure_reports_false(self, service, api, push_manager):
        await service.subscribe()
        api.unsubscribe_status = 503

        assert await service.unsubscribe() is False
        assert await push_manager.get_subscription() is None


class TestStatus:

    @pytest.mark.asyncio
    async def test_no_subscription(self, service):
        assert await service.get_current_subscription() is None

    @pytest.mark.asyncio
    async def test_existing_subscription(self, service):
        record = await service.subscribe()
        assert await service.get_current_subscription() == record


class TestPushToggle:

    @pytest.mark.asyncio
    async def test_toggle_on_and_off(self, service):
        toggle = PushToggle(service)
        assert await toggle.refresh() is False

        assert await toggle.toggle() is True
        assert toggle.is_subscribed
        assert not toggle.is_loading

        assert await toggle.toggle() is False
        assert not toggle.is_subscribed

    @pytest.mark.asyncio
    async def test_failed_subscribe_stays_off(self, service, push_manager):
        push_manager.permission = "denied"
        toggle = PushToggle(service)

        assert await toggle.toggle() is False
        assert not toggle.is_loading
