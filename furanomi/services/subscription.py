"""
Furanomi Worker — Push Subscription Service
============================================

What:  Page-side subscribe / unsubscribe / status check for push notifications.
How:   Talks to the platform push manager for the subscription itself and to
       the notifications API (httpx) for server-side bookkeeping.
Who:   Used by the notification toggle; PushToggle wraps it with UI state.

Failure model:
    Every failure (key unavailable, permission denied, platform rejection,
    network error, non-2xx answer) is logged and reported as None/False.
    The UI only ever learns "subscribed" or "not subscribed".

Resilience:
    Fetching the VAPID public key is retried with tenacity on transport
    errors, then cached for the lifetime of the service through an
    idempotent Initializer.
"""

import base64
import logging
from typing import Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from furanomi.config import Settings, settings as default_settings
from furanomi.exceptions import InitializationError, PushServiceError
from furanomi.platform.base import PlatformSubscription, PushManager
from furanomi.schemas.push import (
    SubscribeRequest,
    SubscriptionKeys,
    SubscriptionRecord,
    UnsubscribeRequest,
    VapidPublicKeyResponse,
)
from furanomi.services.initialization import Initializer

logger = logging.getLogger(__name__)

VAPID_KEY_PATH = "/api/notifications/vapid-public-key"
SUBSCRIBE_PATH = "/api/notifications/subscribe"
UNSUBSCRIBE_PATH = "/api/notifications/unsubscribe"


def serialize_subscription(subscription: PlatformSubscription) -> SubscriptionRecord:
    """Endpoint plus base64-encoded binary keys."""
    return SubscriptionRecord(
        endpoint=subscription.endpoint,
        keys=SubscriptionKeys(
            p256dh=base64.b64encode(subscription.get_key("p256dh")).decode("ascii"),
            auth=base64.b64encode(subscription.get_key("auth")).decode("ascii"),
        ),
    )


class PushSubscriptionService:
    """
    Args:
        push_manager: The platform push manager of the active registration.
        settings:     Supplies the API base URL and request timeout.
        client:       Optional pre-built httpx.AsyncClient (tests inject one
                      with a MockTransport).
    """

    def __init__(
        self,
        push_manager: PushManager,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        cfg = settings or default_settings
        self.push_manager = push_manager
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=cfg.api_base_url,
            timeout=cfg.push_request_timeout_seconds,
        )
        self.vapid_key = Initializer("vapid-public-key", self._load_vapid_key)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "PushSubscriptionService":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ── VAPID key ─────────────────────────────────────────────────────────

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(default_settings.retry_max_attempts),
        wait=wait_exponential(
            multiplier=default_settings.retry_min_wait,
            min=default_settings.retry_min_wait,
            max=default_settings.retry_max_wait,
        )
        + wait_random(0, default_settings.retry_min_wait),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _request_vapid_key(self) -> httpx.Response:
        return await self.client.get(VAPID_KEY_PATH)

    async def _load_vapid_key(self) -> str:
        try:
            response = await self._request_vapid_key()
        except httpx.HTTPError as e:
            raise PushServiceError("Failed to fetch VAPID public key", context={"error": str(e)})
        if not response.is_success:
            raise PushServiceError("VAPID public key request was rejected", status_code=response.status_code)
        try:
            public_key = VapidPublicKeyResponse.model_validate(response.json()).public_key
        except (ValueError, ValidationError) as e:
            raise PushServiceError("Malformed VAPID public key response", context={"error": str(e)})
        if not public_key:
            raise PushServiceError("VAPID public key not available")
        return public_key

    async def get_vapid_public_key(self) -> Optional[str]:
        try:
            return await self.vapid_key.ensure()
        except InitializationError as e:
            logger.error("Error getting VAPID public key: %s", e.context.get("error", e.message))
            return None

    # ── Subscription flows ────────────────────────────────────────────────

    async def subscribe(self) -> Optional[SubscriptionRecord]:
        """
        Subscribe this installation and register it with the server.

        Returns:
            The subscription record, or None when any step failed.
        """
        public_key = await self.get_vapid_public_key()
        if not public_key:
            return None

        try:
            subscription = await self.push_manager.subscribe(
                application_server_key=public_key, user_visible_only=True
            )
            record = serialize_subscription(subscription)
        except PushServiceError as e:
            logger.error("Error subscribing to push notifications: %s", e.message)
            return None

        try:
            response = await self.client.post(
                SUBSCRIBE_PATH,
                json=SubscribeRequest(subscription=record).model_dump(),
            )
        except httpx.HTTPError as e:
            logger.error("Error registering push subscription: %s", e)
            return None
        if not response.is_success:
            logger.error("Server rejected push subscription with status %d", response.status_code)
            return None

        logger.info("Subscribed to push notifications")
        return record

    async def unsubscribe(self) -> bool:
        """
        Cancel the platform subscription and tell the server.

        No active subscription is a no-op: nothing is sent and False is returned.
        """
        try:
            subscription = await self.push_manager.get_subscription()
        except PushServiceError as e:
            logger.error("Error looking up push subscription: %s", e.message)
            return False
        if subscription is None:
            logger.debug("No active push subscription to cancel")
            return False

        endpoint = subscription.endpoint
        try:
            await subscription.unsubscribe()
        except PushServiceError as e:
            logger.error("Error cancelling push subscription: %s", e.message)
            return False

        try:
            response = await self.client.request(
                "DELETE",
                UNSUBSCRIBE_PATH,
                json=UnsubscribeRequest(endpoint=endpoint).model_dump(),
            )
        except httpx.HTTPError as e:
            logger.error("Error unsubscribing from push notifications: %s", e)
            return False
        if not response.is_success:
            logger.warning("Server answered unsubscribe with status %d", response.status_code)
        return response.is_success

    async def get_current_subscription(self) -> Optional[SubscriptionRecord]:
        try:
            subscription = await self.push_manager.get_subscription()
            if subscription is None:
                return None
            return serialize_subscription(subscription)
        except PushServiceError as e:
            logger.error("Error getting current subscription: %s", e.message)
            return None


class PushToggle:
    """Subscribed/loading state behind the notification on/off toggle."""

    def __init__(self, service: PushSubscriptionService):
        self.service = service
        self.is_subscribed = False
        self.is_loading = False

    async def refresh(self) -> bool:
        self.is_subscribed = await self.service.get_current_subscription() is not None
        return self.is_subscribed

    async def toggle(self) -> bool:
        """Flip the subscription. Returns the new subscribed state."""
        self.is_loading = True
        try:
            if self.is_subscribed:
                await self.service.unsubscribe()
                await self.refresh()
            else:
                self.is_subscribed = await self.service.subscribe() is not None
        finally:
            self.is_loading = False
        return self.is_subscribed
