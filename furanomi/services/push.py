"""
Furanomi Worker — Push Notification Bridge
===========================================

What:  Worker-side handling of push messages and notification clicks.
How:   Both handlers hand their platform work to event.wait_until(), so the
       event is only considered handled once the notification is shown or
       the window is focused/opened.

Push payload handling:
    The payload is optional JSON. Known fields are merged over the defaults
    (title "ふらのみ", default body, icon, badge, empty data). A payload that
    is not valid JSON or not an object falls back to the defaults. A badly
    typed field falls back to its own default while the valid fields are
    kept. Either way the event still completes.
"""

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from furanomi.config import Settings
from furanomi.events import NotificationClickEvent, PushEvent
from furanomi.platform.base import WindowClient, WorkerPlatform
from furanomi.schemas.push import NotificationDescriptor

logger = logging.getLogger(__name__)

DEFAULT_TARGET_URL = "/"


class PushBridge:
    def __init__(self, platform: WorkerPlatform, settings: Settings):
        self.platform = platform
        self.defaults: Dict[str, Any] = {
            "title": settings.notification_title,
            "body": settings.notification_body,
            "icon": settings.notification_icon,
            "badge": settings.notification_badge,
            "data": {},
        }

    def _default_fields(self) -> Dict[str, Any]:
        return dict(self.defaults, data={})

    def build_notification(self, event: PushEvent) -> NotificationDescriptor:
        fields = self._default_fields()
        if event.data is not None:
            try:
                payload = event.data.json()
            except (ValueError, UnicodeDecodeError) as e:
                logger.error("Failed to parse push data: %s", e)
                payload = None
            if isinstance(payload, dict):
                fields.update(payload)
            elif payload is not None:
                logger.warning("Ignoring push payload of type %s", type(payload).__name__)

        try:
            return NotificationDescriptor(**fields)
        except ValidationError as e:
            # Fields are merged one by one; only the invalid ones fall back
            defaults = self._default_fields()
            invalid = {err["loc"][0] for err in e.errors() if err["loc"]}
            logger.warning("Invalid push payload fields %s, using defaults for them", sorted(map(str, invalid)))
            for name in invalid:
                if name in defaults:
                    fields[name] = defaults[name]
                else:
                    fields.pop(name, None)

        try:
            return NotificationDescriptor(**fields)
        except ValidationError as e:
            logger.error("Invalid push payload, using defaults: %s", e.errors())
            return NotificationDescriptor(**self._default_fields())

    def handle_push(self, event: PushEvent) -> None:
        logger.info("Push received")
        notification = self.build_notification(event)
        event.wait_until(
            self.platform.show_notification(notification.title, notification.options())
        )

    def handle_notification_click(self, event: NotificationClickEvent) -> None:
        logger.info("Notification clicked")
        event.notification.close()
        target = event.notification.data.get("url") or DEFAULT_TARGET_URL
        event.wait_until(self.focus_or_open(target))

    async def focus_or_open(self, url: str) -> Optional[WindowClient]:
        """Focus and navigate the first open window, or open a new one."""
        clients = await self.platform.match_clients(type="window", include_uncontrolled=True)
        if clients:
            client = clients[0]
            await client.focus()
            await client.navigate(url)
            return client
        return await self.platform.open_window(url)
