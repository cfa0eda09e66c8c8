"""
Furanomi Worker — Worker Events
================================

What:  Event objects delivered to the worker's handlers.
How:   ExtendableEvent collects work passed to wait_until(); the dispatcher
       awaits settle() so the event is only considered handled once every
       piece of that work has resolved. FetchEvent adds respond_with().

Event types:
    install, activate      → InstallEvent, ActivateEvent
    fetch                  → FetchEvent
    push                   → PushEvent
    notificationclick      → NotificationClickEvent
    message                → MessageEvent
"""

import asyncio
import json
from typing import Any, Awaitable, Dict, List, Optional

import httpx


class ExtendableEvent:
    """Base event whose lifetime can be extended with wait_until()."""

    type = "extendable"

    def __init__(self) -> None:
        self._pending: List[asyncio.Future] = []

    def wait_until(self, awaitable: Awaitable[Any]) -> None:
        """Keep the event open until `awaitable` resolves."""
        self._pending.append(asyncio.ensure_future(awaitable))

    async def settle(self) -> List[BaseException]:
        """
        Await every piece of work registered with wait_until().

        Work registered while settling (a handler adding more work from
        inside a wait_until coroutine) is awaited too.

        Returns:
            The exceptions raised by the registered work, in registration order.
        """
        errors: List[BaseException] = []
        while self._pending:
            batch, self._pending = self._pending, []
            results = await asyncio.gather(*batch, return_exceptions=True)
            errors.extend(r for r in results if isinstance(r, BaseException))
        return errors


class InstallEvent(ExtendableEvent):
    type = "install"


class ActivateEvent(ExtendableEvent):
    type = "activate"


class FetchEvent(ExtendableEvent):
    """
    A network request intercepted by the worker.

    If no handler calls respond_with(), the platform performs the request
    itself, untouched by the worker.
    """

    type = "fetch"

    def __init__(self, request: httpx.Request, client_id: Optional[str] = None) -> None:
        super().__init__()
        self.request = request
        self.client_id = client_id
        self._response: Optional[asyncio.Future] = None

    @property
    def handled(self) -> bool:
        return self._response is not None

    def respond_with(self, response: Awaitable[httpx.Response]) -> None:
        if self._response is not None:
            raise RuntimeError("respond_with() has already been called for this fetch event")
        self._response = asyncio.ensure_future(response)

    async def settle(self) -> List[BaseException]:
        errors = await super().settle()
        # The response outcome belongs to whoever awaits response()
        if self._response is not None:
            await asyncio.wait({self._response})
        return errors

    async def response(self) -> Optional[httpx.Response]:
        """The worker's response, or None when the request was not intercepted."""
        if self._response is None:
            return None
        return await self._response


class PushMessageData:
    """Payload of a push message; body is raw bytes from the push service."""

    def __init__(self, body: bytes) -> None:
        self._body = body

    def bytes(self) -> bytes:
        return self._body

    def text(self) -> str:
        return self._body.decode("utf-8")

    def json(self) -> Any:
        return json.loads(self.text())


class PushEvent(ExtendableEvent):
    type = "push"

    def __init__(self, data: Optional[PushMessageData] = None) -> None:
        super().__init__()
        self.data = data

    @classmethod
    def from_payload(cls, payload: Optional[Any]) -> "PushEvent":
        """Build an event from bytes, str, a JSON-serializable object, or None."""
        if payload is None:
            return cls()
        if isinstance(payload, bytes):
            return cls(PushMessageData(payload))
        if isinstance(payload, str):
            return cls(PushMessageData(payload.encode("utf-8")))
        return cls(PushMessageData(json.dumps(payload).encode("utf-8")))


class Notification:
    """A notification shown by the platform."""

    def __init__(self, title: str, options: Optional[Dict[str, Any]] = None) -> None:
        self.title = title
        self.options = dict(options or {})
        self.closed = False

    @property
    def body(self) -> Optional[str]:
        return self.options.get("body")

    @property
    def data(self) -> Dict[str, Any]:
        data = self.options.get("data")
        return data if isinstance(data, dict) else {}

    def close(self) -> None:
        self.closed = True


class NotificationClickEvent(ExtendableEvent):
    type = "notificationclick"

    def __init__(self, notification: Notification, action: str = "") -> None:
        super().__init__()
        self.notification = notification
        self.action = action


class MessageEvent(ExtendableEvent):
    """A message posted to the worker by a page client."""

    type = "message"

    def __init__(self, data: Any, source: Optional[Any] = None) -> None:
        super().__init__()
        self.data = data
        self.source = source
