"""
Furanomi Worker — Event ID Middleware
======================================

What:  Gives every dispatched worker event a short unique ID.
How:   Stores the ID in a ContextVar so every log record emitted while the
       event is handled (including from its wait_until work) carries it.

Several events are handled concurrently on one event loop; a ContextVar keeps
each coroutine's ID separate where a module global could not.
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Awaitable, Callable, List

from furanomi.events import ExtendableEvent

event_id_var: ContextVar[str] = ContextVar("event_id", default="-")

CallNext = Callable[[ExtendableEvent], Awaitable[List[BaseException]]]


class EventIDFilter(logging.Filter):
    """Injects the current event ID into log records as `event_id`."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.event_id = event_id_var.get()
        return True


class EventIDMiddleware:
    async def dispatch(self, event: ExtendableEvent, call_next: CallNext) -> List[BaseException]:
        eid = str(uuid.uuid4())[:8]
        token = event_id_var.set(eid)
        event.event_id = eid
        try:
            return await call_next(event)
        finally:
            event_id_var.reset(token)
