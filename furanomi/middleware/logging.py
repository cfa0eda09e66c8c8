"""
Furanomi Worker — Event Logging Middleware
===========================================

What:  One log line per handled worker event: type, subject, outcome, duration.
How:   Wraps the rest of the dispatch chain; runs after EventIDMiddleware so the
       line carries the event ID.

Log levels:
    handler or wait_until work raised → ERROR
    fetch event left to the network   → DEBUG (most requests, too noisy otherwise)
    everything else                   → INFO
"""

import logging
import time
from typing import List

from furanomi.events import ExtendableEvent, FetchEvent
from furanomi.middleware.event_id import CallNext

logger = logging.getLogger("furanomi.events")


class EventLoggingMiddleware:
    async def dispatch(self, event: ExtendableEvent, call_next: CallNext) -> List[BaseException]:
        start_time = time.perf_counter()
        errors = await call_next(event)
        duration_ms = (time.perf_counter() - start_time) * 1000

        subject = ""
        if isinstance(event, FetchEvent):
            subject = f" {event.request.method} {event.request.url.path}"

        if errors:
            log_level = logging.ERROR
        elif isinstance(event, FetchEvent) and not event.handled:
            log_level = logging.DEBUG
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s%s %s %.1fms",
            event.type,
            subject,
            "failed" if errors else "ok",
            duration_ms,
            extra={
                "event_type": event.type,
                "duration_ms": round(duration_ms, 2),
                "error_count": len(errors),
            },
        )
        return errors
