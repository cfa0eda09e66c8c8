"""
Furanomi Worker — Event Middleware
===================================

What:  Wrappers applied around every event dispatch.

Middleware Chain (execution order):
    1. EventIDMiddleware       — assigns a short event ID for log correlation
    2. EventLoggingMiddleware  — logs event type, outcome and duration

Each middleware implements `async dispatch(event, call_next)`.
"""

from furanomi.middleware.event_id import EventIDFilter, EventIDMiddleware, event_id_var
from furanomi.middleware.logging import EventLoggingMiddleware

__all__ = ["EventIDFilter", "EventIDMiddleware", "EventLoggingMiddleware", "event_id_var"]
