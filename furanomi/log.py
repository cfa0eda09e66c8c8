"""
Furanomi Worker — Logging Configuration
========================================

What:  Consistent log format for the whole package.
How:   Configures the root logger once, with a stdout handler whose filter
       adds the current event ID to every record.
When:  Called by ServiceWorker.register() unless the host application has
       configured logging itself (pass configure_logging=False).
"""

import logging
import sys
from typing import Optional

from furanomi.config import settings
from furanomi.middleware.event_id import EventIDFilter

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [%(event_id)s]: %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(EventIDFilter())

    logging.basicConfig(
        level=getattr(logging, level or settings.log_level, logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    # Quieten per-request chatter from the HTTP stack
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
