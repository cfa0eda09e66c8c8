"""
Furanomi Worker — One-Time Initialization
==========================================

What:  An idempotent, awaitable replacement for module-level "initialized" flags.
How:   Each Initializer owns a state record that moves
       UNINITIALIZED → INITIALIZING → READY. ensure() may be called any number
       of times from any number of tasks: the setup coroutine runs once,
       concurrent callers wait on the same run, and later callers return the
       stored result immediately. A failed run resets the state so a later
       call can try again.
"""

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Optional

from furanomi.exceptions import InitializationError

logger = logging.getLogger(__name__)


class InitState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class Initializer:
    def __init__(self, name: str, setup: Callable[[], Awaitable[Any]]):
        self.name = name
        self._setup = setup
        self._lock = asyncio.Lock()
        self.state = InitState.UNINITIALIZED
        self.result: Optional[Any] = None

    @property
    def ready(self) -> bool:
        return self.state is InitState.READY

    async def ensure(self) -> Any:
        if self.state is InitState.READY:
            return self.result
        async with self._lock:
            if self.state is InitState.READY:
                return self.result
            self.state = InitState.INITIALIZING
            logger.debug("Initializing %s", self.name)
            try:
                self.result = await self._setup()
            except Exception as e:
                self.state = InitState.UNINITIALIZED
                logger.error("Initialization of %s failed: %s", self.name, e)
                raise InitializationError(self.name, context={"error": str(e)}) from e
            self.state = InitState.READY
            logger.debug("%s ready", self.name)
            return self.result

    def reset(self) -> None:
        """Forget a completed run so the next ensure() sets up again."""
        if self.state is InitState.INITIALIZING:
            raise RuntimeError(f"Cannot reset {self.name} while it is initializing")
        self.state = InitState.UNINITIALIZED
        self.result = None
