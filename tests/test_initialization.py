"""
Furanomi Worker — Initializer Tests
====================================

What we test:
    ✅ Setup runs once no matter how many times ensure() is awaited
    ✅ Concurrent callers share a single run
    ✅ A failed run resets to UNINITIALIZED and can be retried
    ✅ reset() forces a fresh run
"""

import asyncio

import pytest

from furanomi.exceptions import InitializationError
from furanomi.services.initialization import InitState, Initializer


class CountingSetup:
    def __init__(self, result="ok", delay=0.0, failures=0):
        self.calls = 0
        self.result = result
        self.delay = delay
        self.failures = failures

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures:
            self.failures -= 1
            raise RuntimeError("setup failed")
        return self.result


class TestInitializer:

    @pytest.mark.asyncio
    async def test_setup_runs_once(self):
        setup = CountingSetup()
        init = Initializer("thing", setup)

        assert init.state is InitState.UNINITIALIZED
        assert await init.ensure() == "ok"
        assert await init.ensure() == "ok"

        assert setup.calls == 1
        assert init.ready

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_run(self):
        setup = CountingSetup(delay=0.01)
        init = Initializer("thing", setup)

        results = await asyncio.gather(*(init.ensure() for _ in range(5)))

        assert results == ["ok"] * 5
        assert setup.calls == 1

    @pytest.mark.asyncio
    async def test_failure_resets_state(self):
        setup = CountingSetup(failures=1)
        init = Initializer("thing", setup)

        with pytest.raises(InitializationError) as exc_info:
            await init.ensure()

        assert init.state is InitState.UNINITIALIZED
        assert exc_info.value.context["initializer"] == "thing"
        assert exc_info.value.context["error"] == "setup failed"

        assert await init.ensure() == "ok"
        assert setup.calls == 2

    @pytest.mark.asyncio
    async def test_reset_forces_new_run(self):
        setup = CountingSetup()
        init = Initializer("thing", setup)
        await init.ensure()

        init.reset()
        assert init.result is None
        await init.ensure()

        assert setup.calls == 2
