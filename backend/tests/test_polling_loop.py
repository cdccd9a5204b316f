import asyncio

import pytest

from workers.loop import PollingLoop


@pytest.mark.asyncio
class TestPollingLoop:
    async def test_run_once_returns_cycle_summary(self):
        async def cycle():
            return {"sent": 2}

        loop = PollingLoop("plan_notifications", cycle, 60)

        assert await loop.run_once() == {"sent": 2}
        assert loop.cycles_run == 1
        assert loop.cycles_failed == 0

    async def test_failed_cycle_is_counted_not_raised(self):
        async def cycle():
            raise RuntimeError("database unavailable")

        loop = PollingLoop("reorder_monitor", cycle, 30)

        assert await loop.run_once() is None
        assert loop.cycles_run == 1
        assert loop.cycles_failed == 1

    async def test_run_forever_keeps_going_after_failures_and_stops_on_request(self):
        stop_event = asyncio.Event()
        calls = []

        async def cycle():
            calls.append(len(calls))
            if len(calls) == 1:
                raise RuntimeError("transient")
            if len(calls) == 3:
                stop_event.set()
            return {}

        loop = PollingLoop("reorder_monitor", cycle, 0.01)
        await asyncio.wait_for(loop.run_forever(stop_event), timeout=5)

        assert len(calls) == 3
        assert loop.cycles_run == 3
        assert loop.cycles_failed == 1

    async def test_stop_before_start_runs_nothing(self):
        stop_event = asyncio.Event()
        stop_event.set()
        calls = []

        async def cycle():
            calls.append(1)
            return {}

        await PollingLoop("plan_notifications", cycle, 0.01).run_forever(stop_event)

        assert calls == []
