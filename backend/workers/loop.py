"""
Fixed-interval polling loop.

Wraps a component's run_cycle(). A failing cycle is logged and the loop
keeps going. Stop requests are honoured between cycles only; a cycle in
progress always finishes.
"""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger()


class PollingLoop:
    def __init__(
        self,
        name: str,
        cycle: Callable[[], Awaitable[dict]],
        interval_seconds: float,
    ):
        self.name = name
        self.cycle = cycle
        self.interval_seconds = interval_seconds
        self.cycles_run = 0
        self.cycles_failed = 0

    async def run_once(self) -> dict | None:
        try:
            return await self.cycle()
        except Exception as exc:  # noqa: BLE001
            self.cycles_failed += 1
            logger.error("loop.cycle_failed", loop=self.name, error=str(exc), exc_info=True)
            return None
        finally:
            self.cycles_run += 1

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        logger.info("loop.started", loop=self.name, interval_seconds=self.interval_seconds)
        while not stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("loop.stopped", loop=self.name, cycles_run=self.cycles_run, cycles_failed=self.cycles_failed)
