"""
Standalone dispatch engine process.

Runs the reorder monitor and the plan email dispatcher as two independent
polling loops in one asyncio process; SIGINT/SIGTERM stop both at their
next sleep.

Examples:
  python -m workers.runner
  python -m workers.runner --once
  python -m workers.runner --backfill --once
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
from contextlib import suppress

import structlog

from core.config import get_settings
from db.session import build_session_factory
from notifications.email import build_email_gateway
from workers.components import build_dispatch_engine
from workers.loop import PollingLoop

logger = structlog.get_logger()


async def run(*, once: bool = False, backfill: bool = False) -> dict:
    # Configuration problems (bad env, missing API key) raise here, before any loop starts.
    settings = get_settings()
    gateway = build_email_gateway(settings)

    engine, session_factory = build_session_factory(settings.database_url, echo=settings.database_echo)
    try:
        dispatch_engine = build_dispatch_engine(settings, session_factory, gateway)
        loops = [
            PollingLoop(
                "reorder_monitor",
                dispatch_engine.monitor.run_cycle,
                settings.reorder_poll_interval_seconds,
            ),
            PollingLoop(
                "plan_notifications",
                dispatch_engine.dispatch_loop.run_cycle,
                settings.dispatch_poll_interval_seconds,
            ),
        ]

        results: dict = {}
        if backfill:
            results["backfill"] = await dispatch_engine.scheduler.schedule_missing_plans()

        if once:
            for loop in loops:
                results[loop.name] = await loop.run_once()
            return results

        stop_event = asyncio.Event()
        event_loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError):
                event_loop.add_signal_handler(sig, stop_event.set)

        await asyncio.gather(*(loop.run_forever(stop_event) for loop in loops))
        return {loop.name: {"cycles_run": loop.cycles_run, "cycles_failed": loop.cycles_failed} for loop in loops}
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the pharmacy dispatch engine")
    parser.add_argument("--once", action="store_true", help="Run a single cycle of each loop and exit")
    parser.add_argument("--backfill", action="store_true", help="Schedule missing plan emails before starting")
    args = parser.parse_args(argv)

    results = asyncio.run(run(once=args.once, backfill=args.backfill))
    if args.once:
        print(json.dumps(results, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
