#!/usr/bin/env python3
"""Schedule prescription plan emails from the command line.

Without --plan-id every ongoing plan is backfilled. Safe to re-run: jobs
that already exist are left alone.

Examples:
  python backend/scripts/schedule_plan_notifications.py
  python backend/scripts/schedule_plan_notifications.py --plan-id 42 --pretty
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from typing import Any

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from core.config import get_settings
from db.models import PrescriptionPlan
from db.session import build_session_factory
from prescriptions.scheduler import NotificationScheduler


async def _schedule(plan_id: int | None) -> dict[str, Any]:
    settings = get_settings()
    engine, session_factory = build_session_factory(settings.database_url)
    scheduler = NotificationScheduler(session_factory, settings.local_timezone)
    try:
        if plan_id is None:
            return {"status": "success", **await scheduler.schedule_missing_plans()}

        async with session_factory() as db:
            result = await db.execute(
                select(PrescriptionPlan.user_id, PrescriptionPlan.creation_date).where(
                    PrescriptionPlan.plan_id == plan_id
                )
            )
            row = result.first()
        if row is None:
            return {"status": "failed", "error": f"Plan {plan_id} not found"}
        if row.creation_date is None:
            return {"status": "failed", "error": f"Plan {plan_id} has no creation date"}

        inserted = await scheduler.schedule_for_plan(plan_id, row.user_id, row.creation_date)
        return {"status": "success", "plan_id": plan_id, "jobs_inserted": inserted}
    finally:
        await engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(description="Schedule prescription plan emails")
    parser.add_argument("--plan-id", type=int, default=None, help="Schedule a single plan")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output")
    args = parser.parse_args()

    summary = asyncio.run(_schedule(args.plan_id))

    if args.pretty:
        print(json.dumps(summary, indent=2, sort_keys=True))
    else:
        print(json.dumps(summary))

    return 0 if summary["status"] == "success" else 1


if __name__ == "__main__":
    raise SystemExit(main())
