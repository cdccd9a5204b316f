"""
Tests for prescription plan email scheduling.
"""

import json
from datetime import date, datetime

import pytest
from sqlalchemy import select

from db.event_log import SCHEDULED_PREFIX, find_entries
from db.models import PlanNotificationJob
from prescriptions.dispatch import NotificationDispatchLoop
from prescriptions.scheduler import NotificationScheduler, NotificationStage, dedup_key, derive_jobs

TZ = "Asia/Bahrain"


async def _jobs(session_factory) -> list[PlanNotificationJob]:
    async with session_factory() as db:
        result = await db.execute(select(PlanNotificationJob).order_by(PlanNotificationJob.send_on_utc))
        return list(result.scalars().all())


class TestDeriveJobs:
    def test_monthly_cycle_at_local_midnight(self):
        jobs = derive_jobs(7, 3, date(2024, 1, 1), TZ)

        assert [(j.stage, j.offset_days) for j in jobs] == [
            (NotificationStage.DUE_SOON, 1),
            (NotificationStage.REMINDER, 27),
            (NotificationStage.DUE_SOON, 30),
        ]
        # Bahrain is UTC+3: local midnight is 21:00 UTC the day before.
        assert [j.send_on_utc for j in jobs] == [
            datetime(2024, 1, 1, 21, 0),
            datetime(2024, 1, 27, 21, 0),
            datetime(2024, 1, 30, 21, 0),
        ]

    def test_dedup_keys(self):
        jobs = derive_jobs(7, 3, date(2024, 1, 1), TZ)

        assert [j.dedup_key for j in jobs] == ["PP|7|DUE_SOON|D1", "PP|7|REMINDER|D27", "PP|7|DUE_SOON|D30"]
        assert dedup_key(12, NotificationStage.REMINDER, 27) == "PP|12|REMINDER|D27"

    def test_utc_zone_keeps_midnight(self):
        jobs = derive_jobs(1, None, date(2024, 2, 28), "UTC")

        assert jobs[0].send_on_utc == datetime(2024, 2, 29, 0, 0)

    def test_job_json_payload(self):
        payload = json.loads(derive_jobs(7, 3, date(2024, 1, 1), TZ)[1].to_json())

        assert payload["plan_id"] == 7
        assert payload["user_id"] == 3
        assert payload["stage"] == "REMINDER"
        assert payload["send_on_utc"] == "2024-01-27T21:00:00"


@pytest.mark.asyncio
class TestScheduleForPlan:
    async def test_creates_three_jobs_and_audits_them(self, session_factory, world, clock):
        scheduler = NotificationScheduler(session_factory, TZ, clock)

        inserted = await scheduler.schedule_for_plan(41, world.customer_id, date(2024, 1, 1))

        assert inserted == 3
        jobs = await _jobs(session_factory)
        assert [j.dedup_key for j in jobs] == ["PP|41|DUE_SOON|D1", "PP|41|REMINDER|D27", "PP|41|DUE_SOON|D30"]
        assert all(j.sent_at is None and j.stock_applied_at is None for j in jobs)
        assert all(j.user_id == world.customer_id for j in jobs)

        async with session_factory() as db:
            entries = await find_entries(db, prefix=SCHEDULED_PREFIX)
        assert len(entries) == 3
        assert all(e.log_type == "plan_email" for e in entries)
        assert '"dedup_key": "PP|41|DUE_SOON|D1"' in entries[0].description

    async def test_scheduling_twice_keeps_three_jobs(self, session_factory, world, clock):
        scheduler = NotificationScheduler(session_factory, TZ, clock)

        await scheduler.schedule_for_plan(41, world.customer_id, date(2024, 1, 1))
        second = await scheduler.schedule_for_plan(41, world.customer_id, date(2024, 1, 1))

        assert second == 0
        assert len(await _jobs(session_factory)) == 3
        async with session_factory() as db:
            assert len(await find_entries(db, prefix=SCHEDULED_PREFIX)) == 3

    async def test_missing_jobs_are_filled_in(self, session_factory, world, clock):
        scheduler = NotificationScheduler(session_factory, TZ, clock)
        await scheduler.schedule_for_plan(41, world.customer_id, date(2024, 1, 1))

        async with session_factory() as db:
            job = (
                await db.execute(select(PlanNotificationJob).where(PlanNotificationJob.offset_days == 27))
            ).scalar_one()
            await db.delete(job)
            await db.commit()

        assert await scheduler.schedule_for_plan(41, world.customer_id, date(2024, 1, 1)) == 1
        assert len(await _jobs(session_factory)) == 3


@pytest.mark.asyncio
class TestBackfill:
    async def test_only_ongoing_plans_are_scheduled(self, session_factory, add_plan, clock):
        ongoing = await add_plan(creation_date=date(2024, 3, 1))
        await add_plan(creation_date=date(2024, 3, 1), status="cancelled")
        await add_plan(creation_date=date(2024, 3, 1), status="expired")

        scheduler = NotificationScheduler(session_factory, TZ, clock)
        summary = await scheduler.schedule_missing_plans()

        assert summary == {"plans": 1, "jobs_inserted": 3, "errors": 0}
        assert {j.plan_id for j in await _jobs(session_factory)} == {ongoing}

    async def test_backfill_is_idempotent(self, session_factory, add_plan, clock):
        await add_plan(creation_date=date(2024, 3, 1))
        await add_plan(creation_date=date(2024, 2, 10))

        scheduler = NotificationScheduler(session_factory, TZ, clock)
        first = await scheduler.schedule_missing_plans()
        second = await scheduler.schedule_missing_plans()

        # 2024-02-10 plan: D1 has gone by, D27 and D30 are still ahead.
        assert first["jobs_inserted"] == 5
        assert second["jobs_inserted"] == 0
        assert len(await _jobs(session_factory)) == 5

    async def test_past_jobs_are_not_backfilled(self, session_factory, world, add_plan, clock, gateway):
        stale = await add_plan(is_delivery=True)
        recent = await add_plan(is_delivery=True, creation_date=date(2024, 2, 10))

        summary = await NotificationScheduler(session_factory, TZ, clock).schedule_missing_plans()

        assert summary == {"plans": 2, "jobs_inserted": 2, "errors": 0}
        jobs = await _jobs(session_factory)
        assert [j.dedup_key for j in jobs] == [f"PP|{recent}|REMINDER|D27", f"PP|{recent}|DUE_SOON|D30"]
        assert all(j.plan_id != stale for j in jobs)

        dispatched = await NotificationDispatchLoop(session_factory, gateway, TZ, clock).run_cycle()

        assert dispatched["jobs"] == 0
        assert gateway.sent == []

    async def test_single_plan_scheduling_keeps_past_jobs(self, session_factory, world, clock):
        scheduler = NotificationScheduler(session_factory, TZ, clock)

        assert await scheduler.schedule_for_plan(41, world.customer_id, date(2024, 1, 1)) == 3
        assert await scheduler.schedule_for_plan(42, world.customer_id, date(2024, 1, 1), skip_past=True) == 0
