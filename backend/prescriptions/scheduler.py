"""
Prescription Plan Notification Scheduler.

A plan's monthly cycle produces three emails, each sent at local midnight
of its day:

  day +1   DUE_SOON   first fill is ready
  day +27  REMINDER   next fill is ready in 3 days
  day +30  DUE_SOON   next fill is ready

Jobs are rows in plan_notification_jobs keyed by a deterministic dedup key,
so scheduling the same plan again only fills in what is missing.
"""

import enum
import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.clock import Clock, SystemClock, local_midnight_utc, naive_utc
from db.event_log import SCHEDULED_PREFIX, append_entry
from db.models import LOG_TYPE_PLAN_EMAIL, PLAN_STATUS_ONGOING, PlanNotificationJob, PrescriptionPlan

logger = structlog.get_logger()


class NotificationStage(str, enum.Enum):
    DUE_SOON = "DUE_SOON"
    REMINDER = "REMINDER"


PLAN_CYCLE: tuple[tuple[NotificationStage, int], ...] = (
    (NotificationStage.DUE_SOON, 1),
    (NotificationStage.REMINDER, 27),
    (NotificationStage.DUE_SOON, 30),
)


def dedup_key(plan_id: int, stage: NotificationStage, offset_days: int) -> str:
    return f"PP|{plan_id}|{stage.value}|D{offset_days}"


@dataclass(frozen=True)
class NotificationJobSpec:
    plan_id: int
    user_id: int | None
    stage: NotificationStage
    offset_days: int
    send_on_utc: datetime
    dedup_key: str

    def to_json(self) -> str:
        payload = asdict(self)
        payload["stage"] = self.stage.value
        payload["send_on_utc"] = self.send_on_utc.isoformat()
        return json.dumps(payload, sort_keys=True)


def derive_jobs(plan_id: int, user_id: int | None, creation_date: date, tz_name: str) -> list[NotificationJobSpec]:
    """The plan's monthly jobs, send times converted from local midnight to UTC."""
    return [
        NotificationJobSpec(
            plan_id=plan_id,
            user_id=user_id,
            stage=stage,
            offset_days=offset,
            send_on_utc=local_midnight_utc(creation_date + timedelta(days=offset), tz_name),
            dedup_key=dedup_key(plan_id, stage, offset),
        )
        for stage, offset in PLAN_CYCLE
    ]


class NotificationScheduler:
    def __init__(self, session_factory: async_sessionmaker, tz_name: str, clock: Clock | None = None):
        self.session_factory = session_factory
        self.tz_name = tz_name
        self.clock = clock or SystemClock()

    async def schedule_for_plan(
        self,
        plan_id: int,
        user_id: int | None,
        creation_date: date,
        *,
        skip_past: bool = False,
    ) -> int:
        """Persist any of the plan's jobs not already scheduled. Returns the number inserted.

        skip_past leaves out jobs whose send time has already gone by.
        """
        async with self.session_factory() as db:
            return await self.schedule_in_session(db, plan_id, user_id, creation_date, skip_past=skip_past)

    async def schedule_in_session(
        self,
        db: AsyncSession,
        plan_id: int,
        user_id: int | None,
        creation_date: date,
        *,
        skip_past: bool = False,
    ) -> int:
        jobs = derive_jobs(plan_id, user_id, creation_date, self.tz_name)

        result = await db.execute(select(PlanNotificationJob.dedup_key).where(PlanNotificationJob.plan_id == plan_id))
        existing = {row[0] for row in result.all()}

        now = naive_utc(self.clock.now())
        inserted = 0
        for job in jobs:
            if job.dedup_key in existing:
                continue
            if skip_past and job.send_on_utc < now:
                continue
            db.add(
                PlanNotificationJob(
                    plan_id=job.plan_id,
                    user_id=job.user_id,
                    stage=job.stage.value,
                    offset_days=job.offset_days,
                    send_on_utc=job.send_on_utc,
                    dedup_key=job.dedup_key,
                    created_at=now,
                )
            )
            append_entry(
                db,
                log_type=LOG_TYPE_PLAN_EMAIL,
                description=SCHEDULED_PREFIX + job.to_json(),
                user_id=user_id,
                timestamp=now,
            )
            inserted += 1

        if not inserted:
            logger.debug("plan_email.already_scheduled", plan_id=plan_id)
            return 0

        try:
            await db.commit()
        except IntegrityError:
            # Another scheduler inserted the same keys between our read and commit.
            await db.rollback()
            logger.warning("plan_email.schedule_conflict", plan_id=plan_id)
            return 0

        logger.info("plan_email.scheduled", plan_id=plan_id, inserted=inserted, skipped=len(jobs) - inserted)
        return inserted

    async def schedule_missing_plans(self) -> dict[str, int]:
        """Backfill: give every ongoing plan its upcoming jobs.

        Jobs already past their send time are not created.
        """
        async with self.session_factory() as db:
            result = await db.execute(
                select(PrescriptionPlan.plan_id, PrescriptionPlan.user_id, PrescriptionPlan.creation_date)
                .where(
                    PrescriptionPlan.status == PLAN_STATUS_ONGOING,
                    PrescriptionPlan.creation_date.isnot(None),
                )
                .order_by(PrescriptionPlan.plan_id)
            )
            plans = result.all()

        inserted = 0
        errors = 0
        for plan_id, user_id, creation_date in plans:
            try:
                inserted += await self.schedule_for_plan(plan_id, user_id, creation_date, skip_past=True)
            except Exception as exc:  # noqa: BLE001
                errors += 1
                logger.error("plan_email.backfill_failed", plan_id=plan_id, error=str(exc), exc_info=True)

        summary = {"plans": len(plans), "jobs_inserted": inserted, "errors": errors}
        logger.info("plan_email.backfill_completed", **summary)
        return summary
