"""
Prescription Plan Notification Dispatch — one pass over due jobs.

The batch holds the oldest due, unsent jobs whose plan can still be
emailed (ongoing, customer has an address, prescription not expired), so
dead plans never take batch slots from live ones.

Per job (oldest first, bounded batch):
  1. Skip if not due yet, or already sent
  2. Resolve plan + customer; skip plans that are gone, not ongoing,
     or whose prescription expired
  3. build_email_info(): shipping method, location label, and for DUE_SOON
     pickups, whether the branch holds the approved quantity
  4. Not eligible → leave the job pending; it is re-checked next cycle
  5. Send; on acceptance mark sent (and, for DUE_SOON, take the monthly
     quantity out of stock once per job)

Delivery is at-least-once: the email goes out before sent_at is committed,
so a crash in between re-sends on the next cycle.
"""

from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.clock import Clock, SystemClock, local_today, naive_utc
from db.event_log import SENT_PREFIX, STOCK_APPLIED_PREFIX, append_entry
from db.models import (
    LOG_TYPE_INVENTORY_CHANGE,
    LOG_TYPE_PLAN_EMAIL,
    PLAN_STATUS_ONGOING,
    Address,
    Approval,
    City,
    PlanNotificationJob,
    PrescriptionPlan,
    Product,
    User,
)
from inventory.stock import available_quantity, consume_fefo
from notifications.email import EmailGateway
from notifications.templates import plan_email_html, plan_subject
from prescriptions.scheduler import NotificationStage

logger = structlog.get_logger()

DEFAULT_BATCH_SIZE = 300
ADDRESS_FALLBACK = "Delivery address on file"
PRESCRIPTION_FALLBACK = "your prescription"


@dataclass
class EmailInfo:
    can_send: bool
    method_label: str
    location_label: str
    total_amount: Decimal


@dataclass
class DispatchCycleSummary:
    jobs: int = 0
    sent: int = 0
    not_due: int = 0
    already_sent: int = 0
    ineligible: int = 0
    send_failed: int = 0
    unresolved: int = 0
    inactive: int = 0
    expired: int = 0
    invalid: int = 0
    errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def compose_address(address: Address | None) -> str:
    if address is None:
        return ADDRESS_FALLBACK

    city = address.city.city_name if address.city else None
    parts = [
        city,
        f"Block {address.block}" if (address.block or "").strip() else None,
        f"Road {address.street}" if (address.street or "").strip() else None,
        f"Building/Floor {address.building_number}" if (address.building_number or "").strip() else None,
    ]
    line = ", ".join(part for part in parts if part and part.strip())
    return line or ADDRESS_FALLBACK


def prescription_display_name(plan: PrescriptionPlan) -> str:
    """Prescription name, else the approved product name, else a generic label."""
    approval = plan.approval
    prescription = approval.prescription if approval else None
    if prescription and (prescription.prescription_name or "").strip():
        return prescription.prescription_name
    if approval and (approval.product_name or "").strip():
        return approval.product_name
    return PRESCRIPTION_FALLBACK


async def resolve_product_id(db: AsyncSession, approval: Approval | None) -> int | None:
    """Approved product: explicit link first, then lookup by approved name."""
    if approval is None:
        return None
    if approval.product_id:
        return approval.product_id
    if not (approval.product_name or "").strip():
        return None
    result = await db.execute(
        select(Product.product_id)
        .where(Product.product_name == approval.product_name)
        .order_by(Product.product_id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def pickup_branch_label(db: AsyncSession, branch_id: int | None, city_name: str | None) -> str:
    if (city_name or "").strip():
        return city_name
    if branch_id:
        result = await db.execute(select(City.city_name).where(City.branch_id == branch_id).limit(1))
        fallback = result.scalar_one_or_none()
        if (fallback or "").strip():
            return fallback
        return f"Branch #{branch_id}"
    return "Pickup branch"


async def build_email_info(
    db: AsyncSession,
    plan: PrescriptionPlan,
    stage: NotificationStage,
    today: date,
) -> EmailInfo:
    total = Decimal(plan.total_amount or 0)
    shipping = plan.shipping
    if shipping is None:
        return EmailInfo(False, "Unknown", "Unknown", total)

    if shipping.is_delivery:
        return EmailInfo(True, "Delivery", compose_address(shipping.address), total)

    branch_id = shipping.branch_id
    label = await pickup_branch_label(db, branch_id, shipping.branch.city_name if shipping.branch else None)

    if stage is NotificationStage.DUE_SOON:
        required = (plan.approval.quantity if plan.approval else None) or 0
        if not branch_id or required <= 0:
            return EmailInfo(False, "Pickup", label, total)

        product_id = await resolve_product_id(db, plan.approval)
        if product_id is None:
            return EmailInfo(False, "Pickup", label, total)

        if await available_quantity(db, product_id, branch_id, today) < required:
            return EmailInfo(False, "Pickup", label, total)

    return EmailInfo(True, "Pickup", label, total)


class NotificationDispatchLoop:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        gateway: EmailGateway,
        tz_name: str,
        clock: Clock | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.tz_name = tz_name
        self.clock = clock or SystemClock()
        self.batch_size = batch_size

    async def run_cycle(self) -> dict[str, int]:
        now = naive_utc(self.clock.now())
        today = local_today(now, self.tz_name)

        async with self.session_factory() as db:
            result = await db.execute(
                select(PlanNotificationJob.job_id)
                .join(PrescriptionPlan, PrescriptionPlan.plan_id == PlanNotificationJob.plan_id)
                .join(User, User.user_id == PrescriptionPlan.user_id)
                .outerjoin(Approval, Approval.approval_id == PrescriptionPlan.approval_id)
                .where(
                    PlanNotificationJob.sent_at.is_(None),
                    PlanNotificationJob.send_on_utc <= now,
                    PlanNotificationJob.stage.in_([stage.value for stage in NotificationStage]),
                    PrescriptionPlan.status == PLAN_STATUS_ONGOING,
                    func.trim(func.coalesce(User.email_address, "")) != "",
                    or_(
                        Approval.prescription_expiry_date.is_(None),
                        Approval.prescription_expiry_date >= today,
                    ),
                )
                .order_by(PlanNotificationJob.send_on_utc, PlanNotificationJob.job_id)
                .limit(self.batch_size)
            )
            job_ids = [row[0] for row in result.all()]

        summary = DispatchCycleSummary(jobs=len(job_ids))
        for job_id in job_ids:
            try:
                outcome = await self.process_job(job_id, now)
            except Exception as exc:  # noqa: BLE001
                summary.errors += 1
                logger.error("plan_email.job_failed", job_id=job_id, error=str(exc), exc_info=True)
                continue
            setattr(summary, outcome, getattr(summary, outcome) + 1)

        logger.info("plan_email.cycle_completed", **summary.as_dict())
        return summary.as_dict()

    async def process_job(self, job_id: int, now: datetime) -> str:
        """Returns the DispatchCycleSummary field this job counts towards."""
        async with self.session_factory() as db:
            job = await db.get(PlanNotificationJob, job_id)
            if job is None:
                return "invalid"

            try:
                stage = NotificationStage(job.stage)
            except ValueError:
                logger.warning("plan_email.invalid_stage", job_id=job_id, stage=job.stage)
                return "invalid"

            if job.send_on_utc > now:
                return "not_due"
            if job.sent_at is not None:
                return "already_sent"

            plan = await db.get(PrescriptionPlan, job.plan_id)
            user = plan.user if plan else None
            if plan is None or user is None or not (user.email_address or "").strip():
                logger.warning("plan_email.plan_unresolved", job_id=job_id, plan_id=job.plan_id)
                return "unresolved"

            if plan.status != PLAN_STATUS_ONGOING:
                return "inactive"

            today = local_today(now, self.tz_name)
            expiry = plan.approval.prescription_expiry_date if plan.approval else None
            if expiry is not None and expiry < today:
                logger.info("plan_email.prescription_expired", job_id=job_id, plan_id=plan.plan_id)
                return "expired"

            info = await build_email_info(db, plan, stage, today)
            if not info.can_send:
                logger.info(
                    "plan_email.not_eligible",
                    job_id=job_id,
                    plan_id=plan.plan_id,
                    stage=stage.value,
                    method=info.method_label,
                )
                return "ineligible"

            is_reminder = stage is NotificationStage.REMINDER
            body = plan_email_html(
                is_reminder=is_reminder,
                customer_name=user.first_name or "Customer",
                prescription_name=prescription_display_name(plan),
                method_label=info.method_label,
                location_label=info.location_label,
                total_amount=info.total_amount,
            )
            if not await self.gateway.send(user.email_address, plan_subject(is_reminder), body):
                logger.warning("plan_email.send_failed", job_id=job_id, plan_id=plan.plan_id)
                return "send_failed"

            if stage is NotificationStage.DUE_SOON and job.stock_applied_at is None:
                await self._apply_monthly_stock(db, job, plan, today, now)

            job.sent_at = now
            append_entry(
                db,
                log_type=LOG_TYPE_PLAN_EMAIL,
                description=(
                    f"{SENT_PREFIX}{job.dedup_key}|Method={info.method_label}"
                    f"|Location={info.location_label}|Total={info.total_amount:.3f}"
                ),
                user_id=user.user_id,
                timestamp=now,
            )
            await db.commit()

            logger.info(
                "plan_email.sent",
                job_id=job_id,
                plan_id=plan.plan_id,
                stage=stage.value,
                dedup_key=job.dedup_key,
            )
            return "sent"

    async def _apply_monthly_stock(
        self,
        db: AsyncSession,
        job: PlanNotificationJob,
        plan: PrescriptionPlan,
        today: date,
        now: datetime,
    ) -> bool:
        """Take the plan's monthly quantity from its branch, once per job."""
        branch_id = plan.shipping.branch_id if plan.shipping else None
        quantity = (plan.approval.quantity if plan.approval else None) or 0
        product_id = await resolve_product_id(db, plan.approval)
        if not branch_id or quantity <= 0 or product_id is None:
            return False

        if not await consume_fefo(db, product_id, branch_id, quantity, today):
            logger.warning(
                "plan_email.stock_not_applied",
                job_id=job.job_id,
                plan_id=plan.plan_id,
                branch_id=branch_id,
                quantity=quantity,
            )
            return False

        job.stock_applied_at = now
        branch_label = plan.shipping.branch.city_name if plan.shipping.branch else None
        append_entry(
            db,
            log_type=LOG_TYPE_INVENTORY_CHANGE,
            description=(
                f"Inventory update for product '{plan.approval.product_name or 'Plan item'}' "
                f"at branch '{branch_label or 'Unknown'}' by {plan.user.full_name or 'System'}"
            ),
            user_id=plan.user_id,
            timestamp=now,
        )
        append_entry(
            db,
            log_type=LOG_TYPE_PLAN_EMAIL,
            description=f"{STOCK_APPLIED_PREFIX}{job.dedup_key}|Plan={plan.plan_id}",
            user_id=plan.user_id,
            timestamp=now,
        )
        return True
