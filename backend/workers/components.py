"""Wire the dispatch engine's components from settings."""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.clock import Clock, SystemClock
from notifications.email import EmailGateway
from prescriptions.dispatch import NotificationDispatchLoop
from prescriptions.scheduler import NotificationScheduler
from replenishment.dispatcher import ReorderDispatcher
from replenishment.monitor import InventoryThresholdMonitor


@dataclass
class DispatchEngine:
    monitor: InventoryThresholdMonitor
    dispatch_loop: NotificationDispatchLoop
    scheduler: NotificationScheduler


def build_dispatch_engine(
    settings,
    session_factory: async_sessionmaker,
    gateway: EmailGateway,
    clock: Clock | None = None,
) -> DispatchEngine:
    clock = clock or SystemClock()
    tz_name = settings.local_timezone
    return DispatchEngine(
        monitor=InventoryThresholdMonitor(
            session_factory,
            ReorderDispatcher(gateway, tz_name, clock),
            tz_name,
            clock,
            grace_days=settings.inventory_expiry_grace_days,
        ),
        dispatch_loop=NotificationDispatchLoop(
            session_factory,
            gateway,
            tz_name,
            clock,
            batch_size=settings.dispatch_batch_size,
        ),
        scheduler=NotificationScheduler(session_factory, tz_name, clock),
    )
