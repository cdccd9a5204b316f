"""
Event Log — append-only audit trail.

Records are never updated or deleted. Lookups are by description prefix
and substring, which is how the marker conventions below are found:

  PP_EMAIL_SCHEDULED|<job json>     plan email scheduled
  PP_EMAIL_SENT|<dedup key>|...     plan email delivered
  PP_STOCK_APPLIED|<dedup key>|...  monthly plan quantity taken from stock
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import LOG_TYPE_ADD_RECORD, EventLogRecord, User, utcnow

SCHEDULED_PREFIX = "PP_EMAIL_SCHEDULED|"
SENT_PREFIX = "PP_EMAIL_SENT|"
STOCK_APPLIED_PREFIX = "PP_STOCK_APPLIED|"


def append_entry(
    db: AsyncSession,
    *,
    log_type: str,
    description: str,
    user_id: int | None = None,
    timestamp: datetime | None = None,
) -> EventLogRecord:
    """Stage an audit record on the session. The caller commits."""
    record = EventLogRecord(
        user_id=user_id,
        log_type=log_type,
        description=description,
        timestamp_utc=timestamp or utcnow(),
    )
    db.add(record)
    return record


async def append_add_record(
    db: AsyncSession,
    *,
    user_id: int | None,
    table_name: str,
    record_id: int,
    details: str | None = None,
) -> EventLogRecord:
    """'<user> added a record to <table> (Record ID: n) - <details>'."""
    user = await db.get(User, user_id) if user_id else None
    user_name = user.full_name if user and user.full_name else "Unknown User"

    description = f"{user_name} added a record to {table_name} (Record ID: {record_id})"
    if details and details.strip():
        description += f" - {details}"

    return append_entry(db, log_type=LOG_TYPE_ADD_RECORD, description=description, user_id=user_id)


async def find_entries(
    db: AsyncSession,
    *,
    prefix: str | None = None,
    contains: str | None = None,
    log_type: str | None = None,
    limit: int | None = None,
) -> list[EventLogRecord]:
    """Oldest-first scan filtered by description prefix / substring."""
    stmt = select(EventLogRecord)
    if log_type:
        stmt = stmt.where(EventLogRecord.log_type == log_type)
    if prefix:
        stmt = stmt.where(EventLogRecord.description.startswith(prefix, autoescape=True))
    if contains:
        stmt = stmt.where(EventLogRecord.description.contains(contains, autoescape=True))
    stmt = stmt.order_by(EventLogRecord.timestamp_utc, EventLogRecord.log_id)
    if limit:
        stmt = stmt.limit(limit)

    result = await db.execute(stmt)
    return list(result.scalars().all())
