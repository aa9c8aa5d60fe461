# This project was developed with assistance from AI tools.
"""Deadline reminder records.

A request has at most one active reminder. Entering a new status cancels
the old one; a status with a tracked deadline gets a fresh one. Reminders
end as ``expired`` (the sweep handled the deadline) or ``cancelled`` (the
request moved on first) and are never re-activated.

The three ``reminder_sent_*`` flags only ever go from False to True.
"""

import logging
from datetime import datetime, timedelta

from db import DeadlineReminder, LicenseRequest
from db.database import utcnow
from db.enums import DeadlineType, ReminderStatus
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

REMINDER_WINDOWS_DAYS = (3, 1)


async def cancel_active_reminders(
    session: AsyncSession,
    request_id: int,
    *,
    close_as: ReminderStatus = ReminderStatus.CANCELLED,
) -> int:
    """Close every active reminder of a request. Does not commit."""
    result = await session.execute(
        update(DeadlineReminder)
        .where(
            DeadlineReminder.request_id == request_id,
            DeadlineReminder.status == ReminderStatus.ACTIVE,
        )
        .values(status=close_as, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def refresh_reminder(
    session: AsyncSession,
    request: LicenseRequest,
    *,
    deadline_type: DeadlineType | None,
    deadline_date: datetime | None,
    assigned_to: str | None = None,
    close_as: ReminderStatus = ReminderStatus.CANCELLED,
) -> DeadlineReminder | None:
    """Replace the request's active reminder with one for its new deadline.

    Passing no deadline just closes what is active, as ``close_as``. Commits.

    Returns:
        The new reminder, or None when the status tracks no deadline.
    """
    closed = await cancel_active_reminders(session, request.id, close_as=close_as)
    reminder = None
    if deadline_type is not None and deadline_date is not None:
        reminder = DeadlineReminder(
            request_id=request.id,
            license_type=request.license_type,
            deadline_type=deadline_type,
            deadline_date=deadline_date,
            assigned_to=assigned_to,
            status=ReminderStatus.ACTIVE,
        )
        session.add(reminder)
    await session.commit()

    if reminder is not None:
        await session.refresh(reminder)
        logger.info(
            "Deadline reminder %s set: request=%s type=%s due=%s",
            reminder.id,
            request.id,
            deadline_type.value,
            deadline_date.isoformat(),
        )
    elif closed:
        logger.info(
            "Closed %d reminder(s) as %s for request=%s", closed, close_as.value, request.id
        )
    return reminder


async def expire_reminder(session: AsyncSession, reminder: DeadlineReminder) -> None:
    reminder.status = ReminderStatus.EXPIRED
    await session.commit()


async def get_active_reminder_ids(session: AsyncSession) -> list[int]:
    stmt = (
        select(DeadlineReminder.id)
        .where(DeadlineReminder.status == ReminderStatus.ACTIVE)
        .order_by(DeadlineReminder.deadline_date.asc(), DeadlineReminder.id.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_active_reminder(session: AsyncSession, request_id: int) -> DeadlineReminder | None:
    stmt = select(DeadlineReminder).where(
        DeadlineReminder.request_id == request_id,
        DeadlineReminder.status == ReminderStatus.ACTIVE,
    )
    return (await session.execute(stmt)).scalars().first()


async def get_upcoming_deadlines(
    session: AsyncSession,
    *,
    days: int = 3,
    now: datetime | None = None,
) -> list[DeadlineReminder]:
    """Active reminders falling due within ``days``."""
    now = now or utcnow()
    stmt = (
        select(DeadlineReminder)
        .where(
            DeadlineReminder.status == ReminderStatus.ACTIVE,
            DeadlineReminder.deadline_date >= now,
            DeadlineReminder.deadline_date <= now + timedelta(days=days),
        )
        .order_by(DeadlineReminder.deadline_date.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_overdue_reminders(
    session: AsyncSession, *, now: datetime | None = None
) -> list[DeadlineReminder]:
    now = now or utcnow()
    stmt = (
        select(DeadlineReminder)
        .where(
            DeadlineReminder.status == ReminderStatus.ACTIVE,
            DeadlineReminder.deadline_date < now,
        )
        .order_by(DeadlineReminder.deadline_date.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_reminder_statistics(session: AsyncSession, *, now: datetime | None = None) -> dict:
    now = now or utcnow()
    rows = (
        await session.execute(
            select(DeadlineReminder.status, func.count(DeadlineReminder.id)).group_by(
                DeadlineReminder.status
            )
        )
    ).all()
    counts = {status: count for status, count in rows}
    due_soon = len(await get_upcoming_deadlines(session, days=REMINDER_WINDOWS_DAYS[0], now=now))
    return {
        "active": counts.get(ReminderStatus.ACTIVE, 0),
        "expired": counts.get(ReminderStatus.EXPIRED, 0),
        "cancelled": counts.get(ReminderStatus.CANCELLED, 0),
        "due_within_3_days": due_soon,
    }
