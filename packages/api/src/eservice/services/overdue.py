# This project was developed with assistance from AI tools.
"""Overdue sweep.

One pass over active deadline reminders and open tasks:

- reminder past due: mark the overdue flag (notifying the assignee, if
  any), drive the automatic ``overdue`` transition on the request, notify
  the owner and the admin role, then expire the reminder;
- reminder due within 1 day / 3 days: send the matching reminder once;
- open task past its deadline: mark it overdue and drive the automatic
  transition on its request when the request's status allows it.

Each item is processed on its own. A failure is logged with the item id,
rolled back and added to the report; the pass always runs to the end.
Reminder flags are claimed with a guarded UPDATE, so a threshold is
announced once even when two passes overlap.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from db import DeadlineReminder, LicenseRequest, TaskAssignment
from db.database import utcnow
from db.enums import (
    NotificationPriority,
    NotificationType,
    ReminderStatus,
    RequestStatus,
    TaskStatus,
    UserRole,
)
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from . import audit, deadline
from .actor import SYSTEM
from .errors import InvalidTransitionError
from .workflow import WorkflowTransitionService, get_workflow_service

logger = logging.getLogger(__name__)

AUTO_CANCEL_REASON = "Auto-cancelled due to timeout"


@dataclass
class SweepError:
    kind: str
    item_id: int
    error: str


@dataclass
class SweepReport:
    processed_count: int = 0
    errors: list[SweepError] = field(default_factory=list)
    reminders_sent: int = 0
    requests_overdue: int = 0
    tasks_overdue: int = 0


class OverdueSweep:
    def __init__(
        self,
        workflow: WorkflowTransitionService,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.workflow = workflow
        self.notifications = workflow.notifications
        self.tasks = workflow.tasks
        self.table = workflow.table
        self._clock = clock

    async def run(self, session: AsyncSession) -> SweepReport:
        report = SweepReport()
        now = self._clock()

        for reminder_id in await deadline.get_active_reminder_ids(session):
            try:
                if await self._process_reminder(session, reminder_id, now, report):
                    report.processed_count += 1
            except Exception as exc:
                await session.rollback()
                logger.exception("Overdue sweep failed on reminder %s", reminder_id)
                report.errors.append(
                    SweepError(kind="reminder", item_id=reminder_id, error=str(exc))
                )

        for task_id in await self._overdue_task_ids(session, now):
            try:
                await self._process_task(session, task_id, report)
                report.processed_count += 1
            except Exception as exc:
                await session.rollback()
                logger.exception("Overdue sweep failed on task %s", task_id)
                report.errors.append(SweepError(kind="task", item_id=task_id, error=str(exc)))

        logger.info(
            "Overdue sweep done: processed=%d reminders_sent=%d requests_overdue=%d "
            "tasks_overdue=%d errors=%d",
            report.processed_count,
            report.reminders_sent,
            report.requests_overdue,
            report.tasks_overdue,
            len(report.errors),
        )
        return report

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    async def _process_reminder(
        self,
        session: AsyncSession,
        reminder_id: int,
        now: datetime,
        report: SweepReport,
    ) -> bool:
        """Handle one reminder. Returns False when there was nothing to do."""
        reminder = await session.get(DeadlineReminder, reminder_id, populate_existing=True)
        if reminder is None or reminder.status != ReminderStatus.ACTIVE:
            return False
        request = await session.get(LicenseRequest, reminder.request_id, populate_existing=True)
        if request is None:
            await deadline.expire_reminder(session, reminder)
            return True

        if reminder.deadline_date < now:
            await self._handle_expired_deadline(session, reminder, request, report)
            return True

        remaining = reminder.deadline_date - now
        if remaining <= timedelta(days=1) and not reminder.reminder_sent_1d:
            if not await self._claim(session, reminder, "reminder_sent_1d", "reminder_sent_3d"):
                return False
            await self._send_reminder(session, reminder, request, "1 day")
            report.reminders_sent += 1
            return True
        if remaining <= timedelta(days=3) and not reminder.reminder_sent_3d:
            if not await self._claim(session, reminder, "reminder_sent_3d"):
                return False
            await self._send_reminder(session, reminder, request, "3 days")
            report.reminders_sent += 1
            return True
        return False

    async def _claim(
        self,
        session: AsyncSession,
        reminder: DeadlineReminder,
        flag: str,
        *also: str,
    ) -> bool:
        """Set ``flag`` (and ``also``) only if it is still unset; commits.

        Returns True when this call flipped the flag. A concurrent pass that
        got there first leaves zero rows to update, and the caller sends nothing.
        """
        stmt = (
            update(DeadlineReminder)
            .where(
                DeadlineReminder.id == reminder.id,
                getattr(DeadlineReminder, flag).is_(False),
            )
            .values({name: True for name in (flag, *also)})
            .execution_options(synchronize_session=False)
        )
        claimed = (await session.execute(stmt)).rowcount == 1
        await session.commit()
        await session.refresh(reminder)
        return claimed

    async def _handle_expired_deadline(
        self,
        session: AsyncSession,
        reminder: DeadlineReminder,
        request: LicenseRequest,
        report: SweepReport,
    ) -> None:
        if self.table.is_terminal(request.status):
            await deadline.expire_reminder(session, reminder)
            return

        if not reminder.reminder_sent_overdue and await self._claim(
            session, reminder, "reminder_sent_overdue"
        ):
            # Without an assignee the owner hears about it from the overdue notice below.
            if reminder.assigned_to:
                await self._send_reminder(session, reminder, request, None)
                report.reminders_sent += 1

        if await self._drive_overdue(session, request):
            report.requests_overdue += 1

        await session.refresh(reminder)
        if reminder.status == ReminderStatus.ACTIVE:
            await deadline.expire_reminder(session, reminder)

    async def _send_reminder(
        self,
        session: AsyncSession,
        reminder: DeadlineReminder,
        request: LicenseRequest,
        window: str | None,
    ) -> None:
        recipient = reminder.assigned_to or request.user_id
        due = reminder.deadline_date.strftime("%Y-%m-%d %H:%M UTC")
        if window is None:
            title = "Deadline passed"
            message = (
                f"The {reminder.deadline_type.value} deadline for request "
                f"{request.request_number} passed on {due}"
            )
            priority = NotificationPriority.HIGH
        else:
            title = f"Deadline in {window}"
            message = (
                f"The {reminder.deadline_type.value} deadline for request "
                f"{request.request_number} is due on {due}"
            )
            priority = (
                NotificationPriority.NORMAL if window == "3 days" else NotificationPriority.HIGH
            )

        await self.notifications.notify_user(
            session,
            recipient,
            title=title,
            message=message,
            notification_type=NotificationType.DEADLINE_REMINDER,
            priority=priority,
            entity_type="deadline_reminder",
            entity_id=reminder.id,
            action_url=f"/admin-portal/services/{request.id}",
            data={"request_id": request.id, "deadline_type": reminder.deadline_type.value},
        )

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def _overdue_task_ids(self, session: AsyncSession, now: datetime) -> list[int]:
        stmt = (
            select(TaskAssignment.id)
            .where(
                TaskAssignment.status.in_(TaskStatus.open_statuses()),
                TaskAssignment.deadline.is_not(None),
                TaskAssignment.deadline < now,
            )
            .order_by(TaskAssignment.deadline.asc())
        )
        return list((await session.execute(stmt)).scalars().all())

    async def _process_task(self, session: AsyncSession, task_id: int, report: SweepReport) -> None:
        task = await session.get(TaskAssignment, task_id)
        if task is None or task.status not in TaskStatus.open_statuses():
            return
        await self.tasks.mark_overdue(session, task)
        report.tasks_overdue += 1

        request = await session.get(LicenseRequest, task.request_id, populate_existing=True)
        if request is not None and await self._drive_overdue(session, request):
            report.requests_overdue += 1

    # ------------------------------------------------------------------
    # Shared
    # ------------------------------------------------------------------

    async def _drive_overdue(self, session: AsyncSession, request: LicenseRequest) -> bool:
        """Auto-cancel a request once. Returns True if this call moved it."""
        if self.table.is_terminal(request.status):
            return False
        if await audit.has_reached_status(session, request.id, RequestStatus.OVERDUE):
            return False
        if not self.table.can_transition(request.status, RequestStatus.OVERDUE, None):
            logger.info(
                "Request #%s is '%s'; no automatic overdue move from there",
                request.id,
                request.status.value,
            )
            return False

        request_id = request.id
        try:
            await self.workflow.apply_transition(
                session,
                request_id=request_id,
                license_type=request.license_type,
                from_status=request.status,
                to_status=RequestStatus.OVERDUE,
                actor=SYSTEM,
                comment=AUTO_CANCEL_REASON,
            )
        except InvalidTransitionError:
            # An overlapping pass may have won the guarded write.
            await session.refresh(request)
            if request.status == RequestStatus.OVERDUE:
                logger.info("Request #%s was moved to overdue by another pass", request_id)
                return False
            raise
        await self._notify_overdue(session, request)
        return True

    async def _notify_overdue(self, session: AsyncSession, request: LicenseRequest) -> None:
        fields = dict(
            title="Request overdue",
            message=(
                f"Request {request.request_number} was automatically cancelled "
                f"because its deadline passed"
            ),
            notification_type=NotificationType.REQUEST_OVERDUE,
            priority=NotificationPriority.HIGH,
            entity_type="license_request",
            entity_id=request.id,
        )
        await self.notifications.notify_user(
            session, request.user_id, action_url="/dashboard/licenses", **fields
        )
        await self.notifications.notify_role(
            session, UserRole.ADMIN, action_url="/admin-portal/services", **fields
        )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def get_overdue_statistics(self, session: AsyncSession) -> dict:
        overdue_requests = (
            await session.execute(
                select(func.count(LicenseRequest.id)).where(
                    LicenseRequest.status == RequestStatus.OVERDUE
                )
            )
        ).scalar_one()
        overdue_tasks = (
            await session.execute(
                select(func.count(TaskAssignment.id)).where(
                    TaskAssignment.status == TaskStatus.OVERDUE
                )
            )
        ).scalar_one()
        reminders = await deadline.get_reminder_statistics(session, now=self._clock())
        return {
            "overdue_requests": overdue_requests,
            "overdue_tasks": overdue_tasks,
            "active_reminders": reminders["active"],
            "due_within_3_days": reminders["due_within_3_days"],
        }


_sweep: OverdueSweep | None = None


def get_overdue_sweep() -> OverdueSweep:
    global _sweep  # noqa: PLW0603
    if _sweep is None:
        _sweep = OverdueSweep(get_workflow_service())
    return _sweep


async def run_overdue_sweep(session: AsyncSession) -> SweepReport:
    """Run one sweep pass with the process-wide services."""
    return await get_overdue_sweep().run(session)
