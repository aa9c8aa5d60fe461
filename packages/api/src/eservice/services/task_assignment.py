# This project was developed with assistance from AI tools.
"""Task assignment lifecycle.

A task is created when a request enters ``assigned`` and then moves
pending -> in_progress -> completed | cancelled. The overdue sweep may force
``overdue`` from either open status. Nothing moves back to pending.

Notifications sent from here are best-effort: the task change is committed
first and a failed notification is logged, not raised.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from db import DeadlineReminder, LicenseRequest, TaskAssignment, User
from db.database import utcnow
from db.enums import (
    NotificationPriority,
    NotificationType,
    ReminderStatus,
    TaskPriority,
    TaskStatus,
    TaskType,
    UserRole,
)
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import InvalidTaskTransitionError, NotFoundError
from .notification import NotificationService, get_notification_service

logger = logging.getLogger(__name__)

_TASK_TRANSITIONS = TaskStatus.valid_transitions()
_OPEN = TaskStatus.open_statuses()


def _task_url(task: TaskAssignment) -> str:
    return f"/admin-portal/tasks/{task.id}"


class TaskAssignmentService:
    def __init__(
        self,
        notifications: NotificationService,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.notifications = notifications
        self._clock = clock

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_task(
        self,
        session: AsyncSession,
        *,
        request: LicenseRequest,
        assigned_to: str,
        assigned_by: str | None,
        assigned_role: UserRole | None = None,
        task_type: TaskType = TaskType.INSPECTION,
        priority: TaskPriority = TaskPriority.NORMAL,
        deadline: datetime | None = None,
        appointment_date: datetime | None = None,
        comments: str | None = None,
    ) -> TaskAssignment:
        """Create a pending task against a license request and commit it."""
        task = TaskAssignment(
            request_id=request.id,
            license_type=request.license_type,
            assigned_to=assigned_to,
            assigned_by=assigned_by,
            assigned_role=assigned_role,
            task_type=task_type,
            status=TaskStatus.PENDING,
            priority=priority,
            deadline=deadline,
            appointment_date=appointment_date,
            comments=comments,
        )
        session.add(task)
        await session.commit()
        await session.refresh(task)
        logger.info(
            "Task %s created: request=%s assignee=%s type=%s",
            task.id,
            task.request_id,
            assigned_to,
            task_type.value,
        )
        return task

    async def get_task(self, session: AsyncSession, task_id: int) -> TaskAssignment:
        task = await session.get(TaskAssignment, task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    async def assign_task(self, session: AsyncSession, task_id: int) -> TaskAssignment:
        """Hand the task to its assignee: pending -> in_progress."""
        task = await self.get_task(session, task_id)
        self._check_move(task, TaskStatus.IN_PROGRESS)
        task.status = TaskStatus.IN_PROGRESS
        task.started_at = self._clock()
        await session.commit()
        await session.refresh(task)

        await self._notify_quietly(
            session,
            task,
            task.assigned_to,
            title="Task started",
            message=f"Task #{task.id} for request #{task.request_id} is now in progress",
            notification_type=NotificationType.TASK_ASSIGNED,
            action_url=_task_url(task),
        )
        return task

    async def reassign_task(
        self,
        session: AsyncSession,
        task_id: int,
        *,
        new_assignee: str,
        reassigned_by: str,
        reason: str | None = None,
    ) -> TaskAssignment:
        """Move an open task to another user and tell both of them.

        The parent request's inspector and any active deadline reminder follow
        the task when they pointed at the previous assignee.
        """
        task = await self.get_task(session, task_id)
        if task.status not in _OPEN:
            raise InvalidTaskTransitionError(
                f"Cannot reassign task {task.id} in status '{task.status.value}'"
            )
        if await session.get(User, new_assignee) is None:
            raise NotFoundError(f"User {new_assignee} not found")

        previous = task.assigned_to
        if previous == new_assignee:
            return task

        task.assigned_to = new_assignee
        task.assigned_by = reassigned_by
        if reason:
            task.comments = reason

        request = await session.get(LicenseRequest, task.request_id)
        if request is not None and request.inspector_id == previous:
            request.inspector_id = new_assignee
        await session.execute(
            update(DeadlineReminder)
            .where(
                DeadlineReminder.request_id == task.request_id,
                DeadlineReminder.status == ReminderStatus.ACTIVE,
                DeadlineReminder.assigned_to == previous,
            )
            .values(assigned_to=new_assignee)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        await session.refresh(task)
        logger.info(
            "Task %s reassigned %s -> %s by %s", task.id, previous, new_assignee, reassigned_by
        )

        await self._notify_quietly(
            session,
            task,
            new_assignee,
            title="Task reassigned to you",
            message=f"Task #{task.id} for request #{task.request_id} has been assigned to you",
            notification_type=NotificationType.TASK_REASSIGNED,
            action_url=_task_url(task),
        )
        await self._notify_quietly(
            session,
            task,
            previous,
            title="Task reassigned",
            message=f"Task #{task.id} for request #{task.request_id} has been reassigned",
            notification_type=NotificationType.TASK_REASSIGNED,
        )
        return task

    async def complete_task(
        self,
        session: AsyncSession,
        task_id: int,
        *,
        notes: str | None = None,
    ) -> TaskAssignment:
        """in_progress -> completed; the original assigner is notified."""
        task = await self.get_task(session, task_id)
        self._check_move(task, TaskStatus.COMPLETED)
        task.status = TaskStatus.COMPLETED
        task.completed_at = self._clock()
        task.completion_notes = notes
        await session.commit()
        await session.refresh(task)

        if task.assigned_by:
            await self._notify_quietly(
                session,
                task,
                task.assigned_by,
                title="Task completed",
                message=f"Task #{task.id} for request #{task.request_id} has been completed",
                notification_type=NotificationType.TASK_COMPLETED,
                action_url=_task_url(task),
            )
        return task

    async def cancel_task(
        self,
        session: AsyncSession,
        task_id: int,
        *,
        reason: str | None = None,
    ) -> TaskAssignment:
        task = await self.get_task(session, task_id)
        self._check_move(task, TaskStatus.CANCELLED)
        task.status = TaskStatus.CANCELLED
        if reason:
            task.completion_notes = reason
        await session.commit()
        await session.refresh(task)
        return task

    async def mark_overdue(self, session: AsyncSession, task: TaskAssignment) -> TaskAssignment:
        """Force an open task to overdue. Only the overdue sweep calls this."""
        self._check_move(task, TaskStatus.OVERDUE)
        task.status = TaskStatus.OVERDUE
        await session.commit()
        await session.refresh(task)
        logger.info("Task %s marked overdue (request=%s)", task.id, task.request_id)
        return task

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_tasks_for_user(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        status: TaskStatus | None = None,
    ) -> list[TaskAssignment]:
        stmt = select(TaskAssignment).where(TaskAssignment.assigned_to == user_id)
        if status is not None:
            stmt = stmt.where(TaskAssignment.status == status)
        stmt = stmt.order_by(TaskAssignment.created_at.desc(), TaskAssignment.id.desc())
        return list((await session.execute(stmt)).scalars().all())

    async def get_tasks_by_status(
        self, session: AsyncSession, status: TaskStatus
    ) -> list[TaskAssignment]:
        stmt = (
            select(TaskAssignment)
            .where(TaskAssignment.status == status)
            .order_by(TaskAssignment.created_at.desc(), TaskAssignment.id.desc())
        )
        return list((await session.execute(stmt)).scalars().all())

    async def get_tasks_for_request(
        self, session: AsyncSession, request_id: int
    ) -> list[TaskAssignment]:
        stmt = (
            select(TaskAssignment)
            .where(TaskAssignment.request_id == request_id)
            .order_by(TaskAssignment.created_at.asc(), TaskAssignment.id.asc())
        )
        return list((await session.execute(stmt)).scalars().all())

    async def get_overdue_tasks(self, session: AsyncSession) -> list[TaskAssignment]:
        """Open tasks whose deadline has passed."""
        stmt = (
            select(TaskAssignment)
            .where(
                TaskAssignment.status.in_(_OPEN),
                TaskAssignment.deadline.is_not(None),
                TaskAssignment.deadline < self._clock(),
            )
            .order_by(TaskAssignment.deadline.asc())
        )
        return list((await session.execute(stmt)).scalars().all())

    async def get_upcoming_tasks(
        self,
        session: AsyncSession,
        *,
        days: int = 7,
        user_id: str | None = None,
    ) -> list[TaskAssignment]:
        """Open tasks due within ``days`` from now, soonest first."""
        now = self._clock()
        stmt = select(TaskAssignment).where(
            TaskAssignment.status.in_(_OPEN),
            TaskAssignment.deadline >= now,
            TaskAssignment.deadline <= now + timedelta(days=days),
        )
        if user_id is not None:
            stmt = stmt.where(TaskAssignment.assigned_to == user_id)
        stmt = stmt.order_by(TaskAssignment.deadline.asc())
        return list((await session.execute(stmt)).scalars().all())

    async def get_task_statistics(
        self, session: AsyncSession, *, user_id: str | None = None
    ) -> dict:
        stmt = select(TaskAssignment.status, func.count(TaskAssignment.id)).group_by(
            TaskAssignment.status
        )
        if user_id is not None:
            stmt = stmt.where(TaskAssignment.assigned_to == user_id)
        counts = {status: count for status, count in (await session.execute(stmt)).all()}
        return {
            "total": sum(counts.values()),
            "pending": counts.get(TaskStatus.PENDING, 0),
            "in_progress": counts.get(TaskStatus.IN_PROGRESS, 0),
            "completed": counts.get(TaskStatus.COMPLETED, 0),
            "overdue": counts.get(TaskStatus.OVERDUE, 0),
            "cancelled": counts.get(TaskStatus.CANCELLED, 0),
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_move(task: TaskAssignment, target: TaskStatus) -> None:
        if target not in _TASK_TRANSITIONS[task.status]:
            raise InvalidTaskTransitionError(
                f"Cannot move task {task.id} from '{task.status.value}' to '{target.value}'"
            )

    async def _notify_quietly(
        self, session: AsyncSession, task: TaskAssignment, user_id: str, **fields
    ) -> None:
        """Notify about a committed task change; a failure is logged, not raised."""
        task_id = task.id
        try:
            await self.notifications.notify_user(
                session,
                user_id,
                priority=NotificationPriority.NORMAL,
                entity_type="task_assignment",
                entity_id=task_id,
                **fields,
            )
        except SQLAlchemyError:
            await session.rollback()
            logger.exception("Task %s notification to user=%s failed", task_id, user_id)
            await session.refresh(task)


_service = TaskAssignmentService(get_notification_service())


def get_task_service() -> TaskAssignmentService:
    return _service
