# This project was developed with assistance from AI tools.
"""Workflow transition service.

``apply_transition`` is the single entry point for changing a license
request's status, for people and for the overdue sweep alike:

1. Load the request by id and license type (``NotFoundError``).
2. Check the move against the transition table for the actor's role, and
   check the request still sits in the expected status
   (``InvalidTransitionError``).
3. Write the new status with a conditional UPDATE guarded on the expected
   status. Losing a race to a concurrent writer affects zero rows and is
   reported as ``InvalidTransitionError``. Storage failures surface as
   ``PersistenceError``.
4. Run the side effects: flow log entry, task creation on ``assigned``,
   deadline reminder refresh, notification. The status write is already
   committed; a failing side effect is logged and recorded on the result as
   a ``PartialSideEffectFailure`` and never rolls the status back.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

from db import (
    DeadlineReminder,
    LicenseRequest,
    Notification,
    ServiceFlowLog,
    TaskAssignment,
    User,
)
from db.database import utcnow
from db.enums import (
    LicenseType,
    NotificationPriority,
    NotificationType,
    ReminderStatus,
    RequestStatus,
    TaskType,
    UserRole,
)
from sqlalchemy import inspect, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from . import audit, deadline
from .actor import Actor, HumanActor, actor_id, actor_role
from .errors import (
    InvalidTransitionError,
    NotFoundError,
    PartialSideEffectFailure,
    PersistenceError,
)
from .notification import NotificationService, get_notification_service
from .task_assignment import TaskAssignmentService, get_task_service
from .transition_table import TransitionEdge, TransitionTable, build_transition_table

logger = logging.getLogger(__name__)

S = RequestStatus


@dataclass(frozen=True)
class NotificationRule:
    """Who hears about a request entering a status.

    ``target`` is "role" (uses ``role``), "assignee" (the request's
    inspector) or "owner" (the submitting user).
    """

    target: str
    notification_type: NotificationType
    title: str
    role: UserRole | None = None


NOTIFICATION_RULES: dict[RequestStatus, NotificationRule] = {
    S.NEW_REQUEST: NotificationRule(
        "role", NotificationType.REQUEST_SUBMITTED, "New license request", UserRole.ADMIN
    ),
    S.ACCEPTED: NotificationRule(
        "role", NotificationType.REQUEST_ACCEPTED, "Request accepted", UserRole.ADMIN
    ),
    S.FORWARDED: NotificationRule(
        "role", NotificationType.REQUEST_FORWARDED, "Request forwarded", UserRole.DEDE_HEAD
    ),
    S.ASSIGNED: NotificationRule("assignee", NotificationType.REQUEST_ASSIGNED, "Request assigned"),
    S.APPOINTMENT: NotificationRule(
        "assignee", NotificationType.APPOINTMENT_SET, "Appointment scheduled"
    ),
    S.DOCUMENT_EDIT: NotificationRule(
        "role", NotificationType.REPORT_SUBMITTED, "Audit report submitted", UserRole.DEDE_STAFF
    ),
    S.APPROVED: NotificationRule("owner", NotificationType.LICENSE_APPROVED, "License approved"),
    S.REJECTED: NotificationRule("owner", NotificationType.REQUEST_REJECTED, "Request rejected"),
    S.RETURNED: NotificationRule("owner", NotificationType.REQUEST_RETURNED, "Request returned"),
}


@dataclass
class TransitionResult:
    request: LicenseRequest
    from_status: RequestStatus
    to_status: RequestStatus
    edge: TransitionEdge
    flow_log: ServiceFlowLog | None = None
    task: TaskAssignment | None = None
    reminder: DeadlineReminder | None = None
    notification: Notification | None = None
    side_effect_failures: list[PartialSideEffectFailure] = field(default_factory=list)

    @property
    def fully_applied(self) -> bool:
        return not self.side_effect_failures


class WorkflowTransitionService:
    def __init__(
        self,
        table: TransitionTable,
        notifications: NotificationService,
        tasks: TaskAssignmentService,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.table = table
        self.notifications = notifications
        self.tasks = tasks
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_request(
        self,
        session: AsyncSession,
        request_id: int,
        license_type: LicenseType | None = None,
    ) -> LicenseRequest:
        stmt = select(LicenseRequest).where(LicenseRequest.id == request_id)
        if license_type is not None:
            stmt = stmt.where(LicenseRequest.license_type == license_type)
        try:
            request = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load request {request_id}") from exc
        if request is None:
            kind = f"{license_type.value} " if license_type is not None else ""
            raise NotFoundError(f"License request {kind}#{request_id} not found")
        return request

    async def valid_transitions_for(
        self,
        session: AsyncSession,
        request_id: int,
        license_type: LicenseType,
        actor: HumanActor,
    ) -> list[TransitionEdge]:
        """Moves a person may make from the request's current status.

        Sweep-only edges are left out.
        """
        request = await self.get_request(session, request_id, license_type)
        return [
            edge
            for edge in self.table.valid_transitions(request.status, actor.role)
            if not edge.auto_allowed
        ]

    async def get_history(self, session: AsyncSession, request_id: int) -> list[ServiceFlowLog]:
        await self.get_request(session, request_id)
        return await audit.get_workflow_history(session, request_id)

    # ------------------------------------------------------------------
    # Transition
    # ------------------------------------------------------------------

    async def apply_transition(
        self,
        session: AsyncSession,
        *,
        request_id: int,
        license_type: LicenseType,
        to_status: RequestStatus,
        actor: Actor,
        from_status: RequestStatus | None = None,
        comment: str | None = None,
        assigned_to: str | None = None,
        appointment_date: datetime | None = None,
    ) -> TransitionResult:
        """Move a request to ``to_status``.

        Args:
            session: Database session; committed by this call.
            request_id: License request id.
            license_type: Variant tag the id belongs to.
            to_status: Target status.
            actor: ``HumanActor`` for people, ``SYSTEM`` for the sweep.
            from_status: Status the caller believes the request is in.
                Defaults to the persisted status.
            comment: Stored as the request's notes and in the flow log.
            assigned_to: Required when ``to_status`` is ``assigned``.
            appointment_date: Stored when ``to_status`` is ``appointment``.

        Raises:
            NotFoundError: no such request, or the assignee does not exist.
            InvalidTransitionError: edge/role mismatch or stale status.
            ValueError: ``assigned`` without ``assigned_to``.
            PersistenceError: the status write failed.
        """
        if from_status is not None:
            self._find_edge(from_status, to_status, actor)

        request = await self.get_request(session, request_id, license_type)
        expected = from_status or request.status
        edge = self._find_edge(expected, to_status, actor)

        if request.status != expected:
            raise InvalidTransitionError(
                f"Request #{request_id} is '{request.status.value}', expected '{expected.value}'"
            )

        if to_status == S.ASSIGNED:
            if not assigned_to:
                raise ValueError("assigned_to is required when assigning a request")
            if await session.get(User, assigned_to) is None:
                raise NotFoundError(f"User {assigned_to} not found")

        now = self._clock()
        values = self._status_values(to_status, actor, now, comment, assigned_to, appointment_date)
        await self._write_status(session, request, expected, values)

        logger.info(
            "Request #%s (%s) %s -> %s by %s",
            request.id,
            license_type.value,
            expected.value,
            to_status.value,
            actor_id(actor) or "system",
        )
        result = TransitionResult(
            request=request, from_status=expected, to_status=to_status, edge=edge
        )
        await self._apply_side_effects(session, result, actor, comment)
        return result

    def _find_edge(
        self, from_status: RequestStatus, to_status: RequestStatus, actor: Actor
    ) -> TransitionEdge:
        role = actor_role(actor)
        edge = self.table.find_edge(from_status, to_status, role)
        if edge is None:
            who = role.value if role is not None else "system"
            raise InvalidTransitionError(
                f"Cannot move from '{from_status.value}' to '{to_status.value}' as {who}"
            )
        if edge.auto_allowed and isinstance(actor, HumanActor):
            raise InvalidTransitionError(
                f"'{from_status.value}' -> '{to_status.value}' is reserved for automatic processing"
            )
        return edge

    def _status_values(
        self,
        to_status: RequestStatus,
        actor: Actor,
        now: datetime,
        comment: str | None,
        assigned_to: str | None,
        appointment_date: datetime | None,
    ) -> dict:
        values = {
            "status": to_status,
            "notes": comment,
            "deadline": self.table.default_deadline(to_status, now),
            "updated_at": now,
        }
        if to_status == S.ASSIGNED:
            values["inspector_id"] = assigned_to
            values["assigned_by_id"] = actor_id(actor)
            values["assigned_at"] = now
        elif to_status == S.APPOINTMENT and appointment_date is not None:
            values["appointment_date"] = appointment_date
        elif to_status == S.INSPECTING:
            values["inspection_date"] = now
        elif to_status == S.APPROVED:
            values["completion_date"] = now
        elif to_status in (S.REJECTED, S.REJECTED_FINAL):
            values["rejection_reason"] = comment
        return values

    async def _write_status(
        self,
        session: AsyncSession,
        request: LicenseRequest,
        expected: RequestStatus,
        values: dict,
    ) -> None:
        """Single guarded write of the new status; commits.

        A rollback expires ``request``, so only the copied id is read after one.
        """
        request_id = request.id
        stmt = (
            update(LicenseRequest)
            .where(LicenseRequest.id == request_id, LicenseRequest.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await session.execute(stmt)
            applied = result.rowcount == 1
            if applied:
                await session.commit()
                await session.refresh(request)
            else:
                await session.rollback()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise PersistenceError(f"Failed to update request #{request_id}") from exc

        if not applied:
            raise InvalidTransitionError(
                f"Request #{request_id} left '{expected.value}' before the update applied"
            )

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    async def _apply_side_effects(
        self,
        session: AsyncSession,
        result: TransitionResult,
        actor: Actor,
        comment: str | None,
    ) -> None:
        """Flow log, task, reminder, notification; each isolated from the others."""
        request = result.request
        to_status = result.to_status

        result.flow_log = await self._isolated(
            session,
            result,
            "flow_log",
            lambda: audit.write_flow_log(
                session,
                request_id=request.id,
                license_type=request.license_type,
                previous_status=result.from_status,
                new_status=to_status,
                changed_by=actor_id(actor),
                reason=comment or result.edge.description,
            ),
            commit=True,
        )

        if to_status == S.ASSIGNED:
            result.task = await self._isolated(
                session,
                result,
                "task",
                lambda: self._create_assignment_task(session, request, actor, comment),
            )

        terminal = self.table.is_terminal(to_status)
        close_as = ReminderStatus.EXPIRED if terminal else ReminderStatus.CANCELLED
        result.reminder = await self._isolated(
            session,
            result,
            "deadline_reminder",
            lambda: deadline.refresh_reminder(
                session,
                request,
                deadline_type=self.table.deadline_type(to_status),
                deadline_date=request.deadline,
                assigned_to=request.inspector_id,
                close_as=close_as,
            ),
        )

        if to_status in NOTIFICATION_RULES:
            result.notification = await self._isolated(
                session,
                result,
                "notification",
                lambda: self._notify(session, request, NOTIFICATION_RULES[to_status], comment),
            )

    async def _isolated(
        self,
        session: AsyncSession,
        result: TransitionResult,
        step: str,
        run: Callable[[], Awaitable],
        *,
        commit: bool = False,
    ):
        try:
            value = await run()
            if commit:
                await session.commit()
            return value
        except Exception as exc:
            request_id = inspect(result.request).identity[0]
            await session.rollback()
            logger.exception(
                "Side effect '%s' failed for request #%s after status change to %s",
                step,
                request_id,
                result.to_status.value,
            )
            result.side_effect_failures.append(PartialSideEffectFailure(step=step, error=str(exc)))
            await self._reload(session, result)
            return None

    async def _reload(self, session: AsyncSession, result: TransitionResult) -> None:
        """Re-read objects expired by a side-effect rollback."""
        objs = (result.request, result.flow_log, result.task, result.reminder, result.notification)
        for obj in objs:
            if obj is None:
                continue
            try:
                await session.refresh(obj)
            except SQLAlchemyError:
                logger.warning("Could not reload %r after side-effect failure", obj)

    async def _create_assignment_task(
        self,
        session: AsyncSession,
        request: LicenseRequest,
        actor: Actor,
        comment: str | None,
    ) -> TaskAssignment:
        assignee = await session.get(User, request.inspector_id)
        return await self.tasks.create_task(
            session,
            request=request,
            assigned_to=request.inspector_id,
            assigned_by=actor_id(actor),
            assigned_role=assignee.role if assignee is not None else None,
            task_type=TaskType.INSPECTION,
            deadline=request.deadline,
            comments=comment,
        )

    async def _notify(
        self,
        session: AsyncSession,
        request: LicenseRequest,
        rule: NotificationRule,
        comment: str | None,
    ) -> Notification | None:
        message = (
            f"Request {request.request_number} ({request.license_type.value}): "
            f"{self.table.description(request.status)}"
        )
        if comment:
            message = f"{message}. {comment}"
        fields = dict(
            title=rule.title,
            message=message,
            notification_type=rule.notification_type,
            priority=NotificationPriority.NORMAL,
            entity_type="license_request",
            entity_id=request.id,
            data={"status": request.status.value, "license_type": request.license_type.value},
        )

        if rule.target == "role":
            return await self.notifications.notify_role(
                session, rule.role, action_url=f"/admin-portal/services/{request.id}", **fields
            )
        if rule.target == "assignee":
            if request.inspector_id is None:
                logger.warning("Request #%s has no assignee to notify", request.id)
                return None
            return await self.notifications.notify_user(
                session,
                request.inspector_id,
                action_url=f"/admin-portal/services/{request.id}",
                **fields,
            )
        return await self.notifications.notify_user(
            session, request.user_id, action_url=f"/dashboard/licenses/{request.id}", **fields
        )


_service: WorkflowTransitionService | None = None


def get_workflow_service() -> WorkflowTransitionService:
    """Return the process-wide service, built from settings on first use."""
    global _service  # noqa: PLW0603
    if _service is None:
        table = build_transition_table(
            appointment_days=settings.APPOINTMENT_DEADLINE_DAYS,
            document_review_days=settings.DOCUMENT_REVIEW_DEADLINE_DAYS,
        )
        _service = WorkflowTransitionService(table, get_notification_service(), get_task_service())
    return _service
