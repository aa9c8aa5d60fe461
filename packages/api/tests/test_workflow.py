# This project was developed with assistance from AI tools.
"""Tests for WorkflowTransitionService against a real SQLite database."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from db import DeadlineReminder, LicenseRequest, Notification, ServiceFlowLog, TaskAssignment
from db.enums import (
    DeadlineType,
    LicenseType,
    NotificationType,
    ReminderStatus,
    RequestStatus,
    TaskStatus,
    TaskType,
    UserRole,
)
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from eservice.services.actor import SYSTEM
from eservice.services.errors import (
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
)
from eservice.services.workflow import NOTIFICATION_RULES, WorkflowTransitionService
from tests.factories import actor, drive_to, make_request

S = RequestStatus

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _count(session, model, *where):
    stmt = select(func.count()).select_from(model)
    if where:
        stmt = stmt.where(*where)
    return (await session.execute(stmt)).scalar_one()


async def _flow_logs(session, request_id):
    stmt = (
        select(ServiceFlowLog)
        .where(ServiceFlowLog.license_request_id == request_id)
        .order_by(ServiceFlowLog.id)
    )
    return list((await session.execute(stmt)).scalars().all())


async def _notifications(session):
    return list(
        (await session.execute(select(Notification).order_by(Notification.id))).scalars().all()
    )


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_submit_moves_draft_to_new_request(session, workflow, users):
    request = await make_request(session, users["applicant"].id)

    result = await workflow.apply_transition(
        session,
        request_id=request.id,
        license_type=LicenseType.NEW,
        to_status=S.NEW_REQUEST,
        actor=actor(users["applicant"]),
        comment="Ready for review",
    )

    assert result.fully_applied
    assert result.from_status == S.DRAFT
    assert result.to_status == S.NEW_REQUEST
    assert result.edge.action == "submit"
    assert result.request.status == S.NEW_REQUEST
    assert result.request.notes == "Ready for review"
    assert result.request.deadline is None


@pytest.mark.asyncio
async def test_full_happy_path_leaves_one_flow_log_per_step(session, workflow, users):
    request = await make_request(session, users["applicant"].id)

    await drive_to(workflow, session, request, users, S.APPROVED)

    assert request.status == S.APPROVED
    assert request.completion_date is not None
    assert request.inspection_date is not None
    logs = await _flow_logs(session, request.id)
    assert [(log.previous_status, log.new_status) for log in logs] == [
        (S.DRAFT, S.NEW_REQUEST),
        (S.NEW_REQUEST, S.ACCEPTED),
        (S.ACCEPTED, S.FORWARDED),
        (S.FORWARDED, S.ASSIGNED),
        (S.ASSIGNED, S.APPOINTMENT),
        (S.APPOINTMENT, S.INSPECTING),
        (S.INSPECTING, S.INSPECTION_DONE),
        (S.INSPECTION_DONE, S.DOCUMENT_EDIT),
        (S.DOCUMENT_EDIT, S.REPORT_APPROVED),
        (S.REPORT_APPROVED, S.APPROVED),
    ]
    assert all(log.changed_by is not None for log in logs)


@pytest.mark.parametrize("license_type", list(LicenseType))
@pytest.mark.asyncio
async def test_every_variant_uses_the_same_engine(session, workflow, users, license_type):
    request = await make_request(session, users["applicant"].id, license_type=license_type)

    result = await workflow.apply_transition(
        session,
        request_id=request.id,
        license_type=license_type,
        to_status=S.NEW_REQUEST,
        actor=actor(users["applicant"]),
    )

    assert result.request.license_type == license_type
    logs = await _flow_logs(session, request.id)
    assert logs[0].license_type == license_type


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_wrong_role_raises_invalid_transition(session, workflow, users):
    request = await make_request(session, users["applicant"].id, status=S.NEW_REQUEST)

    with pytest.raises(InvalidTransitionError):
        await workflow.apply_transition(
            session,
            request_id=request.id,
            license_type=LicenseType.NEW,
            to_status=S.ACCEPTED,
            actor=actor(users["staff"]),
        )

    await session.refresh(request)
    assert request.status == S.NEW_REQUEST
    assert await _count(session, ServiceFlowLog) == 0


@pytest.mark.asyncio
async def test_stale_from_status_is_a_no_op(session, workflow, users):
    """The stored record is untouched when the caller's view is out of date."""
    request = await make_request(session, users["applicant"].id, status=S.ACCEPTED)
    before = request.updated_at

    with pytest.raises(InvalidTransitionError):
        await workflow.apply_transition(
            session,
            request_id=request.id,
            license_type=LicenseType.NEW,
            from_status=S.NEW_REQUEST,
            to_status=S.ACCEPTED,
            actor=actor(users["admin"]),
        )

    await session.refresh(request)
    assert request.status == S.ACCEPTED
    assert request.updated_at == before
    assert await _count(session, ServiceFlowLog) == 0
    assert await _count(session, Notification) == 0


@pytest.mark.asyncio
async def test_unknown_request_raises_not_found(session, workflow, users):
    with pytest.raises(NotFoundError):
        await workflow.apply_transition(
            session,
            request_id=9999,
            license_type=LicenseType.NEW,
            to_status=S.NEW_REQUEST,
            actor=actor(users["applicant"]),
        )


@pytest.mark.asyncio
async def test_license_type_must_match_the_stored_variant(session, workflow, users):
    request = await make_request(session, users["applicant"].id, license_type=LicenseType.RENEWAL)

    with pytest.raises(NotFoundError):
        await workflow.apply_transition(
            session,
            request_id=request.id,
            license_type=LicenseType.NEW,
            to_status=S.NEW_REQUEST,
            actor=actor(users["applicant"]),
        )


@pytest.mark.asyncio
async def test_people_cannot_use_the_automatic_overdue_edge(session, workflow, users):
    request = await make_request(session, users["applicant"].id, status=S.APPOINTMENT)

    with pytest.raises(InvalidTransitionError, match="automatic"):
        await workflow.apply_transition(
            session,
            request_id=request.id,
            license_type=LicenseType.NEW,
            to_status=S.OVERDUE,
            actor=actor(users["admin"]),
        )


@pytest.mark.asyncio
async def test_system_actor_limited_to_automatic_edges(session, workflow, users):
    request = await make_request(session, users["applicant"].id, status=S.NEW_REQUEST)

    with pytest.raises(InvalidTransitionError):
        await workflow.apply_transition(
            session,
            request_id=request.id,
            license_type=LicenseType.NEW,
            to_status=S.ACCEPTED,
            actor=SYSTEM,
        )


@pytest.mark.asyncio
async def test_assign_without_assignee_raises_value_error(session, workflow, users):
    request = await make_request(session, users["applicant"].id, status=S.FORWARDED)

    with pytest.raises(ValueError, match="assigned_to"):
        await workflow.apply_transition(
            session,
            request_id=request.id,
            license_type=LicenseType.NEW,
            to_status=S.ASSIGNED,
            actor=actor(users["head"]),
        )

    await session.refresh(request)
    assert request.status == S.FORWARDED


@pytest.mark.asyncio
async def test_assign_to_unknown_user_raises_not_found(session, workflow, users):
    request = await make_request(session, users["applicant"].id, status=S.FORWARDED)

    with pytest.raises(NotFoundError):
        await workflow.apply_transition(
            session,
            request_id=request.id,
            license_type=LicenseType.NEW,
            to_status=S.ASSIGNED,
            actor=actor(users["head"]),
            assigned_to="ghost",
        )


@pytest.mark.asyncio
async def test_storage_failure_surfaces_as_persistence_error(session, workflow, users):
    request = await make_request(session, users["applicant"].id)

    original_execute = session.execute

    async def fail_on_update(stmt, *args, **kwargs):
        if stmt.is_dml:
            raise OperationalError("UPDATE", {}, Exception("disk I/O error"))
        return await original_execute(stmt, *args, **kwargs)

    with patch.object(session, "execute", side_effect=fail_on_update):
        with pytest.raises(PersistenceError):
            await workflow.apply_transition(
                session,
                request_id=request.id,
                license_type=LicenseType.NEW,
                to_status=S.NEW_REQUEST,
                actor=actor(users["applicant"]),
            )


# ---------------------------------------------------------------------------
# Assignment side effects
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_assign_creates_one_task_and_notifies_assignee(session, workflow, users, clock):
    request = await make_request(session, users["applicant"].id, status=S.FORWARDED)
    staff = users["staff"]

    result = await workflow.apply_transition(
        session,
        request_id=request.id,
        license_type=LicenseType.NEW,
        to_status=S.ASSIGNED,
        actor=actor(users["head"]),
        assigned_to=staff.id,
        comment="Please inspect the site",
    )

    assert result.fully_applied
    assert result.request.inspector_id == staff.id
    assert result.request.assigned_by_id == users["head"].id
    assert result.request.assigned_at == clock.now

    tasks = list((await session.execute(select(TaskAssignment))).scalars().all())
    assert len(tasks) == 1
    task = tasks[0]
    assert task.id == result.task.id
    assert task.status == TaskStatus.PENDING
    assert task.task_type == TaskType.INSPECTION
    assert task.assigned_to == staff.id
    assert task.assigned_by == users["head"].id
    assert task.assigned_role == UserRole.DEDE_STAFF
    assert task.deadline == result.request.deadline

    notes = await _notifications(session)
    assert len(notes) == 1
    assert notes[0].recipient_id == staff.id
    assert notes[0].type == NotificationType.REQUEST_ASSIGNED
    assert notes[0].entity_type == "license_request"
    assert notes[0].entity_id == request.id
    assert notes[0].action_url == f"/admin-portal/services/{request.id}"


@pytest.mark.asyncio
async def test_appointment_sets_deadline_and_reminder(session, workflow, users, clock):
    request = await make_request(session, users["applicant"].id)
    await drive_to(workflow, session, request, users, S.ASSIGNED)
    when = clock.now + timedelta(days=3)

    result = await workflow.apply_transition(
        session,
        request_id=request.id,
        license_type=LicenseType.NEW,
        to_status=S.APPOINTMENT,
        actor=actor(users["staff"]),
        appointment_date=when,
    )

    assert result.request.appointment_date == when
    assert result.request.deadline == clock.now + timedelta(days=7)
    reminder = result.reminder
    assert reminder.status == ReminderStatus.ACTIVE
    assert reminder.deadline_type == DeadlineType.APPOINTMENT
    assert reminder.deadline_date == result.request.deadline
    assert reminder.assigned_to == users["staff"].id


@pytest.mark.asyncio
async def test_entering_a_new_status_cancels_the_previous_reminder(session, workflow, users):
    request = await make_request(session, users["applicant"].id)
    await drive_to(workflow, session, request, users, S.APPOINTMENT)

    await workflow.apply_transition(
        session,
        request_id=request.id,
        license_type=LicenseType.NEW,
        to_status=S.INSPECTING,
        actor=actor(users["staff"]),
    )

    reminders = list((await session.execute(select(DeadlineReminder))).scalars().all())
    assert [r.status for r in reminders] == [ReminderStatus.CANCELLED]
    await session.refresh(request)
    assert request.deadline is None


@pytest.mark.asyncio
async def test_at_most_one_active_reminder_per_request(session, workflow, users):
    request = await make_request(session, users["applicant"].id)
    await drive_to(workflow, session, request, users, S.APPROVED)

    active = await _count(
        session,
        DeadlineReminder,
        DeadlineReminder.request_id == request.id,
        DeadlineReminder.status == ReminderStatus.ACTIVE,
    )
    assert active == 0
    statuses = (
        await session.execute(select(DeadlineReminder.status).order_by(DeadlineReminder.id))
    ).scalars().all()
    # appointment reminder cancelled on inspecting; document review one on report_approved
    assert statuses == [ReminderStatus.CANCELLED, ReminderStatus.CANCELLED]


@pytest.mark.asyncio
async def test_rejection_stores_reason(session, workflow, users):
    request = await make_request(session, users["applicant"].id, status=S.NEW_REQUEST)

    result = await workflow.apply_transition(
        session,
        request_id=request.id,
        license_type=LicenseType.NEW,
        to_status=S.REJECTED,
        actor=actor(users["admin"]),
        comment="Missing site plan",
    )

    assert result.request.rejection_reason == "Missing site plan"
    notes = await _notifications(session)
    assert [(n.recipient_id, n.type) for n in notes] == [
        (users["applicant"].id, NotificationType.REQUEST_REJECTED)
    ]
    assert notes[0].action_url == f"/dashboard/licenses/{request.id}"


# ---------------------------------------------------------------------------
# Notification routing
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_role_targets_store_one_role_addressed_record(session, workflow, users):
    request = await make_request(session, users["applicant"].id, status=S.ACCEPTED)

    await workflow.apply_transition(
        session,
        request_id=request.id,
        license_type=LicenseType.NEW,
        to_status=S.FORWARDED,
        actor=actor(users["admin"]),
    )

    notes = await _notifications(session)
    assert len(notes) == 1
    assert notes[0].recipient_role == UserRole.DEDE_HEAD
    assert notes[0].recipient_id is None
    assert notes[0].type == NotificationType.REQUEST_FORWARDED


def test_notification_rules_cover_expected_statuses():
    assert set(NOTIFICATION_RULES) == {
        S.NEW_REQUEST,
        S.ACCEPTED,
        S.FORWARDED,
        S.ASSIGNED,
        S.APPOINTMENT,
        S.DOCUMENT_EDIT,
        S.APPROVED,
        S.REJECTED,
        S.RETURNED,
    }
    assert NOTIFICATION_RULES[S.NEW_REQUEST].role == UserRole.ADMIN
    assert NOTIFICATION_RULES[S.DOCUMENT_EDIT].role == UserRole.DEDE_STAFF
    assert NOTIFICATION_RULES[S.APPROVED].target == "owner"
    assert S.OVERDUE not in NOTIFICATION_RULES


@pytest.mark.asyncio
async def test_live_push_reaches_connected_assignee(session, workflow, users, manager):
    socket = AsyncMock()
    await manager.connect(users["staff"].id, socket)
    request = await make_request(session, users["applicant"].id, status=S.FORWARDED)

    await workflow.apply_transition(
        session,
        request_id=request.id,
        license_type=LicenseType.NEW,
        to_status=S.ASSIGNED,
        actor=actor(users["head"]),
        assigned_to=users["staff"].id,
    )

    socket.send_json.assert_awaited_once()
    envelope = socket.send_json.await_args.args[0]
    assert envelope["type"] == "notification"
    assert envelope["notification"]["type"] == "request_assigned"
    assert envelope["notification"]["entity_id"] == request.id


# ---------------------------------------------------------------------------
# Side-effect failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_failed_notification_does_not_roll_back_status(session, workflow, users):
    request = await make_request(session, users["applicant"].id, status=S.NEW_REQUEST)

    with patch.object(
        workflow.notifications, "notify_role", AsyncMock(side_effect=RuntimeError("push down"))
    ):
        result = await workflow.apply_transition(
            session,
            request_id=request.id,
            license_type=LicenseType.NEW,
            to_status=S.ACCEPTED,
            actor=actor(users["admin"]),
        )

    assert not result.fully_applied
    assert [f.step for f in result.side_effect_failures] == ["notification"]
    assert "push down" in result.side_effect_failures[0].error
    assert result.request.status == S.ACCEPTED

    stored = await session.get(LicenseRequest, request.id, populate_existing=True)
    assert stored.status == S.ACCEPTED
    assert len(await _flow_logs(session, request.id)) == 1


@pytest.mark.asyncio
async def test_failed_task_creation_keeps_remaining_side_effects(session, workflow, users):
    request = await make_request(session, users["applicant"].id, status=S.FORWARDED)

    with patch.object(
        workflow.tasks, "create_task", AsyncMock(side_effect=RuntimeError("tasks table locked"))
    ):
        result = await workflow.apply_transition(
            session,
            request_id=request.id,
            license_type=LicenseType.NEW,
            to_status=S.ASSIGNED,
            actor=actor(users["head"]),
            assigned_to=users["staff"].id,
        )

    assert [f.step for f in result.side_effect_failures] == ["task"]
    assert result.task is None
    assert result.flow_log is not None
    assert result.notification is not None
    assert result.request.status == S.ASSIGNED
    assert await _count(session, TaskAssignment) == 0


@pytest.mark.asyncio
async def test_failed_flow_log_is_reported(session, workflow, users):
    request = await make_request(session, users["applicant"].id)

    with patch(
        "eservice.services.workflow.audit.write_flow_log",
        AsyncMock(side_effect=RuntimeError("audit store offline")),
    ):
        result = await workflow.apply_transition(
            session,
            request_id=request.id,
            license_type=LicenseType.NEW,
            to_status=S.NEW_REQUEST,
            actor=actor(users["applicant"]),
        )

    assert [f.step for f in result.side_effect_failures] == ["flow_log"]
    assert result.request.status == S.NEW_REQUEST
    assert result.notification is not None


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_stale_status_loses_the_guarded_write(session_factory, workflow, users, session):
    """This session still holds new_request after another writer accepted the request."""
    request = await make_request(session, users["applicant"].id, status=S.NEW_REQUEST)
    request_id = request.id
    async with session_factory() as other:
        await workflow.apply_transition(
            other,
            request_id=request_id,
            license_type=LicenseType.NEW,
            to_status=S.ACCEPTED,
            actor=actor(users["admin"]),
        )

    with pytest.raises(InvalidTransitionError, match=f"#{request_id} left 'new_request'"):
        await workflow.apply_transition(
            session,
            request_id=request_id,
            license_type=LicenseType.NEW,
            to_status=S.REJECTED,
            actor=actor(users["admin"]),
        )

    stored = await session.get(LicenseRequest, request_id, populate_existing=True)
    assert stored.status == S.ACCEPTED
    assert [log.new_status for log in await _flow_logs(session, request_id)] == [S.ACCEPTED]


@pytest.mark.asyncio
async def test_concurrent_transitions_one_wins(session_factory, workflow, users, session):
    """Two writers racing from the same status: exactly one succeeds."""
    request = await make_request(session, users["applicant"].id, status=S.NEW_REQUEST)

    async def attempt(to_status):
        async with session_factory() as s:
            return await workflow.apply_transition(
                s,
                request_id=request.id,
                license_type=LicenseType.NEW,
                from_status=S.NEW_REQUEST,
                to_status=to_status,
                actor=actor(users["admin"]),
            )

    outcomes = await asyncio.gather(
        attempt(S.ACCEPTED), attempt(S.REJECTED), return_exceptions=True
    )

    successes = [o for o in outcomes if not isinstance(o, BaseException)]
    failures = [o for o in outcomes if isinstance(o, BaseException)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], InvalidTransitionError)

    stored = await session.get(LicenseRequest, request.id, populate_existing=True)
    assert stored.status == successes[0].to_status
    logs = await _flow_logs(session, request.id)
    assert len(logs) == 1
    assert logs[0].new_status == successes[0].to_status


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_valid_transitions_for_excludes_automatic_edges(session, workflow, users):
    request = await make_request(session, users["applicant"].id, status=S.APPOINTMENT)

    edges = await workflow.valid_transitions_for(
        session, request.id, LicenseType.NEW, actor(users["staff"])
    )

    assert [(e.to_status, e.action) for e in edges] == [(S.INSPECTING, "start_inspection")]


@pytest.mark.asyncio
async def test_get_history_returns_entries_oldest_first(session, workflow, users):
    request = await make_request(session, users["applicant"].id)
    await drive_to(workflow, session, request, users, S.FORWARDED)

    history = await workflow.get_history(session, request.id)

    assert [h.new_status for h in history] == [S.NEW_REQUEST, S.ACCEPTED, S.FORWARDED]
    assert history[0].previous_status == S.DRAFT


@pytest.mark.asyncio
async def test_get_history_unknown_request(session, workflow):
    with pytest.raises(NotFoundError):
        await workflow.get_history(session, 404)


def test_workflow_service_is_built_from_injected_parts(table, notifications, tasks):
    service = WorkflowTransitionService(table, notifications, tasks)
    assert service.table is table
    assert service.notifications is notifications
    assert service.tasks is tasks
