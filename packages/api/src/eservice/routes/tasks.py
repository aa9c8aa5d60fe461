# This project was developed with assistance from AI tools.
"""Task assignment routes for inspectors and their supervisors."""

from db import get_db
from db.enums import TaskStatus, UserRole
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..middleware.auth import CurrentUser, require_roles
from ..schemas.auth import UserContext
from ..schemas.task import (
    TaskCancelRequest,
    TaskCompleteRequest,
    TaskListResponse,
    TaskReassignRequest,
    TaskResponse,
    TaskStatisticsResponse,
)
from ..services.errors import WorkflowError
from ..services.task_assignment import TaskAssignmentService, get_task_service
from ._errors import to_http_exception

router = APIRouter()

_SUPERVISORS = (UserRole.ADMIN, UserRole.DEDE_HEAD)


async def _load_own_task(
    session: AsyncSession, service: TaskAssignmentService, task_id: int, user: UserContext
):
    """Fetch a task the user is assigned to; supervisors may act on any task."""
    try:
        task = await service.get_task(session, task_id)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    if task.assigned_to != user.user_id and user.role not in _SUPERVISORS:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your task")
    return task


@router.get("/mine", response_model=TaskListResponse)
async def my_tasks(
    user: CurrentUser,
    filter_status: TaskStatus | None = None,
    session: AsyncSession = Depends(get_db),
    service: TaskAssignmentService = Depends(get_task_service),
) -> TaskListResponse:
    """Tasks assigned to the current user, newest first."""
    tasks = await service.get_tasks_for_user(session, user.user_id, status=filter_status)
    return TaskListResponse(data=[TaskResponse.model_validate(t) for t in tasks])


@router.get("/statistics", response_model=TaskStatisticsResponse)
async def task_statistics(
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    service: TaskAssignmentService = Depends(get_task_service),
) -> TaskStatisticsResponse:
    """Counts by status: the user's own tasks, or all tasks for supervisors."""
    user_id = None if user.role in _SUPERVISORS else user.user_id
    stats = await service.get_task_statistics(session, user_id=user_id)
    return TaskStatisticsResponse(**stats)


@router.get("/upcoming", response_model=TaskListResponse)
async def upcoming_tasks(
    user: CurrentUser,
    days: int = Query(default=7, ge=1, le=90),
    session: AsyncSession = Depends(get_db),
    service: TaskAssignmentService = Depends(get_task_service),
) -> TaskListResponse:
    tasks = await service.get_upcoming_tasks(session, days=days, user_id=user.user_id)
    return TaskListResponse(data=[TaskResponse.model_validate(t) for t in tasks])


@router.get(
    "/by-status/{task_status}",
    response_model=TaskListResponse,
    dependencies=[Depends(require_roles(*_SUPERVISORS))],
)
async def tasks_by_status(
    task_status: TaskStatus,
    session: AsyncSession = Depends(get_db),
    service: TaskAssignmentService = Depends(get_task_service),
) -> TaskListResponse:
    """Every task in one status, for supervisors' queue views."""
    tasks = await service.get_tasks_by_status(session, task_status)
    return TaskListResponse(data=[TaskResponse.model_validate(t) for t in tasks])


@router.post("/{task_id}/start", response_model=TaskResponse)
async def start_task(
    task_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    service: TaskAssignmentService = Depends(get_task_service),
) -> TaskResponse:
    """Begin work on a pending task."""
    await _load_own_task(session, service, task_id, user)
    try:
        task = await service.assign_task(session, task_id)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return TaskResponse.model_validate(task)


@router.post("/{task_id}/complete", response_model=TaskResponse)
async def complete_task(
    task_id: int,
    body: TaskCompleteRequest,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    service: TaskAssignmentService = Depends(get_task_service),
) -> TaskResponse:
    await _load_own_task(session, service, task_id, user)
    try:
        task = await service.complete_task(session, task_id, notes=body.notes)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return TaskResponse.model_validate(task)


@router.post(
    "/{task_id}/reassign",
    response_model=TaskResponse,
    dependencies=[Depends(require_roles(*_SUPERVISORS))],
)
async def reassign_task(
    task_id: int,
    body: TaskReassignRequest,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    service: TaskAssignmentService = Depends(get_task_service),
) -> TaskResponse:
    """Hand an open task to another user."""
    try:
        task = await service.reassign_task(
            session,
            task_id,
            new_assignee=body.assigned_to,
            reassigned_by=user.user_id,
            reason=body.reason,
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return TaskResponse.model_validate(task)


@router.post(
    "/{task_id}/cancel",
    response_model=TaskResponse,
    dependencies=[Depends(require_roles(*_SUPERVISORS))],
)
async def cancel_task(
    task_id: int,
    body: TaskCancelRequest,
    session: AsyncSession = Depends(get_db),
    service: TaskAssignmentService = Depends(get_task_service),
) -> TaskResponse:
    try:
        task = await service.cancel_task(session, task_id, reason=body.reason)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return TaskResponse.model_validate(task)
