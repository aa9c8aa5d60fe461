# This project was developed with assistance from AI tools.
"""License request workflow routes: transitions, history and status info."""

from db import get_db
from db.enums import LicenseType, RequestStatus, UserRole
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..middleware.auth import CurrentUser
from ..schemas.auth import UserContext
from ..schemas.workflow import (
    EdgeResponse,
    FlowLogItem,
    LicenseRequestResponse,
    SideEffectFailureItem,
    StatusInfoResponse,
    TransitionRequest,
    TransitionResponse,
    ValidTransitionsResponse,
    WorkflowHistoryResponse,
    WorkflowStatusesResponse,
)
from ..services.errors import WorkflowError
from ..services.workflow import (
    TransitionResult,
    WorkflowTransitionService,
    get_workflow_service,
)
from ._errors import to_http_exception

router = APIRouter()


def _check_owner(user: UserContext, owner_id: str) -> None:
    """Applicants only see their own requests; staff roles see all."""
    if user.role == UserRole.USER and user.user_id != owner_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found")


def _build_transition_response(result: TransitionResult) -> TransitionResponse:
    return TransitionResponse(
        request=LicenseRequestResponse.model_validate(result.request),
        from_status=result.from_status,
        to_status=result.to_status,
        action=result.edge.action,
        flow_log_id=result.flow_log.id if result.flow_log else None,
        task_id=result.task.id if result.task else None,
        reminder_id=result.reminder.id if result.reminder else None,
        notification_id=result.notification.id if result.notification else None,
        fully_applied=result.fully_applied,
        side_effect_failures=[
            SideEffectFailureItem.model_validate(f) for f in result.side_effect_failures
        ],
    )


@router.get("/statuses", response_model=WorkflowStatusesResponse)
async def list_statuses(
    _user: CurrentUser,
    service: WorkflowTransitionService = Depends(get_workflow_service),
) -> WorkflowStatusesResponse:
    """Description, progress and next action for every status."""
    table = service.table
    return WorkflowStatusesResponse(
        statuses=[StatusInfoResponse.model_validate(table.status_info(s)) for s in RequestStatus],
        workflow_path=list(table.workflow_path()),
    )


@router.post("/{license_type}/{request_id}/transitions", response_model=TransitionResponse)
async def apply_transition(
    license_type: LicenseType,
    request_id: int,
    body: TransitionRequest,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    service: WorkflowTransitionService = Depends(get_workflow_service),
) -> TransitionResponse:
    """Move a request to a new status as the current user.

    409 when the move is not allowed for the caller's role or the request
    has moved on; 422 when a required field (``assigned_to``) is missing.
    """
    try:
        request = await service.get_request(session, request_id, license_type)
        _check_owner(user, request.user_id)
        result = await service.apply_transition(
            session,
            request_id=request_id,
            license_type=license_type,
            to_status=body.to_status,
            actor=user.actor,
            from_status=body.from_status,
            comment=body.comment,
            assigned_to=body.assigned_to,
            appointment_date=body.appointment_date,
        )
    except (WorkflowError, ValueError) as exc:
        raise to_http_exception(exc) from exc
    return _build_transition_response(result)


@router.get(
    "/{license_type}/{request_id}/transitions", response_model=ValidTransitionsResponse
)
async def list_valid_transitions(
    license_type: LicenseType,
    request_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    service: WorkflowTransitionService = Depends(get_workflow_service),
) -> ValidTransitionsResponse:
    """Moves the current user may make from the request's status."""
    try:
        request = await service.get_request(session, request_id, license_type)
        _check_owner(user, request.user_id)
        edges = await service.valid_transitions_for(session, request_id, license_type, user.actor)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return ValidTransitionsResponse(
        request_id=request.id,
        status=request.status,
        transitions=[EdgeResponse.model_validate(e) for e in edges],
    )


@router.get("/requests/{request_id}/history", response_model=WorkflowHistoryResponse)
async def get_history(
    request_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    service: WorkflowTransitionService = Depends(get_workflow_service),
) -> WorkflowHistoryResponse:
    """Flow log of a request, oldest first."""
    try:
        request = await service.get_request(session, request_id)
        _check_owner(user, request.user_id)
        history = await service.get_history(session, request_id)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return WorkflowHistoryResponse(
        request_id=request_id,
        history=[FlowLogItem.model_validate(entry) for entry in history],
    )
