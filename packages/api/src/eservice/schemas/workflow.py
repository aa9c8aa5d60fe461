# This project was developed with assistance from AI tools.
"""Workflow transition request/response schemas."""

from datetime import datetime

from db.enums import LicenseType, RequestStatus, UserRole
from pydantic import BaseModel, ConfigDict, Field, field_validator


class TransitionRequest(BaseModel):
    """Body of ``POST /api/workflow/{license_type}/{request_id}/transitions``."""

    to_status: RequestStatus
    from_status: RequestStatus | None = Field(
        default=None,
        description="Status the caller believes the request is in; defaults to the stored one.",
    )
    comment: str | None = Field(default=None, max_length=2000)
    assigned_to: str | None = None
    appointment_date: datetime | None = None

    @field_validator("appointment_date")
    @classmethod
    def _aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            raise ValueError("appointment_date must include a timezone")
        return value


class LicenseRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    request_number: str
    user_id: str
    license_type: LicenseType
    status: RequestStatus
    project_name: str
    inspector_id: str | None = None
    assigned_by_id: str | None = None
    assigned_at: datetime | None = None
    appointment_date: datetime | None = None
    inspection_date: datetime | None = None
    completion_date: datetime | None = None
    deadline: datetime | None = None
    rejection_reason: str | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime


class SideEffectFailureItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    step: str
    error: str


class TransitionResponse(BaseModel):
    """Outcome of an applied transition.

    ``side_effect_failures`` lists secondary steps that failed after the
    status change was committed; the status change itself stands.
    """

    request: LicenseRequestResponse
    from_status: RequestStatus
    to_status: RequestStatus
    action: str
    flow_log_id: int | None = None
    task_id: int | None = None
    reminder_id: int | None = None
    notification_id: int | None = None
    fully_applied: bool
    side_effect_failures: list[SideEffectFailureItem] = []


class EdgeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_status: RequestStatus
    to_status: RequestStatus
    required_role: UserRole | None = None
    action: str
    description: str


class ValidTransitionsResponse(BaseModel):
    request_id: int
    status: RequestStatus
    transitions: list[EdgeResponse]


class FlowLogItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    license_request_id: int
    license_type: LicenseType
    previous_status: RequestStatus | None = None
    new_status: RequestStatus
    changed_by: str | None = None
    change_reason: str | None = None
    created_at: datetime


class WorkflowHistoryResponse(BaseModel):
    request_id: int
    history: list[FlowLogItem]


class StatusInfoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: RequestStatus
    description: str
    progress: int
    is_terminal: bool
    next_action: str


class WorkflowStatusesResponse(BaseModel):
    statuses: list[StatusInfoResponse]
    workflow_path: list[RequestStatus]
