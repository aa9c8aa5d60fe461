# This project was developed with assistance from AI tools.
"""Task assignment request/response schemas."""

from datetime import datetime

from db.enums import LicenseType, TaskPriority, TaskStatus, TaskType, UserRole
from pydantic import BaseModel, ConfigDict, Field


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    request_id: int
    license_type: LicenseType
    assigned_to: str
    assigned_by: str | None = None
    assigned_role: UserRole | None = None
    task_type: TaskType
    status: TaskStatus
    priority: TaskPriority
    deadline: datetime | None = None
    appointment_date: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    comments: str | None = None
    completion_notes: str | None = None
    created_at: datetime
    updated_at: datetime


class TaskListResponse(BaseModel):
    data: list[TaskResponse]


class TaskCompleteRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


class TaskReassignRequest(BaseModel):
    assigned_to: str = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=2000)


class TaskCancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=2000)


class TaskStatisticsResponse(BaseModel):
    total: int
    pending: int
    in_progress: int
    completed: int
    overdue: int
    cancelled: int
