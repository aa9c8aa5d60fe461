# This project was developed with assistance from AI tools.
"""Overdue sweep schemas."""

from pydantic import BaseModel, ConfigDict


class SweepErrorItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: str
    item_id: int
    error: str


class SweepReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    processed_count: int
    errors: list[SweepErrorItem]
    reminders_sent: int
    requests_overdue: int
    tasks_overdue: int


class OverdueStatisticsResponse(BaseModel):
    overdue_requests: int
    overdue_tasks: int
    active_reminders: int
    due_within_3_days: int
