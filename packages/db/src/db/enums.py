# This project was developed with assistance from AI tools.
"""
Domain enums for the energy-license approval workflow.

Shared domain types used by both SQLAlchemy models (db package)
and Pydantic schemas (api package).
"""

import enum


class RequestStatus(str, enum.Enum):
    DRAFT = "draft"
    NEW_REQUEST = "new_request"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ASSIGNED = "assigned"
    APPOINTMENT = "appointment"
    INSPECTING = "inspecting"
    INSPECTION_DONE = "inspection_done"
    DOCUMENT_EDIT = "document_edit"
    OVERDUE = "overdue"
    REPORT_APPROVED = "report_approved"
    APPROVED = "approved"
    REJECTED_FINAL = "rejected_final"
    RETURNED = "returned"
    FORWARDED = "forwarded"

    @classmethod
    def terminal_statuses(cls) -> frozenset["RequestStatus"]:
        """Statuses a request never leaves."""
        return frozenset({cls.APPROVED, cls.REJECTED_FINAL, cls.OVERDUE})


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"
    DEDE_HEAD = "dede_head"
    DEDE_STAFF = "dede_staff"
    DEDE_CONSULT = "dede_consult"
    AUDITOR = "auditor"


class LicenseType(str, enum.Enum):
    NEW = "new"
    RENEWAL = "renewal"
    EXTENSION = "extension"
    REDUCTION = "reduction"


class TaskType(str, enum.Enum):
    REVIEW = "review"
    INSPECTION = "inspection"
    REPORT_REVIEW = "report_review"
    APPROVAL = "approval"


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    OVERDUE = "overdue"

    @classmethod
    def open_statuses(cls) -> frozenset["TaskStatus"]:
        """Statuses in which a task is still owed work."""
        return frozenset({cls.PENDING, cls.IN_PROGRESS})

    @classmethod
    def valid_transitions(cls) -> dict["TaskStatus", frozenset["TaskStatus"]]:
        """Allowed task status moves. Nothing returns to pending."""
        return {
            cls.PENDING: frozenset({cls.IN_PROGRESS, cls.CANCELLED, cls.OVERDUE}),
            cls.IN_PROGRESS: frozenset({cls.COMPLETED, cls.CANCELLED, cls.OVERDUE}),
            cls.COMPLETED: frozenset(),
            cls.CANCELLED: frozenset(),
            cls.OVERDUE: frozenset(),
        }


class TaskPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class DeadlineType(str, enum.Enum):
    APPOINTMENT = "appointment"
    DOCUMENT_REVIEW = "document_review"
    INSPECTION = "inspection"


class ReminderStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class NotificationType(str, enum.Enum):
    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_ACCEPTED = "request_accepted"
    REQUEST_REJECTED = "request_rejected"
    REQUEST_RETURNED = "request_returned"
    REQUEST_FORWARDED = "request_forwarded"
    REQUEST_ASSIGNED = "request_assigned"
    APPOINTMENT_SET = "appointment_set"
    INSPECTION_COMPLETED = "inspection_completed"
    REPORT_SUBMITTED = "report_submitted"
    REPORT_APPROVED = "report_approved"
    REPORT_REJECTED = "report_rejected"
    LICENSE_APPROVED = "license_approved"
    TASK_ASSIGNED = "task_assigned"
    TASK_REASSIGNED = "task_reassigned"
    TASK_COMPLETED = "task_completed"
    DEADLINE_REMINDER = "deadline_reminder"
    REQUEST_OVERDUE = "request_overdue"
    SYSTEM_ANNOUNCEMENT = "system_announcement"


class NotificationPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"
