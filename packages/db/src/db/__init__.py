# This project was developed with assistance from AI tools.
__version__ = "0.1.0"

from .database import Base, DatabaseService, SessionLocal, get_db, get_db_service
from .enums import (
    DeadlineType,
    LicenseType,
    NotificationPriority,
    NotificationType,
    ReminderStatus,
    RequestStatus,
    TaskPriority,
    TaskStatus,
    TaskType,
    UserRole,
)
from .models import (
    LICENSE_REQUEST_CLASSES,
    DeadlineReminder,
    ExtensionLicenseRequest,
    LicenseRequest,
    NewLicenseRequest,
    Notification,
    ReductionLicenseRequest,
    RenewalLicenseRequest,
    ServiceFlowLog,
    TaskAssignment,
    User,
)

__all__ = [
    "Base",
    "DatabaseService",
    "SessionLocal",
    "get_db",
    "get_db_service",
    "__version__",
    # Enums
    "RequestStatus",
    "UserRole",
    "LicenseType",
    "TaskType",
    "TaskStatus",
    "TaskPriority",
    "DeadlineType",
    "ReminderStatus",
    "NotificationType",
    "NotificationPriority",
    # Models
    "LICENSE_REQUEST_CLASSES",
    "User",
    "LicenseRequest",
    "NewLicenseRequest",
    "RenewalLicenseRequest",
    "ExtensionLicenseRequest",
    "ReductionLicenseRequest",
    "TaskAssignment",
    "DeadlineReminder",
    "ServiceFlowLog",
    "Notification",
]
