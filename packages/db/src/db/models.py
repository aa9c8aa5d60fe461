# This project was developed with assistance from AI tools.
"""
DEDE e-service -- domain models

License requests for energy-production permits and the records the
approval workflow keeps around them: task assignments, deadline
reminders, the status flow log and notifications.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .database import Base, UTCDateTime, utcnow
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


class User(Base):
    """Portal account, keyed by the Keycloak subject id."""

    __tablename__ = "users"

    id = Column(String(255), primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    role = Column(Enum(UserRole, name="user_role", native_enum=False), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id!r}, role={self.role})>"


class LicenseRequest(Base):
    """Workflow fields shared by all four license variants.

    One table holds every variant; ``license_type`` is the discriminator and
    variant payload columns are nullable.
    """

    __tablename__ = "license_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_number = Column(String(50), unique=True, nullable=False)
    user_id = Column(String(255), ForeignKey("users.id"), nullable=False, index=True)
    license_type = Column(
        Enum(LicenseType, name="license_type", native_enum=False),
        nullable=False,
        index=True,
    )
    status = Column(
        Enum(RequestStatus, name="request_status", native_enum=False),
        nullable=False,
        default=RequestStatus.DRAFT,
        index=True,
    )

    # Workflow
    inspector_id = Column(String(255), ForeignKey("users.id"), nullable=True, index=True)
    assigned_by_id = Column(String(255), ForeignKey("users.id"), nullable=True)
    assigned_at = Column(UTCDateTime, nullable=True)
    appointment_date = Column(UTCDateTime, nullable=True)
    inspection_date = Column(UTCDateTime, nullable=True)
    completion_date = Column(UTCDateTime, nullable=True)
    deadline = Column(UTCDateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    # Common payload
    project_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    contact_person = Column(String(255), nullable=True)
    contact_phone = Column(String(50), nullable=True)
    contact_email = Column(String(255), nullable=True)
    license_number = Column(String(100), nullable=True)

    # Extension and reduction
    current_capacity = Column(Float, nullable=True)
    requested_capacity = Column(Float, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    owner = relationship("User", foreign_keys=[user_id])
    inspector = relationship("User", foreign_keys=[inspector_id])

    # Load every variant's columns when querying through the base; async
    # sessions cannot lazy-load them afterwards.
    __mapper_args__ = {"polymorphic_on": license_type, "with_polymorphic": "*"}

    def __repr__(self):
        return (
            f"<LicenseRequest(id={self.id}, type={self.license_type}, "
            f"status={self.status})>"
        )


class NewLicenseRequest(LicenseRequest):
    """First-time permit for a new generation site."""

    project_address = Column(String(500), nullable=True)
    province = Column(String(100), nullable=True)
    energy_type = Column(String(100), nullable=True)
    capacity = Column(Float, nullable=True)
    capacity_unit = Column(String(10), nullable=True, default="MW")
    expected_start_date = Column(UTCDateTime, nullable=True)

    __mapper_args__ = {"polymorphic_identity": LicenseType.NEW}


class RenewalLicenseRequest(LicenseRequest):
    """Renewal of an existing license before it lapses."""

    license_expiry_date = Column(UTCDateTime, nullable=True)

    __mapper_args__ = {"polymorphic_identity": LicenseType.RENEWAL}


class ExtensionLicenseRequest(LicenseRequest):
    """Capacity increase on a licensed site."""

    extension_reason = Column(Text, nullable=True)

    __mapper_args__ = {"polymorphic_identity": LicenseType.EXTENSION}


class ReductionLicenseRequest(LicenseRequest):
    """Capacity decrease on a licensed site."""

    reduction_reason = Column(Text, nullable=True)

    __mapper_args__ = {"polymorphic_identity": LicenseType.REDUCTION}


LICENSE_REQUEST_CLASSES: dict[LicenseType, type[LicenseRequest]] = {
    LicenseType.NEW: NewLicenseRequest,
    LicenseType.RENEWAL: RenewalLicenseRequest,
    LicenseType.EXTENSION: ExtensionLicenseRequest,
    LicenseType.REDUCTION: ReductionLicenseRequest,
}


class TaskAssignment(Base):
    """Work item handed to an inspector, reviewer or consultant."""

    __tablename__ = "task_assignments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("license_requests.id"), nullable=False, index=True)
    license_type = Column(Enum(LicenseType, name="license_type", native_enum=False), nullable=False)
    assigned_to = Column(String(255), ForeignKey("users.id"), nullable=False, index=True)
    assigned_by = Column(String(255), ForeignKey("users.id"), nullable=True)
    assigned_role = Column(Enum(UserRole, name="user_role", native_enum=False), nullable=True)
    task_type = Column(Enum(TaskType, name="task_type", native_enum=False), nullable=False)
    status = Column(
        Enum(TaskStatus, name="task_status", native_enum=False),
        nullable=False,
        default=TaskStatus.PENDING,
        index=True,
    )
    priority = Column(
        Enum(TaskPriority, name="task_priority", native_enum=False),
        nullable=False,
        default=TaskPriority.NORMAL,
    )
    deadline = Column(UTCDateTime, nullable=True)
    appointment_date = Column(UTCDateTime, nullable=True)
    started_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    comments = Column(Text, nullable=True)
    completion_notes = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    request = relationship("LicenseRequest")

    def __repr__(self):
        return f"<TaskAssignment(id={self.id}, request_id={self.request_id}, status={self.status})>"


class DeadlineReminder(Base):
    """Tracked expiry driving 3-day/1-day warnings and auto-overdue."""

    __tablename__ = "deadline_reminders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("license_requests.id"), nullable=False, index=True)
    license_type = Column(Enum(LicenseType, name="license_type", native_enum=False), nullable=False)
    deadline_type = Column(
        Enum(DeadlineType, name="deadline_type", native_enum=False), nullable=False
    )
    deadline_date = Column(UTCDateTime, nullable=False, index=True)
    reminder_sent_3d = Column(Boolean, nullable=False, default=False)
    reminder_sent_1d = Column(Boolean, nullable=False, default=False)
    reminder_sent_overdue = Column(Boolean, nullable=False, default=False)
    assigned_to = Column(String(255), ForeignKey("users.id"), nullable=True)
    status = Column(
        Enum(ReminderStatus, name="reminder_status", native_enum=False),
        nullable=False,
        default=ReminderStatus.ACTIVE,
        index=True,
    )
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return (
            f"<DeadlineReminder(id={self.id}, request_id={self.request_id}, "
            f"status={self.status})>"
        )


class ServiceFlowLog(Base):
    """Append-only status history. ``changed_by`` is NULL for system moves."""

    __tablename__ = "service_flow_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    license_request_id = Column(
        Integer, ForeignKey("license_requests.id"), nullable=False, index=True
    )
    license_type = Column(Enum(LicenseType, name="license_type", native_enum=False), nullable=False)
    previous_status = Column(
        Enum(RequestStatus, name="request_status", native_enum=False), nullable=True
    )
    new_status = Column(
        Enum(RequestStatus, name="request_status", native_enum=False), nullable=False
    )
    changed_by = Column(String(255), ForeignKey("users.id"), nullable=True)
    change_reason = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return (
            f"<ServiceFlowLog(id={self.id}, request={self.license_request_id}, "
            f"{self.previous_status}->{self.new_status})>"
        )


class Notification(Base):
    """Durable notification record; live push is a best-effort extra.

    Recipient is a user id or a role, never both. Both NULL means broadcast.
    """

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(
        Enum(NotificationType, name="notification_type", native_enum=False), nullable=False
    )
    priority = Column(
        Enum(NotificationPriority, name="notification_priority", native_enum=False),
        nullable=False,
        default=NotificationPriority.NORMAL,
    )
    recipient_id = Column(String(255), ForeignKey("users.id"), nullable=True, index=True)
    recipient_role = Column(
        Enum(UserRole, name="user_role", native_enum=False), nullable=True, index=True
    )
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, nullable=True)
    action_url = Column(String(500), nullable=True)
    data = Column(JSON, nullable=True)
    scheduled_at = Column(UTCDateTime, nullable=True, index=True)
    sent_at = Column(UTCDateTime, nullable=True)
    read_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    def __repr__(self):
        recipient = self.recipient_id or self.recipient_role
        return f"<Notification(id={self.id}, type={self.type}, recipient={recipient})>"
