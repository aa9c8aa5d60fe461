# This project was developed with assistance from AI tools.
"""
SQLAdmin configuration for database administration UI

Access the admin panel at: http://localhost:8000/admin

When AUTH_DISABLED=false, requires admin credentials via login form.
When AUTH_DISABLED=true, admin panel is open (dev mode).
"""

from db import (
    DeadlineReminder,
    LicenseRequest,
    Notification,
    ServiceFlowLog,
    TaskAssignment,
    User,
)
from sqladmin import Admin, ModelView
from sqladmin.authentication import AuthenticationBackend
from sqlalchemy import create_engine
from starlette.requests import Request
from starlette.responses import Response

from .core.config import settings

_ASYNC_DRIVERS = ("+asyncpg", "+aiosqlite")


def sync_database_url(url: str) -> str:
    """SQLAdmin requires a sync engine; derive its URL from the async one."""
    for driver in _ASYNC_DRIVERS:
        url = url.replace(driver, "")
    return url


engine = create_engine(sync_database_url(settings.DATABASE_URL), echo=False)


class AdminAuth(AuthenticationBackend):
    """Session-based auth gate for SQLAdmin.

    When AUTH_DISABLED=true, authenticate() always returns True (dev mode).
    Otherwise, requires login with SQLADMIN_USER / SQLADMIN_PASSWORD.
    """

    async def login(self, request: Request) -> bool:
        form = await request.form()
        username = form.get("username")
        password = form.get("password")
        if username == settings.SQLADMIN_USER and password == settings.SQLADMIN_PASSWORD:
            request.session.update({"admin_authenticated": True})
            return True
        return False

    async def logout(self, request: Request) -> bool:
        request.session.clear()
        return True

    async def authenticate(self, request: Request) -> Response | bool:
        if settings.AUTH_DISABLED:
            return True
        return request.session.get("admin_authenticated", False)


class UserAdmin(ModelView, model=User):
    column_list = [User.id, User.name, User.email, User.role, User.is_active, User.created_at]
    column_searchable_list = [User.name, User.email]
    column_sortable_list = [User.name, User.role, User.created_at]
    name = "User"
    name_plural = "Users"
    icon = "fa-solid fa-user"


class LicenseRequestAdmin(ModelView, model=LicenseRequest):
    column_list = [
        LicenseRequest.id,
        LicenseRequest.request_number,
        LicenseRequest.license_type,
        LicenseRequest.status,
        LicenseRequest.project_name,
        LicenseRequest.user_id,
        LicenseRequest.inspector_id,
        LicenseRequest.deadline,
        LicenseRequest.updated_at,
    ]
    column_searchable_list = [LicenseRequest.request_number, LicenseRequest.project_name]
    column_sortable_list = [LicenseRequest.id, LicenseRequest.status, LicenseRequest.updated_at]
    column_default_sort = [(LicenseRequest.updated_at, True)]
    # Status changes go through the workflow API so the flow log stays complete.
    form_excluded_columns = [LicenseRequest.status]
    name = "License Request"
    name_plural = "License Requests"
    icon = "fa-solid fa-file-contract"


class TaskAssignmentAdmin(ModelView, model=TaskAssignment):
    column_list = [
        TaskAssignment.id,
        TaskAssignment.request_id,
        TaskAssignment.assigned_to,
        TaskAssignment.task_type,
        TaskAssignment.status,
        TaskAssignment.priority,
        TaskAssignment.deadline,
    ]
    column_sortable_list = [TaskAssignment.id, TaskAssignment.status, TaskAssignment.deadline]
    column_default_sort = [(TaskAssignment.created_at, True)]
    name = "Task"
    name_plural = "Tasks"
    icon = "fa-solid fa-list-check"


class DeadlineReminderAdmin(ModelView, model=DeadlineReminder):
    column_list = [
        DeadlineReminder.id,
        DeadlineReminder.request_id,
        DeadlineReminder.deadline_type,
        DeadlineReminder.deadline_date,
        DeadlineReminder.status,
        DeadlineReminder.reminder_sent_3d,
        DeadlineReminder.reminder_sent_1d,
        DeadlineReminder.reminder_sent_overdue,
    ]
    column_sortable_list = [DeadlineReminder.id, DeadlineReminder.deadline_date]
    column_default_sort = [(DeadlineReminder.deadline_date, False)]
    name = "Deadline Reminder"
    name_plural = "Deadline Reminders"
    icon = "fa-solid fa-clock"


class ServiceFlowLogAdmin(ModelView, model=ServiceFlowLog):
    column_list = [
        ServiceFlowLog.id,
        ServiceFlowLog.created_at,
        ServiceFlowLog.license_request_id,
        ServiceFlowLog.previous_status,
        ServiceFlowLog.new_status,
        ServiceFlowLog.changed_by,
        ServiceFlowLog.change_reason,
    ]
    column_sortable_list = [ServiceFlowLog.id, ServiceFlowLog.created_at]
    column_default_sort = [(ServiceFlowLog.created_at, True)]
    can_create = False
    can_edit = False
    can_delete = False
    name = "Flow Log"
    name_plural = "Flow Logs"
    icon = "fa-solid fa-shield-alt"


class NotificationAdmin(ModelView, model=Notification):
    column_list = [
        Notification.id,
        Notification.type,
        Notification.title,
        Notification.recipient_id,
        Notification.recipient_role,
        Notification.sent_at,
        Notification.read_at,
    ]
    column_sortable_list = [Notification.id, Notification.created_at]
    column_default_sort = [(Notification.created_at, True)]
    name = "Notification"
    name_plural = "Notifications"
    icon = "fa-solid fa-bell"


def setup_admin(app):
    """Set up SQLAdmin and mount it to the FastAPI app."""
    auth_backend = AdminAuth(
        secret_key=settings.SQLADMIN_SECRET_KEY,
    )
    admin = Admin(app, engine, title="DEDE E-Service Admin", authentication_backend=auth_backend)

    admin.add_view(UserAdmin)
    admin.add_view(LicenseRequestAdmin)
    admin.add_view(TaskAssignmentAdmin)
    admin.add_view(DeadlineReminderAdmin)
    admin.add_view(ServiceFlowLogAdmin)
    admin.add_view(NotificationAdmin)

    return admin
