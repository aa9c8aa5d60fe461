# This project was developed with assistance from AI tools.
"""initial workflow schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

_TS = sa.DateTime(timezone=True)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(255), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"])
    op.create_index(op.f("ix_users_role"), "users", ["role"])

    op.create_table(
        "license_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("request_number", sa.String(50), nullable=False, unique=True),
        sa.Column("user_id", sa.String(255), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("license_type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("inspector_id", sa.String(255), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("assigned_by_id", sa.String(255), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("assigned_at", _TS, nullable=True),
        sa.Column("appointment_date", _TS, nullable=True),
        sa.Column("inspection_date", _TS, nullable=True),
        sa.Column("completion_date", _TS, nullable=True),
        sa.Column("deadline", _TS, nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("project_name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("contact_person", sa.String(255), nullable=True),
        sa.Column("contact_phone", sa.String(50), nullable=True),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("license_number", sa.String(100), nullable=True),
        sa.Column("current_capacity", sa.Float(), nullable=True),
        sa.Column("requested_capacity", sa.Float(), nullable=True),
        # new
        sa.Column("project_address", sa.String(500), nullable=True),
        sa.Column("province", sa.String(100), nullable=True),
        sa.Column("energy_type", sa.String(100), nullable=True),
        sa.Column("capacity", sa.Float(), nullable=True),
        sa.Column("capacity_unit", sa.String(10), nullable=True),
        sa.Column("expected_start_date", _TS, nullable=True),
        # renewal
        sa.Column("license_expiry_date", _TS, nullable=True),
        # extension / reduction
        sa.Column("extension_reason", sa.Text(), nullable=True),
        sa.Column("reduction_reason", sa.Text(), nullable=True),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", _TS, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(op.f("ix_license_requests_user_id"), "license_requests", ["user_id"])
    op.create_index(op.f("ix_license_requests_license_type"), "license_requests", ["license_type"])
    op.create_index(op.f("ix_license_requests_status"), "license_requests", ["status"])
    op.create_index(op.f("ix_license_requests_inspector_id"), "license_requests", ["inspector_id"])

    op.create_table(
        "task_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("request_id", sa.Integer(), sa.ForeignKey("license_requests.id"), nullable=False),
        sa.Column("license_type", sa.String(32), nullable=False),
        sa.Column("assigned_to", sa.String(255), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("assigned_by", sa.String(255), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("assigned_role", sa.String(32), nullable=True),
        sa.Column("task_type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("priority", sa.String(32), nullable=False),
        sa.Column("deadline", _TS, nullable=True),
        sa.Column("appointment_date", _TS, nullable=True),
        sa.Column("started_at", _TS, nullable=True),
        sa.Column("completed_at", _TS, nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", _TS, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(op.f("ix_task_assignments_request_id"), "task_assignments", ["request_id"])
    op.create_index(op.f("ix_task_assignments_assigned_to"), "task_assignments", ["assigned_to"])
    op.create_index(op.f("ix_task_assignments_status"), "task_assignments", ["status"])

    op.create_table(
        "deadline_reminders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("request_id", sa.Integer(), sa.ForeignKey("license_requests.id"), nullable=False),
        sa.Column("license_type", sa.String(32), nullable=False),
        sa.Column("deadline_type", sa.String(32), nullable=False),
        sa.Column("deadline_date", _TS, nullable=False),
        sa.Column("reminder_sent_3d", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reminder_sent_1d", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reminder_sent_overdue", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("assigned_to", sa.String(255), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", _TS, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(op.f("ix_deadline_reminders_request_id"), "deadline_reminders", ["request_id"])
    op.create_index(
        op.f("ix_deadline_reminders_deadline_date"), "deadline_reminders", ["deadline_date"]
    )
    op.create_index(op.f("ix_deadline_reminders_status"), "deadline_reminders", ["status"])

    op.create_table(
        "service_flow_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "license_request_id", sa.Integer(), sa.ForeignKey("license_requests.id"), nullable=False
        ),
        sa.Column("license_type", sa.String(32), nullable=False),
        sa.Column("previous_status", sa.String(32), nullable=True),
        sa.Column("new_status", sa.String(32), nullable=False),
        sa.Column("changed_by", sa.String(255), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("change_reason", sa.Text(), nullable=True),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        op.f("ix_service_flow_logs_license_request_id"), "service_flow_logs", ["license_request_id"]
    )
    op.create_index(op.f("ix_service_flow_logs_created_at"), "service_flow_logs", ["created_at"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("priority", sa.String(32), nullable=False),
        sa.Column("recipient_id", sa.String(255), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("recipient_role", sa.String(32), nullable=True),
        sa.Column("entity_type", sa.String(50), nullable=True),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("action_url", sa.String(500), nullable=True),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("scheduled_at", _TS, nullable=True),
        sa.Column("sent_at", _TS, nullable=True),
        sa.Column("read_at", _TS, nullable=True),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(op.f("ix_notifications_recipient_id"), "notifications", ["recipient_id"])
    op.create_index(op.f("ix_notifications_recipient_role"), "notifications", ["recipient_role"])
    op.create_index(op.f("ix_notifications_scheduled_at"), "notifications", ["scheduled_at"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("service_flow_logs")
    op.drop_table("deadline_reminders")
    op.drop_table("task_assignments")
    op.drop_table("license_requests")
    op.drop_table("users")
