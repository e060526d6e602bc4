"""Initial schema — facilities, services, staff, appointments, queues, audit.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from __future__ import annotations

from typing import Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, tuple[str, ...], None] = None
depends_on: Union[str, tuple[str, ...], None] = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    # ── Standalone tables (no FKs) ─────────────────────────────────────

    op.create_table(
        "audit_log",
        sa.Column("event_type", sa.String(100), nullable=False, index=True),
        sa.Column("facility_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("appointment_id", postgresql.UUID(as_uuid=True)),
        sa.Column("actor_id", sa.String(100), comment="Employee ID, reception, or 'system'"),
        sa.Column("data", postgresql.JSONB(astext_type=sa.Text())),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "facilities",
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("chairs", sa.Integer(), nullable=False),
        sa.Column("pedicure_chairs", sa.Integer(), comment="Total pedicure chairs; NULL means not configured"),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "services",
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2)),
        sa.Column("requires_chair", sa.Boolean(), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )

    # ── Staff ──────────────────────────────────────────────────────────

    op.create_table(
        "employees",
        sa.Column("facility_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("table_number", sa.Integer()),
        sa.Column("is_approved", sa.Boolean(), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["facility_id"], ["facilities.id"]),
    )

    # ── Appointments ───────────────────────────────────────────────────

    op.create_table(
        "appointments",
        sa.Column("customer_name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(30)),
        sa.Column("service_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("employee_id", postgresql.UUID(as_uuid=True)),
        sa.Column("facility_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("arrival_time", sa.DateTime(timezone=True)),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("chair_number", sa.Integer()),
        sa.Column("price", sa.Numeric(10, 2)),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["service_id"], ["services.id"]),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"]),
        sa.ForeignKeyConstraint(["facility_id"], ["facilities.id"]),
    )
    op.create_index("ix_appointments_employee_window", "appointments", ["employee_id", "start_time", "end_time"])
    op.create_index("ix_appointments_facility_status", "appointments", ["facility_id", "status"])

    # ── Queues ─────────────────────────────────────────────────────────

    op.create_table(
        "employee_queue",
        sa.Column("employee_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("facility_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("current_customer_id", postgresql.UUID(as_uuid=True), unique=True),
        sa.Column("check_in_time", sa.DateTime(timezone=True)),
        sa.Column("last_assignment_time", sa.DateTime(timezone=True)),
        sa.Column("check_out_time", sa.DateTime(timezone=True)),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"]),
        sa.ForeignKeyConstraint(["facility_id"], ["facilities.id"]),
        sa.ForeignKeyConstraint(["current_customer_id"], ["appointments.id"]),
    )

    op.create_table(
        "customer_queue",
        sa.Column("facility_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("service_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("customer_name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(30)),
        sa.Column("status", sa.String(20), nullable=False, index=True),
        sa.Column("queue_position", sa.Integer(), nullable=False),
        sa.Column("appointment_id", postgresql.UUID(as_uuid=True)),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["facility_id"], ["facilities.id"]),
        sa.ForeignKeyConstraint(["service_id"], ["services.id"]),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"]),
        sa.UniqueConstraint("facility_id", "queue_position", name="uq_customer_queue_facility_position"),
    )


def downgrade() -> None:
    op.drop_table("customer_queue")
    op.drop_table("employee_queue")
    op.drop_index("ix_appointments_facility_status", table_name="appointments")
    op.drop_index("ix_appointments_employee_window", table_name="appointments")
    op.drop_table("appointments")
    op.drop_table("employees")
    op.drop_table("services")
    op.drop_table("facilities")
    op.drop_table("audit_log")
