"""SQLAlchemy ORM models for the front desk.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from frontdesk.models.appointment import Appointment
from frontdesk.models.audit import AuditLog
from frontdesk.models.base import Base
from frontdesk.models.customer_queue import CustomerQueueEntry
from frontdesk.models.employee import Employee
from frontdesk.models.employee_queue import EmployeeQueueEntry
from frontdesk.models.enums import AppointmentStatus, QueueEntryStatus, ResourceKind
from frontdesk.models.facility import Facility
from frontdesk.models.service import Service

__all__ = [
    # Base
    "Base",
    # Models
    "Facility",
    "Service",
    "Employee",
    "Appointment",
    "EmployeeQueueEntry",
    "CustomerQueueEntry",
    "AuditLog",
    # Enums
    "AppointmentStatus",
    "QueueEntryStatus",
    "ResourceKind",
]
