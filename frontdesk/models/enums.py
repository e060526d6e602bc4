"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin for JSON serialization; values are stored as strings.
"""

from __future__ import annotations

from enum import Enum


class AppointmentStatus(str, Enum):
    """Appointment lifecycle states (forward only)."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class QueueEntryStatus(str, Enum):
    """Walk-in customer queue states."""

    WAITING = "waiting"
    ASSIGNED = "assigned"
    CANCELLED = "cancelled"


class ResourceKind(str, Enum):
    """The unit being allocated to a customer for a time window."""

    EMPLOYEE = "employee"
    PEDICURE_CHAIR = "pedicure_chair"


# Statuses that hold a resource; completed appointments never conflict.
ACTIVE_APPOINTMENT_STATUSES: tuple[str, ...] = (
    AppointmentStatus.SCHEDULED.value,
    AppointmentStatus.IN_PROGRESS.value,
)
