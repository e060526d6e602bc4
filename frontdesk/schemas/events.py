"""SystemEvent schema — the change notification that flows through the front desk.

Every committed mutation of an appointment, employee queue entry or customer
queue entry emits a SystemEvent. Subscribers (audit log, wait queue tracker)
consume these events asynchronously.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types emitted by the system."""

    # Appointments
    APPOINTMENT_CREATED = "appointment.created"
    APPOINTMENT_STARTED = "appointment.started"
    APPOINTMENT_COMPLETED = "appointment.completed"

    # Employee queue
    EMPLOYEE_CHECKED_IN = "employee.checked_in"
    EMPLOYEE_CHECKED_OUT = "employee.checked_out"

    # Customer queue
    QUEUE_JOINED = "queue.joined"
    QUEUE_ASSIGNED = "queue.assigned"
    QUEUE_CANCELLED = "queue.cancelled"

    # System
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_SHUTDOWN = "system.shutdown"


class SystemEvent(BaseModel):
    """Core event that flows through the front desk.

    Immutable once created. Consumed by:
    - audit_on_event → writes to audit_log table
    - WaitQueueTracker → recomputes queue positions for the facility
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Context (optional; system events have no facility)
    facility_id: uuid.UUID | None = None
    appointment_id: uuid.UUID | None = None
    actor_id: str | None = None

    # Flexible payload
    data: dict[str, Any] = Field(default_factory=dict)

    # Metadata
    source_module: str | None = Field(default=None, description="Module that emitted this event")

    model_config = {"frozen": True}
