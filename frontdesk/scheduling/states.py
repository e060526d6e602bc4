"""State definitions and transition maps for appointments and walk-in queue entries.

Both machines only move forward. Terminal states have no outgoing triggers.
"""

from __future__ import annotations

from frontdesk.errors import InvalidStateTransitionError
from frontdesk.models.enums import AppointmentStatus, QueueEntryStatus

# Transition map: {current_state: {trigger_name: next_state}}
APPOINTMENT_TRANSITIONS: dict[AppointmentStatus, dict[str, AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: {
        "start": AppointmentStatus.IN_PROGRESS,
    },
    AppointmentStatus.IN_PROGRESS: {
        "finish": AppointmentStatus.COMPLETED,
    },
    AppointmentStatus.COMPLETED: {},
}

QUEUE_TRANSITIONS: dict[QueueEntryStatus, dict[str, QueueEntryStatus]] = {
    QueueEntryStatus.WAITING: {
        "assign": QueueEntryStatus.ASSIGNED,
        "cancel": QueueEntryStatus.CANCELLED,
    },
    QueueEntryStatus.ASSIGNED: {},
    QueueEntryStatus.CANCELLED: {},
}


def next_appointment_status(current: str | AppointmentStatus, trigger: str) -> AppointmentStatus:
    """Validate an appointment trigger and return the target status.

    Raises:
        InvalidStateTransitionError: If the trigger is not valid from ``current``.
    """
    state = AppointmentStatus(current)
    valid = APPOINTMENT_TRANSITIONS[state]
    if trigger not in valid:
        msg = f"Invalid transition: {state.value} --{trigger}--> ??? (valid: {list(valid)})"
        raise InvalidStateTransitionError(msg)
    return valid[trigger]


def next_queue_status(current: str | QueueEntryStatus, trigger: str) -> QueueEntryStatus:
    """Validate a queue entry trigger and return the target status."""
    state = QueueEntryStatus(current)
    valid = QUEUE_TRANSITIONS[state]
    if trigger not in valid:
        msg = f"Invalid queue transition: {state.value} --{trigger}--> ??? (valid: {list(valid)})"
        raise InvalidStateTransitionError(msg)
    return valid[trigger]
