"""Audit log subscriber — persists every SystemEvent to the audit_log table.

Registered as a global subscriber at startup. Runs in its own session after
the emitting operation's flush, so an audit failure never undoes a booking.
"""

from __future__ import annotations

import logging

from frontdesk.db.engine import async_session_factory
from frontdesk.models.audit import AuditLog
from frontdesk.schemas.events import SystemEvent

logger = logging.getLogger(__name__)


async def audit_on_event(event: SystemEvent) -> None:
    """Write a SystemEvent to the audit_log table.

    Failures are logged and not re-raised; the audit trail must never
    break front-desk operations.
    """
    try:
        async with async_session_factory() as db:
            db.add(AuditLog(
                event_type=event.event_type.value,
                facility_id=event.facility_id,
                appointment_id=event.appointment_id,
                actor_id=event.actor_id,
                data=event.data,
            ))
            await db.commit()
    except Exception:
        logger.exception(
            "Failed to persist audit event: %s (facility=%s)",
            event.event_type.value,
            event.facility_id,
        )
