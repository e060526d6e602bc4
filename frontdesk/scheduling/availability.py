"""Availability checks — is an employee or chair free for a time window?

Overlap is the half-open interval test ``start < other_end AND other_start < end``,
applied in SQL. Only scheduled and in-progress appointments hold a resource.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from frontdesk.errors import InvalidInputError, store_errors
from frontdesk.models.appointment import Appointment
from frontdesk.models.enums import ACTIVE_APPOINTMENT_STATUSES, ResourceKind
from frontdesk.scheduling.duration import compute_end_time, ensure_instant

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityResult:
    """Outcome of a single resource check."""

    free: bool
    conflicts: list[Appointment] = field(default_factory=list)


async def find_overlapping(
    db: AsyncSession,
    facility_id: uuid.UUID,
    start_time: datetime,
    end_time: datetime,
    *criteria: Any,
) -> list[Appointment]:
    """Active appointments at a facility whose window overlaps ``[start_time, end_time)``."""
    stmt = (
        select(Appointment)
        .where(
            Appointment.facility_id == facility_id,
            Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
            Appointment.start_time < end_time,
            Appointment.end_time > start_time,
            *criteria,
        )
        .order_by(Appointment.start_time)
    )
    with store_errors("find_overlapping"):
        result = await db.execute(stmt)
    return list(result.scalars().all())


class AvailabilityChecker:
    """Decides whether a single resource is free for a window."""

    async def is_resource_free(
        self,
        db: AsyncSession,
        resource_id: uuid.UUID | int,
        facility_id: uuid.UUID,
        start_time: datetime,
        minutes: int,
        resource_kind: ResourceKind = ResourceKind.EMPLOYEE,
        exclude_appointment_id: uuid.UUID | None = None,
    ) -> AvailabilityResult:
        """Check one employee (by employee id) or pedicure chair (by chair number).

        Args:
            db: Database session.
            resource_id: Employee UUID, or chair number for pedicure chairs.
            facility_id: Facility the resource belongs to.
            start_time: Requested start.
            minutes: Requested duration; must be positive.
            resource_kind: Which kind of resource ``resource_id`` names.
            exclude_appointment_id: Ignore this appointment (re-validation of
                a freshly written appointment).

        Returns:
            ``free`` plus the conflicting appointments, for diagnostics.

        Raises:
            InvalidInputError: Non-positive duration or wrong resource id type.
        """
        start = ensure_instant(start_time)
        end = compute_end_time(start, minutes)

        if resource_kind == ResourceKind.PEDICURE_CHAIR:
            if not isinstance(resource_id, int) or isinstance(resource_id, bool):
                raise InvalidInputError(f"Chair number must be an integer, got {resource_id!r}")
            criteria: list[Any] = [Appointment.chair_number == resource_id]
        else:
            if not isinstance(resource_id, uuid.UUID):
                raise InvalidInputError(f"Employee id must be a UUID, got {resource_id!r}")
            criteria = [Appointment.employee_id == resource_id]

        if exclude_appointment_id is not None:
            criteria.append(Appointment.id != exclude_appointment_id)

        conflicts = await find_overlapping(db, facility_id, start, end, *criteria)
        if conflicts:
            logger.debug(
                "%s %s busy for %s–%s (%d conflicts)",
                resource_kind.value,
                resource_id,
                start.isoformat(),
                end.isoformat(),
                len(conflicts),
            )
        return AvailabilityResult(free=not conflicts, conflicts=conflicts)


# Module-level singleton
availability_checker = AvailabilityChecker()
