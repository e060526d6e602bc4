"""Resource pool allocation — which employees and pedicure chairs are free.

Tie-breaks are deterministic so allocation is reproducible: the "any
employee" pick is the lowest employee id, the chair pick is the lowest free
chair number. Nothing here is cached; every call re-reads current state.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from frontdesk.config import settings
from frontdesk.errors import InvalidInputError, NotFoundError, store_errors
from frontdesk.models.appointment import Appointment
from frontdesk.models.employee import Employee
from frontdesk.models.employee_queue import EmployeeQueueEntry
from frontdesk.models.enums import ResourceKind
from frontdesk.models.facility import Facility
from frontdesk.scheduling.availability import AvailabilityChecker, availability_checker, find_overlapping
from frontdesk.scheduling.duration import compute_end_time, ensure_instant, windows_overlap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChairAvailability:
    """Pedicure chair occupancy for a requested window."""

    chair_number: int | None
    total_chairs: int
    occupied_count: int
    occupied_chairs: tuple[int, ...] = ()
    next_available_time: datetime | None = None  # ETA hint only

    @property
    def is_available(self) -> bool:
        return self.chair_number is not None


def first_free_chair(total_chairs: int, occupied: set[int]) -> int | None:
    """Lowest chair number in ``1..total_chairs`` not in ``occupied``."""
    for chair_number in range(1, total_chairs + 1):
        if chair_number not in occupied:
            return chair_number
    return None


class ResourcePoolAllocator:
    """Finds free resources among the active employees and a facility's chairs."""

    def __init__(self, checker: AvailabilityChecker | None = None) -> None:
        self.checker = checker or availability_checker

    async def _free_entries(self, db: AsyncSession, facility_id: uuid.UUID) -> list[EmployeeQueueEntry]:
        """Active employee queue entries with no customer paired."""
        with store_errors("load_free_employees"):
            result = await db.execute(
                select(EmployeeQueueEntry)
                .where(
                    EmployeeQueueEntry.facility_id == facility_id,
                    EmployeeQueueEntry.is_active.is_(True),
                    EmployeeQueueEntry.current_customer_id.is_(None),
                )
                .order_by(EmployeeQueueEntry.employee_id)
            )
        return list(result.scalars().all())

    async def find_available_employees(
        self,
        db: AsyncSession,
        facility_id: uuid.UUID,
        start_time: datetime,
        minutes: int,
    ) -> list[EmployeeQueueEntry]:
        """Active, unassigned employees with no overlapping appointment.

        Returned in ascending employee id order.
        """
        compute_end_time(start_time, minutes)

        available: list[EmployeeQueueEntry] = []
        for entry in await self._free_entries(db, facility_id):
            check = await self.checker.is_resource_free(
                db, entry.employee_id, facility_id, start_time, minutes, ResourceKind.EMPLOYEE
            )
            if check.free:
                available.append(entry)

        available.sort(key=lambda e: e.employee_id)
        logger.debug("Facility %s: %d employees free at %s", facility_id, len(available), start_time)
        return available

    async def pick_employee(
        self,
        db: AsyncSession,
        facility_id: uuid.UUID,
        start_time: datetime,
        minutes: int,
        employee_id: uuid.UUID | None = None,
    ) -> EmployeeQueueEntry | None:
        """The requested employee if free, or for "any" the free employee with the lowest id."""
        available = await self.find_available_employees(db, facility_id, start_time, minutes)
        if employee_id is None:
            return available[0] if available else None
        return next((e for e in available if e.employee_id == employee_id), None)

    async def pick_bookable_employee(
        self,
        db: AsyncSession,
        facility_id: uuid.UUID,
        start_time: datetime,
        minutes: int,
    ) -> uuid.UUID | None:
        """For a future booking: the approved employee with the lowest id who is free then.

        Shift state is ignored; only overlapping appointments count.
        """
        with store_errors("load_bookable_employees"):
            employee_ids = (
                await db.scalars(
                    select(Employee.id)
                    .where(Employee.facility_id == facility_id, Employee.is_approved.is_(True))
                    .order_by(Employee.id)
                )
            ).all()

        for employee_id in employee_ids:
            check = await self.checker.is_resource_free(
                db, employee_id, facility_id, start_time, minutes, ResourceKind.EMPLOYEE
            )
            if check.free:
                return employee_id
        return None

    async def find_available_pedicure_chair(
        self,
        db: AsyncSession,
        facility_id: uuid.UUID,
        start_time: datetime,
        minutes: int,
    ) -> ChairAvailability:
        """Lowest-numbered pedicure chair free for the window.

        Raises:
            NotFoundError: The facility or its pedicure chair capacity is missing.
            InvalidInputError: Non-positive duration.
        """
        start = ensure_instant(start_time)
        end = compute_end_time(start, minutes)

        with store_errors("load_facility"):
            facility = await db.get(Facility, facility_id)
        if facility is None:
            raise NotFoundError(f"Facility {facility_id} not found")
        if facility.pedicure_chairs is None:
            raise NotFoundError(f"Facility {facility_id} has no pedicure chair capacity configured")

        overlapping = await find_overlapping(
            db, facility_id, start, end, Appointment.chair_number.is_not(None)
        )
        occupied = {a.chair_number for a in overlapping if a.chair_number is not None}
        chair_number = first_free_chair(facility.pedicure_chairs, occupied)

        next_available_time = None
        if chair_number is None and overlapping:
            next_available_time = min(a.end_time for a in overlapping)

        return ChairAvailability(
            chair_number=chair_number,
            total_chairs=facility.pedicure_chairs,
            occupied_count=len(occupied),
            occupied_chairs=tuple(sorted(occupied)),
            next_available_time=next_available_time,
        )

    async def available_time_slots(
        self,
        db: AsyncSession,
        facility_id: uuid.UUID,
        day: date,
        minutes: int,
        employee_id: uuid.UUID | None = None,
        tz: tzinfo = timezone.utc,
    ) -> list[datetime]:
        """Bookable start times on ``day`` within opening hours.

        With ``employee_id`` a slot is kept when that employee is free;
        otherwise when at least one active, unassigned employee is free.
        """
        cfg = settings.scheduling
        if minutes <= 0:
            raise InvalidInputError(f"Duration must be positive, got {minutes}")

        opening = datetime.combine(day, time(cfg.business_open_hour), tzinfo=tz)
        closing = datetime.combine(day, time(0), tzinfo=tz) + timedelta(hours=cfg.business_close_hour)
        step = timedelta(minutes=cfg.slot_minutes)
        length = timedelta(minutes=minutes)

        if employee_id is not None:
            employee_ids = [employee_id]
        else:
            employee_ids = [e.employee_id for e in await self._free_entries(db, facility_id)]
        if not employee_ids:
            return []

        booked = await find_overlapping(
            db, facility_id, opening, closing, Appointment.employee_id.in_(employee_ids)
        )
        busy: dict[uuid.UUID, list[tuple[datetime, datetime]]] = {eid: [] for eid in employee_ids}
        for appt in booked:
            if appt.employee_id in busy:
                busy[appt.employee_id].append((appt.start_time, appt.end_time))

        slots: list[datetime] = []
        slot = opening
        while slot + length <= closing:
            slot_end = slot + length
            if any(
                not any(windows_overlap(slot, slot_end, s, e) for s, e in windows)
                for windows in busy.values()
            ):
                slots.append(slot)
            slot += step
        return slots


# Module-level singleton
resource_allocator = ResourcePoolAllocator()
