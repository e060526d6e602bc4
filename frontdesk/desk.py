"""Front desk — the call surface the request-handling layer talks to.

Composes the allocator, lifecycle manager and wait queue tracker. Every
method takes the caller's ``AsyncSession``; the caller commits.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from frontdesk.config import settings
from frontdesk.errors import InvalidInputError
from frontdesk.models.appointment import Appointment
from frontdesk.models.customer_queue import CustomerQueueEntry
from frontdesk.models.employee_queue import EmployeeQueueEntry
from frontdesk.models.enums import ResourceKind
from frontdesk.queue.tracker import WaitQueueTracker
from frontdesk.scheduling.allocator import ChairAvailability, ResourcePoolAllocator
from frontdesk.scheduling.lifecycle import (
    AppointmentLifecycleManager,
    BookingOutcome,
    ShiftCheckIn,
    StartResult,
)
from frontdesk.schemas.scheduling import AppointmentRequest, QueuePosition

logger = logging.getLogger(__name__)


class FrontDesk:
    """Facade over the scheduling core."""

    def __init__(
        self,
        tracker: WaitQueueTracker | None = None,
        allocator: ResourcePoolAllocator | None = None,
        auto_assign_on_release: bool | None = None,
    ) -> None:
        self.tracker = tracker or WaitQueueTracker()
        self.lifecycle = AppointmentLifecycleManager(allocator=allocator, tracker=self.tracker)
        self.allocator = self.lifecycle.allocator
        self.auto_assign_on_release = (
            settings.queue.auto_assign_on_release if auto_assign_on_release is None else auto_assign_on_release
        )

    async def check_in(
        self,
        db: AsyncSession,
        appointment_id: uuid.UUID,
        employee_queue_entry_id: uuid.UUID,
    ) -> StartResult:
        return await self.lifecycle.start_appointment(db, appointment_id, employee_queue_entry_id)

    async def check_out(self, db: AsyncSession, employee_queue_entry_id: uuid.UUID) -> EmployeeQueueEntry:
        return await self.lifecycle.check_out_employee(db, employee_queue_entry_id)

    async def create_appointment_or_enqueue(
        self,
        db: AsyncSession,
        request: AppointmentRequest | dict[str, Any],
    ) -> BookingOutcome:
        return await self.lifecycle.create_walk_in_or_booking(db, request)

    async def finish(
        self,
        db: AsyncSession,
        appointment_id: uuid.UUID,
        price: Decimal | int | float | str,
    ) -> Appointment:
        """Complete the appointment; the freed employee takes the next waiting customer."""
        result = await self.lifecycle.finish_appointment(db, appointment_id, price)
        released = result.released_entry
        if self.auto_assign_on_release and released is not None and released.is_active:
            admitted = await self.lifecycle.admit_next_waiting(db, released)
            if admitted is not None:
                logger.info(
                    "Released employee %s took next customer: appointment=%s",
                    released.employee_id,
                    admitted.id,
                )
        return result.appointment

    async def get_availability(
        self,
        db: AsyncSession,
        facility_id: uuid.UUID,
        start_time: datetime,
        minutes: int,
        resource_kind: ResourceKind | str = ResourceKind.EMPLOYEE,
    ) -> list[EmployeeQueueEntry] | ChairAvailability:
        """Free employees for the window, or the pedicure chair pick."""
        try:
            kind = ResourceKind(resource_kind)
        except ValueError as exc:
            raise InvalidInputError(f"Unknown resource kind: {resource_kind!r}") from exc
        if kind == ResourceKind.PEDICURE_CHAIR:
            return await self.allocator.find_available_pedicure_chair(db, facility_id, start_time, minutes)
        return await self.allocator.find_available_employees(db, facility_id, start_time, minutes)

    async def get_queue_position(self, db: AsyncSession, queue_entry_id: uuid.UUID) -> QueuePosition:
        return await self.tracker.compute_position(db, queue_entry_id)

    async def check_in_employee(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        facility_id: uuid.UUID,
    ) -> ShiftCheckIn:
        return await self.lifecycle.check_in_employee(db, employee_id, facility_id)

    async def assign_from_queue(
        self,
        db: AsyncSession,
        queue_entry_id: uuid.UUID,
        employee_queue_entry_id: uuid.UUID,
    ) -> Appointment:
        return await self.lifecycle.assign_from_queue(db, queue_entry_id, employee_queue_entry_id)

    async def cancel_queue_entry(self, db: AsyncSession, queue_entry_id: uuid.UUID) -> CustomerQueueEntry:
        return await self.tracker.cancel(db, queue_entry_id)

    async def available_time_slots(
        self,
        db: AsyncSession,
        facility_id: uuid.UUID,
        day: date,
        minutes: int,
        employee_id: uuid.UUID | None = None,
    ) -> list[datetime]:
        return await self.allocator.available_time_slots(db, facility_id, day, minutes, employee_id)
