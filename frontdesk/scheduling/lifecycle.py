"""Appointment lifecycle — booking, walk-ins, check-in, completion and shifts.

State machine per appointment: ``scheduled --start--> in_progress --finish-->
completed``. Pairing an in-progress appointment with an employee queue entry
is a compare-and-set on ``current_customer_id IS NULL``; every multi-record
transition runs inside a savepoint so a failure leaves no partial state.
"""

from __future__ import annotations

import contextlib
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from frontdesk.errors import ConflictError, InvalidInputError, NotFoundError, store_errors
from frontdesk.events import emit
from frontdesk.models.appointment import Appointment
from frontdesk.models.customer_queue import CustomerQueueEntry
from frontdesk.models.employee import Employee
from frontdesk.models.employee_queue import EmployeeQueueEntry
from frontdesk.models.enums import AppointmentStatus, ResourceKind
from frontdesk.models.facility import Facility
from frontdesk.models.service import Service
from frontdesk.queue.tracker import WaitQueueTracker
from frontdesk.scheduling.allocator import ResourcePoolAllocator, resource_allocator
from frontdesk.scheduling.duration import compute_end_time, ensure_instant, resolve_duration, utcnow
from frontdesk.scheduling.states import next_appointment_status, next_queue_status
from frontdesk.schemas.events import EventType, SystemEvent
from frontdesk.schemas.scheduling import AppointmentRequest

logger = logging.getLogger(__name__)


@dataclass
class StartResult:
    """Appointment and employee queue entry after a successful check-in."""

    appointment: Appointment
    employee_queue_entry: EmployeeQueueEntry


@dataclass
class FinishResult:
    appointment: Appointment
    released_entry: EmployeeQueueEntry | None = None


@dataclass
class BookingOutcome:
    """Exactly one of ``appointment`` / ``queue_entry`` is set."""

    appointment: Appointment | None = None
    queue_entry: CustomerQueueEntry | None = None

    @property
    def queued(self) -> bool:
        return self.queue_entry is not None


@dataclass
class ShiftCheckIn:
    employee_queue_entry: EmployeeQueueEntry
    appointment: Appointment | None = None


class AppointmentLifecycleManager:
    """Sole writer of appointment status, employee and chair, and of the pairing."""

    def __init__(
        self,
        allocator: ResourcePoolAllocator | None = None,
        tracker: WaitQueueTracker | None = None,
    ) -> None:
        self.allocator = allocator or resource_allocator
        self.tracker = tracker or WaitQueueTracker()
        self.locks = self.tracker.locks

    # ── Loading ──────────────────────────────────────────────────────

    async def _load_entry(self, db: AsyncSession, entry_id: uuid.UUID) -> EmployeeQueueEntry:
        with store_errors("load_employee_queue_entry"):
            entry = await db.get(EmployeeQueueEntry, entry_id, populate_existing=True)
        if entry is None:
            raise NotFoundError(f"Employee queue entry {entry_id} not found")
        return entry

    async def _load_appointment(self, db: AsyncSession, appointment_id: uuid.UUID) -> Appointment:
        with store_errors("load_appointment"):
            appointment = await db.get(Appointment, appointment_id, populate_existing=True)
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    async def _require(self, db: AsyncSession, model: type[Any], ident: uuid.UUID, label: str) -> Any:
        with store_errors(f"load_{label}"):
            obj = await db.get(model, ident)
        if obj is None:
            raise NotFoundError(f"{label.capitalize()} {ident} not found")
        return obj

    # ── Pairing ──────────────────────────────────────────────────────

    async def _claim(
        self,
        db: AsyncSession,
        entry_id: uuid.UUID,
        appointment_id: uuid.UUID,
        now: datetime,
    ) -> None:
        """Compare-and-set the entry's customer from NULL to ``appointment_id``.

        Raises:
            ConflictError: The entry is busy or checked out.
        """
        result = await db.execute(
            update(EmployeeQueueEntry)
            .where(
                EmployeeQueueEntry.id == entry_id,
                EmployeeQueueEntry.is_active.is_(True),
                EmployeeQueueEntry.current_customer_id.is_(None),
            )
            .values(current_customer_id=appointment_id, last_assignment_time=now)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            raise ConflictError(f"Employee queue entry {entry_id} is already assigned")

    async def _lock_facility_row(self, db: AsyncSession, facility_id: uuid.UUID) -> None:
        """Row lock on the facility, held until the caller commits.

        Serialises chair allocation across processes; the in-process facility
        lock is released before the transaction ends.
        """
        with store_errors("lock_facility"):
            await db.execute(select(Facility.id).where(Facility.id == facility_id).with_for_update())

    async def _check_window(self, db: AsyncSession, appointment: Appointment, now: datetime) -> None:
        """Starting moves the window to ``[now, now + duration)``; it must still fit.

        Raises:
            ConflictError: The employee or the chair is booked in the new window.
        """
        checker = self.allocator.checker
        employee_check = await checker.is_resource_free(
            db,
            appointment.employee_id,
            appointment.facility_id,
            now,
            appointment.duration_minutes,
            ResourceKind.EMPLOYEE,
            exclude_appointment_id=appointment.id,
        )
        if not employee_check.free:
            raise ConflictError(
                f"Starting now overlaps appointment {employee_check.conflicts[0].id} of the same employee"
            )
        if appointment.chair_number is not None:
            chair_check = await checker.is_resource_free(
                db,
                appointment.chair_number,
                appointment.facility_id,
                now,
                appointment.duration_minutes,
                ResourceKind.PEDICURE_CHAIR,
                exclude_appointment_id=appointment.id,
            )
            if not chair_check.free:
                raise ConflictError(f"Pedicure chair {appointment.chair_number} is booked in the new window")

    async def _mark_in_progress(self, db: AsyncSession, appointment: Appointment, now: datetime) -> None:
        appointment.status = next_appointment_status(appointment.status, "start").value
        appointment.start_time = now
        appointment.end_time = compute_end_time(now, appointment.duration_minutes)
        if appointment.arrival_time is None:
            appointment.arrival_time = now
        await db.flush()

    # ── Check-in / start ─────────────────────────────────────────────

    async def start_appointment(
        self,
        db: AsyncSession,
        appointment_id: uuid.UUID,
        employee_queue_entry_id: uuid.UUID,
    ) -> StartResult:
        """Check a customer in: pair the appointment with the employee and start it.

        Raises:
            NotFoundError: Unknown entry or appointment.
            ConflictError: Employee busy, checked out, or not the appointment's employee.
            InvalidStateTransitionError: Appointment already in progress or completed.
        """
        async with self.locks.employee_entry(employee_queue_entry_id):
            entry = await self._load_entry(db, employee_queue_entry_id)
            if entry.current_customer_id is not None:
                raise ConflictError("Employee is already assigned to a customer")
            if not entry.is_active:
                raise ConflictError("Employee is checked out")

            appointment = await self._load_appointment(db, appointment_id)
            next_appointment_status(appointment.status, "start")
            if appointment.employee_id != entry.employee_id:
                raise ConflictError("Appointment is assigned to a different employee")

            now = utcnow()
            await self._check_window(db, appointment, now)
            with store_errors("start_appointment"):
                async with db.begin_nested():
                    await self._claim(db, entry.id, appointment.id, now)
                    await self._mark_in_progress(db, appointment, now)
            entry = await self._load_entry(db, employee_queue_entry_id)

        await emit(SystemEvent(
            event_type=EventType.APPOINTMENT_STARTED,
            facility_id=appointment.facility_id,
            appointment_id=appointment.id,
            actor_id=str(entry.employee_id),
            data={"employee_queue_entry_id": str(entry.id)},
            source_module="scheduling.lifecycle",
        ))
        logger.info(
            "Appointment started: id=%s employee=%s entry=%s",
            appointment.id,
            entry.employee_id,
            entry.id,
        )
        return StartResult(appointment=appointment, employee_queue_entry=entry)

    # ── Completion ───────────────────────────────────────────────────

    async def finish_appointment(
        self,
        db: AsyncSession,
        appointment_id: uuid.UUID,
        price: Decimal | int | float | str,
    ) -> FinishResult:
        """Complete an in-progress appointment, record its price and free the employee.

        Raises:
            NotFoundError: Unknown appointment.
            InvalidStateTransitionError: Appointment not in progress.
            InvalidInputError: Price missing or negative.
        """
        appointment = await self._load_appointment(db, appointment_id)
        target = next_appointment_status(appointment.status, "finish")
        amount = _parse_price(price)

        with store_errors("finish_appointment"):
            async with db.begin_nested():
                appointment.status = target.value
                appointment.price = amount
                await db.flush()

                result = await db.execute(
                    select(EmployeeQueueEntry).where(
                        EmployeeQueueEntry.current_customer_id == appointment.id
                    )
                )
                released = result.scalar_one_or_none()
                if released is not None:
                    released.current_customer_id = None
                    await db.flush()

        await emit(SystemEvent(
            event_type=EventType.APPOINTMENT_COMPLETED,
            facility_id=appointment.facility_id,
            appointment_id=appointment.id,
            data={
                "price": str(amount),
                "released_entry_id": str(released.id) if released else None,
            },
            source_module="scheduling.lifecycle",
        ))
        logger.info("Appointment completed: id=%s price=%s", appointment.id, amount)
        return FinishResult(appointment=appointment, released_entry=released)

    # ── Employee shifts ──────────────────────────────────────────────

    async def check_out_employee(self, db: AsyncSession, employee_queue_entry_id: uuid.UUID) -> EmployeeQueueEntry:
        """End a shift. Forces release of any paired customer (administrative override)."""
        async with self.locks.employee_entry(employee_queue_entry_id):
            entry = await self._load_entry(db, employee_queue_entry_id)
            released = entry.current_customer_id
            entry.is_active = False
            entry.current_customer_id = None
            entry.check_out_time = utcnow()
            with store_errors("check_out_employee"):
                await db.flush()
        self.locks.release_employee_entry(entry.id)

        if released is not None:
            logger.warning("Check-out force-released appointment %s from entry %s", released, entry.id)
        await emit(SystemEvent(
            event_type=EventType.EMPLOYEE_CHECKED_OUT,
            facility_id=entry.facility_id,
            appointment_id=released,
            actor_id=str(entry.employee_id),
            data={"employee_queue_entry_id": str(entry.id)},
            source_module="scheduling.lifecycle",
        ))
        logger.info("Employee checked out: employee=%s entry=%s", entry.employee_id, entry.id)
        return entry

    async def check_in_employee(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        facility_id: uuid.UUID,
    ) -> ShiftCheckIn:
        """Start a shift; the head of the facility queue is admitted straight away.

        Raises:
            NotFoundError: Unknown employee or facility.
            InvalidInputError: Employee not approved.
            ConflictError: Employee already has an active entry.
        """
        employee: Employee = await self._require(db, Employee, employee_id, "employee")
        await self._require(db, Facility, facility_id, "facility")
        if not employee.is_approved:
            raise InvalidInputError(f"Employee {employee_id} is not approved")

        with store_errors("check_in_employee"):
            existing = await db.scalar(
                select(EmployeeQueueEntry.id).where(
                    EmployeeQueueEntry.employee_id == employee_id,
                    EmployeeQueueEntry.is_active.is_(True),
                )
            )
            if existing is not None:
                raise ConflictError(f"Employee {employee_id} is already checked in")

            entry = EmployeeQueueEntry(
                employee_id=employee_id,
                facility_id=facility_id,
                is_active=True,
                check_in_time=utcnow(),
            )
            db.add(entry)
            await db.flush()

        await emit(SystemEvent(
            event_type=EventType.EMPLOYEE_CHECKED_IN,
            facility_id=facility_id,
            actor_id=str(employee_id),
            data={"employee_queue_entry_id": str(entry.id)},
            source_module="scheduling.lifecycle",
        ))
        logger.info("Employee checked in: employee=%s facility=%s", employee_id, facility_id)

        appointment = await self.admit_next_waiting(db, entry)
        return ShiftCheckIn(employee_queue_entry=entry, appointment=appointment)

    # ── Queue admission ──────────────────────────────────────────────

    async def admit_next_waiting(self, db: AsyncSession, entry: EmployeeQueueEntry) -> Appointment | None:
        """Give the free employee the earliest waiting customer, if any can be served now."""
        async with self.locks.facility(entry.facility_id), self.locks.queue(entry.facility_id):
            head = await self.tracker.next_waiting(db, entry.facility_id)
            if head is None:
                return None
            try:
                return await self._admit(db, head, entry)
            except ConflictError as exc:
                logger.warning("Could not admit queue entry %s: %s", head.id, exc)
                return None

    async def assign_from_queue(
        self,
        db: AsyncSession,
        queue_entry_id: uuid.UUID,
        employee_queue_entry_id: uuid.UUID,
    ) -> Appointment:
        """Reception assigns a specific waiting customer to a specific employee."""
        queue_entry = await self.tracker.get_entry(db, queue_entry_id)
        facility_id = queue_entry.facility_id
        async with self.locks.facility(facility_id), self.locks.queue(facility_id):
            with store_errors("assign_from_queue"):
                await db.refresh(queue_entry)
            next_queue_status(queue_entry.status, "assign")
            entry = await self._load_entry(db, employee_queue_entry_id)
            if entry.facility_id != facility_id:
                raise InvalidInputError("Employee and customer are at different facilities")
            return await self._admit(db, queue_entry, entry)

    async def _admit(
        self,
        db: AsyncSession,
        queue_entry: CustomerQueueEntry,
        entry: EmployeeQueueEntry,
    ) -> Appointment:
        """Create an in-progress appointment for a waiting customer and pair it.

        Caller holds the facility and queue locks.
        """
        next_queue_status(queue_entry.status, "assign")
        service: Service = await self._require(db, Service, queue_entry.service_id, "service")
        minutes = await resolve_duration(db, None, service.id)
        now = utcnow()

        async with self.locks.employee_entry(entry.id):
            entry = await self._load_entry(db, entry.id)
            if not entry.is_free:
                raise ConflictError(f"Employee queue entry {entry.id} is not free")
            check = await self.allocator.checker.is_resource_free(
                db, entry.employee_id, entry.facility_id, now, minutes, ResourceKind.EMPLOYEE
            )
            if not check.free:
                raise ConflictError(f"Employee {entry.employee_id} has an overlapping appointment")

            chair_number = None
            if service.requires_chair:
                await self._lock_facility_row(db, entry.facility_id)
                chairs = await self.allocator.find_available_pedicure_chair(db, entry.facility_id, now, minutes)
                if chairs.chair_number is None:
                    raise ConflictError("No pedicure chair is free")
                chair_number = chairs.chair_number

            with store_errors("admit_from_queue"):
                async with db.begin_nested():
                    appointment = Appointment(
                        customer_name=queue_entry.customer_name,
                        email=queue_entry.email,
                        phone=queue_entry.phone,
                        service_id=service.id,
                        employee_id=entry.employee_id,
                        facility_id=entry.facility_id,
                        start_time=now,
                        end_time=compute_end_time(now, minutes),
                        duration_minutes=minutes,
                        arrival_time=queue_entry.created_at,
                        status=AppointmentStatus.IN_PROGRESS.value,
                        chair_number=chair_number,
                    )
                    db.add(appointment)
                    await db.flush()
                    await self._claim(db, entry.id, appointment.id, now)
                    await self.tracker.mark_assigned(db, queue_entry, appointment.id)

        await self._announce_created(appointment)
        return appointment

    # ── Booking / walk-in ────────────────────────────────────────────

    async def create_walk_in_or_booking(
        self,
        db: AsyncSession,
        request: AppointmentRequest | dict[str, Any],
    ) -> BookingOutcome:
        """Create an appointment if a resource is free, otherwise queue the customer.

        Walk-ins start immediately (``in_progress``, paired with the employee);
        bookings are ``scheduled`` for their start time. A lost allocation race
        falls back to queueing, so every valid request yields exactly one of
        an appointment or a queue entry.

        Raises:
            InvalidInputError: Malformed request or unusable duration.
            NotFoundError: Unknown facility, service or employee.
        """
        request = AppointmentRequest.parse(request)
        minutes = await resolve_duration(db, request.duration_minutes, request.service_id)
        service: Service = await self._require(db, Service, request.service_id, "service")
        await self._require(db, Facility, request.facility_id, "facility")
        if request.employee_id is not None:
            await self._require(db, Employee, request.employee_id, "employee")

        immediate = request.walk_in
        start = utcnow() if immediate else ensure_instant(request.start_time)  # type: ignore[arg-type]

        async with self.locks.facility(request.facility_id):
            try:
                appointment = await self._allocate(db, request, service, start, minutes, immediate)
            except ConflictError as exc:
                logger.warning("Allocation lost a race, queueing instead: %s", exc)
                appointment = None

            if appointment is None:
                queue_entry = await self.tracker.enqueue(
                    db, request.facility_id, request.customer, request.service_id
                )
                return BookingOutcome(queue_entry=queue_entry)

        await self._announce_created(appointment)
        return BookingOutcome(appointment=appointment)

    async def _allocate(
        self,
        db: AsyncSession,
        request: AppointmentRequest,
        service: Service,
        start: datetime,
        minutes: int,
        immediate: bool,
    ) -> Appointment | None:
        """Find resources and write the appointment. None when nothing is free.

        A chair taken between selection and write is retried once.
        Caller holds the facility lock.
        """
        attempts = 2 if service.requires_chair else 1
        if service.requires_chair:
            await self._lock_facility_row(db, request.facility_id)
        for attempt in range(1, attempts + 1):
            entry: EmployeeQueueEntry | None = None
            if immediate:
                entry = await self.allocator.pick_employee(
                    db, request.facility_id, start, minutes, request.employee_id
                )
                if entry is None:
                    return None
                employee_id = entry.employee_id
            elif request.employee_id is None:
                picked = await self.allocator.pick_bookable_employee(db, request.facility_id, start, minutes)
                if picked is None:
                    return None
                employee_id = picked
            else:
                check = await self.allocator.checker.is_resource_free(
                    db, request.employee_id, request.facility_id, start, minutes, ResourceKind.EMPLOYEE
                )
                if not check.free:
                    return None
                employee_id = request.employee_id

            chair_number = None
            if service.requires_chair:
                chairs = await self.allocator.find_available_pedicure_chair(
                    db, request.facility_id, start, minutes
                )
                if chairs.chair_number is None:
                    return None
                chair_number = chairs.chair_number

            chair_taken = False
            lock = self.locks.employee_entry(entry.id) if entry is not None else contextlib.nullcontext()
            try:
                async with lock:
                    with store_errors("create_appointment"):
                        async with db.begin_nested():
                            appointment = Appointment(
                                customer_name=request.customer.name,
                                email=request.customer.email,
                                phone=request.customer.phone,
                                service_id=service.id,
                                employee_id=employee_id,
                                facility_id=request.facility_id,
                                start_time=start,
                                end_time=compute_end_time(start, minutes),
                                duration_minutes=minutes,
                                arrival_time=start if immediate else None,
                                status=(
                                    AppointmentStatus.IN_PROGRESS.value
                                    if immediate
                                    else AppointmentStatus.SCHEDULED.value
                                ),
                                chair_number=chair_number,
                            )
                            db.add(appointment)
                            await db.flush()

                            if chair_number is not None:
                                recheck = await self.allocator.checker.is_resource_free(
                                    db,
                                    chair_number,
                                    request.facility_id,
                                    start,
                                    minutes,
                                    ResourceKind.PEDICURE_CHAIR,
                                    exclude_appointment_id=appointment.id,
                                )
                                if not recheck.free:
                                    chair_taken = True
                                    raise ConflictError(f"Pedicure chair {chair_number} was claimed concurrently")

                            if entry is not None:
                                await self._claim(db, entry.id, appointment.id, start)
                return appointment
            except ConflictError:
                if not chair_taken or attempt == attempts:
                    raise
                logger.warning("Chair %s taken at commit time, retrying allocation", chair_number)
        return None

    async def _announce_created(self, appointment: Appointment) -> None:
        await emit(SystemEvent(
            event_type=EventType.APPOINTMENT_CREATED,
            facility_id=appointment.facility_id,
            appointment_id=appointment.id,
            data={
                "status": appointment.status,
                "employee_id": str(appointment.employee_id) if appointment.employee_id else None,
                "chair_number": appointment.chair_number,
                "start_time": appointment.start_time.isoformat(),
            },
            source_module="scheduling.lifecycle",
        ))
        logger.info(
            "Appointment created: id=%s status=%s employee=%s chair=%s",
            appointment.id,
            appointment.status,
            appointment.employee_id,
            appointment.chair_number,
        )


def _parse_price(price: Decimal | int | float | str | None) -> Decimal:
    if price is None or isinstance(price, bool):
        raise InvalidInputError("A price is required to finish an appointment")
    try:
        amount = Decimal(str(price))
    except InvalidOperation as exc:
        raise InvalidInputError(f"Invalid price: {price!r}") from exc
    if not amount.is_finite() or amount < 0:
        raise InvalidInputError(f"Invalid price: {price!r}")
    return amount.quantize(Decimal("0.01"))
