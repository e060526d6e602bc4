"""Tests for booking and walk-in creation with queue fallback.

Covers:
- Walk-ins start immediately and pair with the lowest-id free employee
- Future bookings are scheduled without pairing
- No free resource → customer queued (exactly one outcome)
- Pedicure chair allocation, commit-time re-validation and retry
- Request validation
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from frontdesk.errors import InvalidInputError, NotFoundError
from frontdesk.models.appointment import Appointment
from frontdesk.models.customer_queue import CustomerQueueEntry
from frontdesk.models.enums import AppointmentStatus, QueueEntryStatus
from frontdesk.scheduling.allocator import ChairAvailability, ResourcePoolAllocator
from frontdesk.scheduling.lifecycle import AppointmentLifecycleManager
from frontdesk.schemas.events import EventType
from frontdesk.schemas.scheduling import AppointmentRequest, CustomerInfo
from tests.helpers import at, minutes_from_now


def _walk_in(facility, service, **overrides) -> dict:
    data = {
        "facility_id": facility.id,
        "service_id": service.id,
        "customer": {"name": "Hoa", "phone": "+15550199"},
    }
    data.update(overrides)
    return data


def _booking(facility, service, start, **overrides) -> dict:
    return _walk_in(facility, service, start_time=start, **overrides)


async def _count(db, model) -> int:
    return await db.scalar(select(func.count(model.id)))


def _exactly_one(outcome) -> bool:
    return (outcome.appointment is None) != (outcome.queue_entry is None)


# ── Walk-ins ─────────────────────────────────────────────────────────


class TestWalkIn:
    @pytest.mark.asyncio()
    async def test_starts_with_lowest_id_employee(
        self, db, lifecycle, facility, manicure, make_employee, make_entry
    ):
        low, high = sorted([uuid.uuid4(), uuid.uuid4()])
        high_entry = await make_entry(await make_employee(high))
        low_entry = await make_entry(await make_employee(low))

        outcome = await lifecycle.create_walk_in_or_booking(db, _walk_in(facility, manicure))

        assert _exactly_one(outcome)
        appointment = outcome.appointment
        assert appointment.status == AppointmentStatus.IN_PROGRESS.value
        assert appointment.employee_id == low
        assert appointment.duration_minutes == 30
        assert appointment.arrival_time is not None
        assert low_entry.current_customer_id == appointment.id
        assert high_entry.current_customer_id is None

    @pytest.mark.asyncio()
    async def test_explicit_duration_override(self, db, lifecycle, facility, manicure, make_employee, make_entry):
        await make_entry(await make_employee())

        outcome = await lifecycle.create_walk_in_or_booking(
            db, _walk_in(facility, manicure, duration_minutes=50)
        )

        assert outcome.appointment.duration_minutes == 50
        assert (outcome.appointment.end_time - outcome.appointment.start_time).total_seconds() == 50 * 60

    @pytest.mark.asyncio()
    async def test_no_free_employee_queues(self, db, lifecycle, tracker, facility, manicure):
        """Three already waiting, nobody free → fourth in line, 45 minutes."""
        for n in range(3):
            await tracker.enqueue(db, facility.id, CustomerInfo(name=f"W{n}", phone=f"+1555020{n}"), manicure.id)

        outcome = await lifecycle.create_walk_in_or_booking(db, _walk_in(facility, manicure))

        assert _exactly_one(outcome)
        assert outcome.queued
        assert outcome.queue_entry.status == QueueEntryStatus.WAITING.value
        position = await tracker.compute_position(db, outcome.queue_entry.id)
        assert (position.people_ahead, position.position) == (3, 4)
        assert tracker.estimate_wait(position.people_ahead) == 45
        assert await _count(db, Appointment) == 0

    @pytest.mark.asyncio()
    async def test_busy_employee_queues(
        self, db, lifecycle, facility, manicure, make_employee, make_entry, make_appointment
    ):
        employee = await make_employee()
        entry = await make_entry(employee)
        current = await make_appointment(employee, start=minutes_from_now(-10))
        await lifecycle.start_appointment(db, current.id, entry.id)

        outcome = await lifecycle.create_walk_in_or_booking(db, _walk_in(facility, manicure))

        assert outcome.queued
        assert await _count(db, CustomerQueueEntry) == 1

    @pytest.mark.asyncio()
    async def test_requested_employee_not_free_queues(
        self, db, lifecycle, facility, manicure, make_employee, make_entry
    ):
        await make_entry(await make_employee())
        absent = await make_employee()

        outcome = await lifecycle.create_walk_in_or_booking(
            db, _walk_in(facility, manicure, employee_id=absent.id)
        )

        assert outcome.queued

    @pytest.mark.asyncio()
    async def test_emits_created(self, db, lifecycle, facility, manicure, make_employee, make_entry):
        await make_entry(await make_employee())

        with patch("frontdesk.scheduling.lifecycle.emit", new_callable=AsyncMock) as mock_emit:
            outcome = await lifecycle.create_walk_in_or_booking(db, _walk_in(facility, manicure))

        event = mock_emit.call_args.args[0]
        assert event.event_type == EventType.APPOINTMENT_CREATED
        assert event.appointment_id == outcome.appointment.id
        assert event.data["status"] == AppointmentStatus.IN_PROGRESS.value


# ── Bookings ─────────────────────────────────────────────────────────


class TestBooking:
    @pytest.mark.asyncio()
    async def test_scheduled_for_any_employee(self, db, lifecycle, facility, manicure, make_employee):
        low, high = sorted([uuid.uuid4(), uuid.uuid4()])
        await make_employee(high)
        await make_employee(low)

        outcome = await lifecycle.create_walk_in_or_booking(
            db, _booking(facility, manicure, at(14), employee_id="any")
        )

        appointment = outcome.appointment
        assert appointment.status == AppointmentStatus.SCHEDULED.value
        assert appointment.employee_id == low
        assert appointment.start_time == at(14)
        assert appointment.end_time == at(14, 30)
        assert appointment.arrival_time is None

    @pytest.mark.asyncio()
    async def test_booking_does_not_pair(self, db, lifecycle, facility, manicure, make_employee, make_entry):
        employee = await make_employee()
        entry = await make_entry(employee)

        outcome = await lifecycle.create_walk_in_or_booking(
            db, _booking(facility, manicure, at(14), employee_id=employee.id)
        )

        assert outcome.appointment.employee_id == employee.id
        assert entry.current_customer_id is None

    @pytest.mark.asyncio()
    async def test_overlapping_booking_queued(self, db, lifecycle, facility, manicure, make_employee):
        employee = await make_employee()
        await lifecycle.create_walk_in_or_booking(db, _booking(facility, manicure, at(14), employee_id=employee.id))

        outcome = await lifecycle.create_walk_in_or_booking(
            db, _booking(facility, manicure, at(14, 15), employee_id=employee.id)
        )

        assert outcome.queued

    @pytest.mark.asyncio()
    async def test_back_to_back_bookings(self, db, lifecycle, facility, manicure, make_employee):
        employee = await make_employee()
        first = await lifecycle.create_walk_in_or_booking(
            db, _booking(facility, manicure, at(14), employee_id=employee.id)
        )
        second = await lifecycle.create_walk_in_or_booking(
            db, _booking(facility, manicure, at(14, 30), employee_id=employee.id)
        )

        assert first.appointment is not None
        assert second.appointment is not None

    @pytest.mark.asyncio()
    async def test_iso_string_start(self, db, lifecycle, facility, manicure, make_employee):
        await make_employee()

        outcome = await lifecycle.create_walk_in_or_booking(
            db, _booking(facility, manicure, "2031-03-14T15:00:00+00:00")
        )

        assert outcome.appointment.start_time == at(15)


# ── Pedicure chairs ──────────────────────────────────────────────────


class TestPedicureWalkIn:
    @pytest.mark.asyncio()
    async def test_chairs_assigned_lowest_first_then_queue(
        self, db, lifecycle, facility, pedicure, make_employee, make_entry
    ):
        for _ in range(3):
            await make_entry(await make_employee())

        outcomes = [
            await lifecycle.create_walk_in_or_booking(db, _walk_in(facility, pedicure))
            for _ in range(3)
        ]

        assert [o.appointment.chair_number for o in outcomes[:2]] == [1, 2]
        assert outcomes[2].queued
        assert all(_exactly_one(o) for o in outcomes)

    @pytest.mark.asyncio()
    async def test_stale_chair_retried(
        self, db, tracker, facility, pedicure, make_employee, make_entry, make_appointment, monkeypatch
    ):
        """Chair 1 is taken but selection reports it free once; re-validation catches it."""
        allocator = ResourcePoolAllocator()
        lifecycle = AppointmentLifecycleManager(allocator=allocator, tracker=tracker)
        await make_appointment(
            await make_employee(), start=minutes_from_now(-5), minutes=45,
            status=AppointmentStatus.IN_PROGRESS, chair_number=1, service=pedicure,
        )
        await make_entry(await make_employee())

        real = allocator.find_available_pedicure_chair
        calls = 0

        async def stale_then_real(*args, **kwargs):
            nonlocal calls
            calls += 1
            if calls == 1:
                return ChairAvailability(chair_number=1, total_chairs=2, occupied_count=0)
            return await real(*args, **kwargs)

        monkeypatch.setattr(allocator, "find_available_pedicure_chair", stale_then_real)

        outcome = await lifecycle.create_walk_in_or_booking(db, _walk_in(facility, pedicure))

        assert calls == 2
        assert outcome.appointment.chair_number == 2
        assert await _count(db, Appointment) == 2

    @pytest.mark.asyncio()
    async def test_chair_lost_twice_falls_back_to_queue(
        self, db, tracker, facility, pedicure, make_employee, make_entry, make_appointment, monkeypatch
    ):
        allocator = ResourcePoolAllocator()
        lifecycle = AppointmentLifecycleManager(allocator=allocator, tracker=tracker)
        await make_appointment(
            await make_employee(), start=minutes_from_now(-5), minutes=45,
            status=AppointmentStatus.IN_PROGRESS, chair_number=1, service=pedicure,
        )
        entry = await make_entry(await make_employee())

        monkeypatch.setattr(
            allocator,
            "find_available_pedicure_chair",
            AsyncMock(return_value=ChairAvailability(chair_number=1, total_chairs=2, occupied_count=0)),
        )

        outcome = await lifecycle.create_walk_in_or_booking(db, _walk_in(facility, pedicure))

        assert _exactly_one(outcome)
        assert outcome.queued
        assert await _count(db, Appointment) == 1
        await db.refresh(entry)
        assert entry.current_customer_id is None

    @pytest.mark.asyncio()
    async def test_facility_without_chairs(self, db, lifecycle, pedicure, make_employee, make_entry, facility):
        facility.pedicure_chairs = None
        await db.flush()
        await make_entry(await make_employee())

        with pytest.raises(NotFoundError):
            await lifecycle.create_walk_in_or_booking(db, _walk_in(facility, pedicure))


# ── Validation ───────────────────────────────────────────────────────


class TestRequestValidation:
    @pytest.mark.asyncio()
    async def test_missing_customer(self, db, lifecycle, facility, manicure):
        data = _walk_in(facility, manicure)
        del data["customer"]
        with pytest.raises(InvalidInputError):
            await lifecycle.create_walk_in_or_booking(db, data)

    @pytest.mark.asyncio()
    async def test_walk_in_needs_exactly_one_contact(self, db, lifecycle, facility, manicure):
        both = {"name": "Hoa", "phone": "+15550199", "email": "hoa@example.com"}
        with pytest.raises(InvalidInputError):
            await lifecycle.create_walk_in_or_booking(db, _walk_in(facility, manicure, customer=both))
        with pytest.raises(InvalidInputError):
            await lifecycle.create_walk_in_or_booking(db, _walk_in(facility, manicure, customer={"name": "Hoa"}))

    @pytest.mark.asyncio()
    async def test_unknown_service(self, db, lifecycle, facility, manicure):
        with pytest.raises(NotFoundError):
            await lifecycle.create_walk_in_or_booking(db, _walk_in(facility, manicure, service_id=uuid.uuid4()))

    @pytest.mark.asyncio()
    async def test_unknown_facility(self, db, lifecycle, facility, manicure):
        with pytest.raises(NotFoundError):
            await lifecycle.create_walk_in_or_booking(db, _walk_in(facility, manicure, facility_id=uuid.uuid4()))

    @pytest.mark.asyncio()
    async def test_unknown_employee(self, db, lifecycle, facility, manicure):
        with pytest.raises(NotFoundError):
            await lifecycle.create_walk_in_or_booking(db, _walk_in(facility, manicure, employee_id=uuid.uuid4()))

    @pytest.mark.asyncio()
    async def test_nothing_written_on_invalid_request(self, db, lifecycle, facility, manicure):
        with pytest.raises(InvalidInputError):
            await lifecycle.create_walk_in_or_booking(db, _walk_in(facility, manicure, customer={"name": ""}))
        assert await _count(db, Appointment) == 0
        assert await _count(db, CustomerQueueEntry) == 0


class TestAppointmentRequest:
    def test_no_start_means_walk_in(self):
        request = AppointmentRequest.parse({
            "facility_id": uuid.uuid4(),
            "service_id": uuid.uuid4(),
            "customer": {"name": "Hoa", "email": "hoa@example.com"},
        })
        assert request.walk_in

    def test_any_employee(self):
        request = AppointmentRequest.parse({
            "facility_id": uuid.uuid4(),
            "service_id": uuid.uuid4(),
            "customer": {"name": "Hoa", "email": "hoa@example.com"},
            "employee_id": "Any",
        })
        assert request.employee_id is None

    def test_booking_may_carry_both_contacts(self):
        request = AppointmentRequest.parse({
            "facility_id": uuid.uuid4(),
            "service_id": uuid.uuid4(),
            "customer": {"name": "Hoa", "email": "hoa@example.com", "phone": "+15550199"},
            "start_time": "2031-03-14T10:00:00Z",
        })
        assert not request.walk_in

    @pytest.mark.parametrize(
        ("contact", "field"),
        [("hoa@example.com", "email"), ("+1 555 0199", "phone"), ("  hoa@example.com ", "email")],
    )
    def test_contact_classification(self, contact, field):
        customer = CustomerInfo.from_contact("Hoa", contact)
        assert getattr(customer, field) == contact.strip()
        assert customer.has_single_contact
