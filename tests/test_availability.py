"""Tests for the availability checker.

Covers:
- Half-open overlap against scheduled and in-progress appointments
- Completed appointments never conflict
- Chair checks by chair number
- Re-validation with an excluded appointment
"""

from __future__ import annotations

import uuid

import pytest

from frontdesk.errors import InvalidInputError
from frontdesk.models.enums import AppointmentStatus, ResourceKind
from frontdesk.scheduling.availability import AvailabilityChecker
from tests.helpers import at


@pytest.fixture
def checker() -> AvailabilityChecker:
    return AvailabilityChecker()


# ── Employees ────────────────────────────────────────────────────────


class TestEmployeeAvailability:
    @pytest.mark.asyncio()
    async def test_free_with_no_appointments(self, db, checker, facility, make_employee):
        employee = await make_employee()
        result = await checker.is_resource_free(db, employee.id, facility.id, at(10), 30)
        assert result.free
        assert result.conflicts == []

    @pytest.mark.asyncio()
    async def test_overlap_is_busy(self, db, checker, facility, make_employee, make_appointment):
        employee = await make_employee()
        booked = await make_appointment(employee, start=at(10), minutes=30)

        result = await checker.is_resource_free(db, employee.id, facility.id, at(10, 15), 30)

        assert not result.free
        assert [a.id for a in result.conflicts] == [booked.id]

    @pytest.mark.asyncio()
    async def test_back_to_back_is_free(self, db, checker, facility, make_employee, make_appointment):
        employee = await make_employee()
        await make_appointment(employee, start=at(10), minutes=30)

        after = await checker.is_resource_free(db, employee.id, facility.id, at(10, 30), 30)
        before = await checker.is_resource_free(db, employee.id, facility.id, at(9, 30), 30)

        assert after.free
        assert before.free

    @pytest.mark.asyncio()
    async def test_in_progress_blocks(self, db, checker, facility, make_employee, make_appointment):
        employee = await make_employee()
        await make_appointment(employee, start=at(10), status=AppointmentStatus.IN_PROGRESS)

        result = await checker.is_resource_free(db, employee.id, facility.id, at(10, 10), 10)
        assert not result.free

    @pytest.mark.asyncio()
    async def test_completed_does_not_block(self, db, checker, facility, make_employee, make_appointment):
        employee = await make_employee()
        await make_appointment(employee, start=at(10), status=AppointmentStatus.COMPLETED)

        result = await checker.is_resource_free(db, employee.id, facility.id, at(10), 30)
        assert result.free

    @pytest.mark.asyncio()
    async def test_other_employee_does_not_block(self, db, checker, facility, make_employee, make_appointment):
        busy = await make_employee()
        idle = await make_employee()
        await make_appointment(busy, start=at(10))

        result = await checker.is_resource_free(db, idle.id, facility.id, at(10), 30)
        assert result.free

    @pytest.mark.asyncio()
    async def test_exclude_appointment(self, db, checker, facility, make_employee, make_appointment):
        employee = await make_employee()
        own = await make_appointment(employee, start=at(10))

        result = await checker.is_resource_free(
            db, employee.id, facility.id, at(10), 30, exclude_appointment_id=own.id
        )
        assert result.free

    @pytest.mark.asyncio()
    async def test_rejects_non_positive_duration(self, db, checker, facility, make_employee):
        employee = await make_employee()
        with pytest.raises(InvalidInputError):
            await checker.is_resource_free(db, employee.id, facility.id, at(10), 0)

    @pytest.mark.asyncio()
    async def test_rejects_chair_number_as_employee(self, db, checker, facility):
        with pytest.raises(InvalidInputError):
            await checker.is_resource_free(db, 1, facility.id, at(10), 30, ResourceKind.EMPLOYEE)


# ── Chairs ───────────────────────────────────────────────────────────


class TestChairAvailability:
    @pytest.mark.asyncio()
    async def test_occupied_chair(self, db, checker, facility, pedicure, make_employee, make_appointment):
        employee = await make_employee()
        await make_appointment(employee, start=at(10), chair_number=1, service=pedicure)

        one = await checker.is_resource_free(db, 1, facility.id, at(10, 15), 30, ResourceKind.PEDICURE_CHAIR)
        two = await checker.is_resource_free(db, 2, facility.id, at(10, 15), 30, ResourceKind.PEDICURE_CHAIR)

        assert not one.free
        assert two.free

    @pytest.mark.asyncio()
    async def test_rejects_uuid_as_chair(self, db, checker, facility):
        with pytest.raises(InvalidInputError):
            await checker.is_resource_free(
                db, uuid.uuid4(), facility.id, at(10), 30, ResourceKind.PEDICURE_CHAIR
            )
