"""Shared test fixtures for the front-desk core.

Uses a temporary-file SQLite async engine so tests run without PostgreSQL.
Separate sessions get separate connections, like the production pool.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from frontdesk import events
from frontdesk.models import (
    Appointment,
    AppointmentStatus,
    Base,
    Employee,
    EmployeeQueueEntry,
    Facility,
    Service,
)
from frontdesk.queue.tracker import WaitQueueTracker
from frontdesk.scheduling.duration import compute_end_time
from frontdesk.scheduling.lifecycle import AppointmentLifecycleManager
from frontdesk.scheduling.locks import ResourceLocks
from tests.helpers import DAY, at


# ── Database ─────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'frontdesk.db'}", echo=False)

    # pysqlite transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    """Direct DB session for test setup/assertions."""
    async with session_factory() as session:
        yield session


# ── Event bus isolation ──────────────────────────────────────────────


@pytest_asyncio.fixture(autouse=True)
async def event_bus():
    """Fresh bus per test; the worker task is bound to the test's event loop."""
    events._subscribers.clear()
    events._type_subscribers.clear()
    events._queue = None
    events._worker_task = None
    yield
    await events.stop_event_system()
    events._subscribers.clear()
    events._type_subscribers.clear()


# ── Core components ──────────────────────────────────────────────────


@pytest.fixture
def locks() -> ResourceLocks:
    return ResourceLocks()


@pytest.fixture
def tracker(session_factory, locks) -> WaitQueueTracker:
    return WaitQueueTracker(session_factory=session_factory, locks=locks)


@pytest.fixture
def lifecycle(tracker) -> AppointmentLifecycleManager:
    return AppointmentLifecycleManager(tracker=tracker)


# ── Record factories ─────────────────────────────────────────────────


@pytest_asyncio.fixture
async def facility(db) -> Facility:
    facility = Facility(name="Centro", chairs=6, pedicure_chairs=2)
    db.add(facility)
    await db.flush()
    return facility


@pytest_asyncio.fixture
async def manicure(db) -> Service:
    service = Service(name="Manicure", duration_minutes=30, requires_chair=False)
    db.add(service)
    await db.flush()
    return service


@pytest_asyncio.fixture
async def pedicure(db) -> Service:
    service = Service(name="Pedicure", duration_minutes=45, requires_chair=True)
    db.add(service)
    await db.flush()
    return service


@pytest.fixture
def make_employee(db, facility) -> Callable[..., Awaitable[Employee]]:
    async def _make(
        employee_id: uuid.UUID | None = None,
        first_name: str = "Lan",
        approved: bool = True,
    ) -> Employee:
        employee = Employee(
            id=employee_id or uuid.uuid4(),
            facility_id=facility.id,
            first_name=first_name,
            last_name="Nguyen",
            is_approved=approved,
        )
        db.add(employee)
        await db.flush()
        return employee

    return _make


@pytest.fixture
def make_entry(db, facility) -> Callable[..., Awaitable[EmployeeQueueEntry]]:
    async def _make(employee: Employee, active: bool = True) -> EmployeeQueueEntry:
        entry = EmployeeQueueEntry(
            employee_id=employee.id,
            facility_id=facility.id,
            is_active=active,
            check_in_time=DAY,
        )
        db.add(entry)
        await db.flush()
        return entry

    return _make


@pytest.fixture
def make_appointment(db, facility, manicure) -> Callable[..., Awaitable[Appointment]]:
    async def _make(
        employee: Employee | None = None,
        start: datetime | None = None,
        minutes: int = 30,
        status: AppointmentStatus = AppointmentStatus.SCHEDULED,
        chair_number: int | None = None,
        service: Service | None = None,
    ) -> Appointment:
        start = start or at(10)
        appointment = Appointment(
            customer_name="Mai Tran",
            phone="+15550100",
            service_id=(service or manicure).id,
            employee_id=employee.id if employee else None,
            facility_id=facility.id,
            start_time=start,
            end_time=compute_end_time(start, minutes),
            duration_minutes=minutes,
            status=status.value,
            chair_number=chair_number,
        )
        db.add(appointment)
        await db.flush()
        return appointment

    return _make
