"""Wait queue tracker — walk-in admission, FIFO positions and wait estimates.

Positions are never stored: a customer's position is one plus the number of
waiting entries at the same facility with an earlier insertion sequence.

Change notifications from the event bus feed a single-consumer loop that runs
one full recompute pass per facility at a time. A notification that arrives
while a pass is running schedules another pass after it; duplicates for a
facility whose pass has not started yet are coalesced.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from frontdesk.config import settings
from frontdesk.errors import InvalidInputError, NotFoundError, store_errors
from frontdesk.events import emit
from frontdesk.models.customer_queue import CustomerQueueEntry
from frontdesk.models.enums import QueueEntryStatus
from frontdesk.models.facility import Facility
from frontdesk.models.service import Service
from frontdesk.scheduling.locks import ResourceLocks
from frontdesk.scheduling.states import next_queue_status
from frontdesk.schemas.events import EventType, SystemEvent
from frontdesk.schemas.scheduling import CustomerInfo, QueuePosition

logger = logging.getLogger(__name__)

PublishFn = Callable[[uuid.UUID, list[QueuePosition]], Awaitable[None]]


def estimate_wait(
    people_ahead: int,
    minutes_per_person: int | None = None,
    min_wait_minutes: int | None = None,
) -> int:
    """Fixed per-person estimate with a floor. A heuristic, not a commitment."""
    per_person = settings.queue.minutes_per_person if minutes_per_person is None else minutes_per_person
    floor = settings.queue.min_wait_minutes if min_wait_minutes is None else min_wait_minutes
    return max(people_ahead * per_person, floor)


def redis_publisher(redis: Any) -> PublishFn:
    """Publish each recompute snapshot on the ``queue:<facility_id>`` channel."""

    async def publish(facility_id: uuid.UUID, positions: list[QueuePosition]) -> None:
        payload = json.dumps([p.model_dump(mode="json") for p in positions])
        await redis.publish(f"queue:{facility_id}", payload)

    return publish


class WaitQueueTracker:
    """Owns customer queue admission and position derivation."""

    watched_types: list[EventType] = [
        EventType.APPOINTMENT_CREATED,
        EventType.APPOINTMENT_STARTED,
        EventType.APPOINTMENT_COMPLETED,
        EventType.EMPLOYEE_CHECKED_IN,
        EventType.EMPLOYEE_CHECKED_OUT,
        EventType.QUEUE_JOINED,
        EventType.QUEUE_ASSIGNED,
        EventType.QUEUE_CANCELLED,
    ]

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        locks: ResourceLocks | None = None,
        minutes_per_person: int | None = None,
        min_wait_minutes: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.locks = locks if locks is not None else ResourceLocks()
        self.minutes_per_person = (
            settings.queue.minutes_per_person if minutes_per_person is None else minutes_per_person
        )
        self.min_wait_minutes = (
            settings.queue.min_wait_minutes if min_wait_minutes is None else min_wait_minutes
        )

        self._notifications: asyncio.Queue[uuid.UUID] | None = None
        self._pending: set[uuid.UUID] = set()
        self._worker_task: asyncio.Task[None] | None = None
        self._publish_fn: PublishFn | None = None
        self._snapshots: dict[uuid.UUID, list[QueuePosition]] = {}

    def set_publish_fn(self, fn: PublishFn) -> None:
        """Set where recompute snapshots are broadcast (e.g. Redis pub/sub)."""
        self._publish_fn = fn

    # ── Admission ────────────────────────────────────────────────────

    async def enqueue(
        self,
        db: AsyncSession,
        facility_id: uuid.UUID,
        customer: CustomerInfo,
        service_id: uuid.UUID,
    ) -> CustomerQueueEntry:
        """Add a walk-in to the facility queue with status ``waiting``.

        Raises:
            InvalidInputError: The customer gave no contact.
            NotFoundError: Unknown facility or service.
        """
        if customer.email is None and customer.phone is None:
            raise InvalidInputError("A queued customer needs an email or phone")

        async with self.locks.queue(facility_id):
            with store_errors("enqueue"):
                if await db.get(Facility, facility_id) is None:
                    raise NotFoundError(f"Facility {facility_id} not found")
                if await db.get(Service, service_id) is None:
                    raise NotFoundError(f"Service {service_id} not found")

                last = await db.scalar(
                    select(func.max(CustomerQueueEntry.queue_position)).where(
                        CustomerQueueEntry.facility_id == facility_id
                    )
                )
                entry = CustomerQueueEntry(
                    facility_id=facility_id,
                    service_id=service_id,
                    customer_name=customer.name,
                    email=customer.email,
                    phone=customer.phone,
                    status=QueueEntryStatus.WAITING.value,
                    queue_position=(last or 0) + 1,
                )
                db.add(entry)
                await db.flush()

        await emit(SystemEvent(
            event_type=EventType.QUEUE_JOINED,
            facility_id=facility_id,
            data={"queue_entry_id": str(entry.id), "sequence": entry.queue_position},
            source_module="queue.tracker",
        ))
        logger.info(
            "Customer queued: entry=%s facility=%s seq=%d",
            entry.id,
            facility_id,
            entry.queue_position,
        )
        return entry

    async def get_entry(self, db: AsyncSession, queue_entry_id: uuid.UUID) -> CustomerQueueEntry:
        with store_errors("load_queue_entry"):
            entry = await db.get(CustomerQueueEntry, queue_entry_id)
        if entry is None:
            raise NotFoundError(f"Queue entry {queue_entry_id} not found")
        return entry

    async def waiting_entries(self, db: AsyncSession, facility_id: uuid.UUID) -> list[CustomerQueueEntry]:
        """Waiting entries in FIFO order."""
        with store_errors("load_waiting"):
            result = await db.execute(
                select(CustomerQueueEntry)
                .where(
                    CustomerQueueEntry.facility_id == facility_id,
                    CustomerQueueEntry.status == QueueEntryStatus.WAITING.value,
                )
                .order_by(CustomerQueueEntry.queue_position)
            )
        return list(result.scalars().all())

    async def next_waiting(self, db: AsyncSession, facility_id: uuid.UUID) -> CustomerQueueEntry | None:
        """The customer at the head of the facility queue."""
        entries = await self.waiting_entries(db, facility_id)
        return entries[0] if entries else None

    # ── Positions ────────────────────────────────────────────────────

    def estimate_wait(self, people_ahead: int) -> int:
        return estimate_wait(people_ahead, self.minutes_per_person, self.min_wait_minutes)

    async def compute_position(self, db: AsyncSession, queue_entry_id: uuid.UUID) -> QueuePosition:
        """Live FIFO rank of a waiting entry.

        Raises:
            NotFoundError: Unknown entry.
            InvalidInputError: The entry is no longer waiting.
        """
        entry = await self.get_entry(db, queue_entry_id)
        if entry.status != QueueEntryStatus.WAITING.value:
            raise InvalidInputError(f"Queue entry {queue_entry_id} is {entry.status}, not waiting")

        with store_errors("compute_position"):
            people_ahead = await db.scalar(
                select(func.count(CustomerQueueEntry.id)).where(
                    CustomerQueueEntry.facility_id == entry.facility_id,
                    CustomerQueueEntry.status == QueueEntryStatus.WAITING.value,
                    CustomerQueueEntry.queue_position < entry.queue_position,
                )
            )
        people_ahead = people_ahead or 0
        return QueuePosition(
            queue_entry_id=entry.id,
            people_ahead=people_ahead,
            position=people_ahead + 1,
            estimated_wait_minutes=self.estimate_wait(people_ahead),
        )

    # ── Queue entry transitions ──────────────────────────────────────

    async def mark_assigned(
        self,
        db: AsyncSession,
        entry: CustomerQueueEntry,
        appointment_id: uuid.UUID,
    ) -> CustomerQueueEntry:
        """waiting → assigned, linking the appointment created for the customer."""
        entry.status = next_queue_status(entry.status, "assign").value
        entry.appointment_id = appointment_id
        with store_errors("assign_queue_entry"):
            await db.flush()

        await emit(SystemEvent(
            event_type=EventType.QUEUE_ASSIGNED,
            facility_id=entry.facility_id,
            appointment_id=appointment_id,
            data={"queue_entry_id": str(entry.id)},
            source_module="queue.tracker",
        ))
        logger.info("Queue entry assigned: entry=%s appointment=%s", entry.id, appointment_id)
        return entry

    async def cancel(self, db: AsyncSession, queue_entry_id: uuid.UUID) -> CustomerQueueEntry:
        """waiting → cancelled."""
        entry = await self.get_entry(db, queue_entry_id)
        async with self.locks.queue(entry.facility_id):
            with store_errors("cancel_queue_entry"):
                await db.refresh(entry)
            entry.status = next_queue_status(entry.status, "cancel").value
            with store_errors("cancel_queue_entry"):
                await db.flush()

        await emit(SystemEvent(
            event_type=EventType.QUEUE_CANCELLED,
            facility_id=entry.facility_id,
            data={"queue_entry_id": str(entry.id)},
            source_module="queue.tracker",
        ))
        logger.info("Queue entry cancelled: entry=%s", entry.id)
        return entry

    # ── Change notifications ─────────────────────────────────────────

    async def on_event(self, event: SystemEvent) -> None:
        """Event bus subscriber: schedule a recompute for the event's facility."""
        if event.facility_id is not None:
            self.notify(event.facility_id)

    def notify(self, facility_id: uuid.UUID) -> None:
        if self._notifications is None:
            logger.warning("Tracker not started; dropping notification for facility %s", facility_id)
            return
        if facility_id in self._pending:
            return
        self._pending.add(facility_id)
        self._notifications.put_nowait(facility_id)

    async def recompute(self, facility_id: uuid.UUID) -> list[QueuePosition]:
        """Full recompute of every waiting entry's position at a facility."""
        if self._session_factory is None:
            msg = "WaitQueueTracker needs a session factory to recompute"
            raise RuntimeError(msg)

        async with self._session_factory() as db:
            entries = await self.waiting_entries(db, facility_id)

        positions = [
            QueuePosition(
                queue_entry_id=entry.id,
                people_ahead=ahead,
                position=ahead + 1,
                estimated_wait_minutes=self.estimate_wait(ahead),
            )
            for ahead, entry in enumerate(entries)
        ]
        self._snapshots[facility_id] = positions
        logger.debug("Recomputed %d queue positions for facility %s", len(positions), facility_id)

        if self._publish_fn is not None:
            await self._publish_fn(facility_id, positions)
        return positions

    def snapshot(self, facility_id: uuid.UUID) -> list[QueuePosition]:
        """Positions from the last completed recompute pass."""
        return list(self._snapshots.get(facility_id, []))

    async def drain(self) -> None:
        """Wait until every scheduled recompute pass has finished."""
        if self._notifications is not None:
            await self._notifications.join()

    async def _worker(self) -> None:
        assert self._notifications is not None
        while True:
            try:
                facility_id = await self._notifications.get()
            except asyncio.CancelledError:
                logger.info("Queue tracker shutting down")
                break
            # Cleared before the pass so notifications arriving mid-pass queue another one
            self._pending.discard(facility_id)
            try:
                await self.recompute(facility_id)
            except Exception:
                logger.exception("Queue recompute failed for facility %s", facility_id)
            finally:
                self._notifications.task_done()

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> None:
        if self._worker_task is not None and not self._worker_task.done():
            return
        self._notifications = asyncio.Queue()
        self._pending.clear()
        self._worker_task = asyncio.create_task(self._worker())
        logger.info("Queue tracker started")

    async def stop(self) -> None:
        if self._worker_task is not None and not self._worker_task.done():
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
        self._worker_task = None
        self._notifications = None
        self._pending.clear()
        logger.info("Queue tracker stopped")
