"""CustomerQueueEntry model — a walk-in customer waiting for assignment."""

from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from frontdesk.models.base import Base, TimestampMixin
from frontdesk.models.enums import QueueEntryStatus


class CustomerQueueEntry(TimestampMixin, Base):
    """A waiting walk-in.

    ``queue_position`` is an insertion sequence per facility, not a rank:
    the live position is always recomputed from the earlier waiting entries.
    """

    __tablename__ = "customer_queue"
    __table_args__ = (
        UniqueConstraint("facility_id", "queue_position", name="uq_customer_queue_facility_position"),
    )

    facility_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("facilities.id"), nullable=False, index=True
    )
    service_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("services.id"), nullable=False
    )

    # Customer
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(30))

    status: Mapped[str] = mapped_column(
        String(20), default=QueueEntryStatus.WAITING.value, nullable=False, index=True
    )
    queue_position: Mapped[int] = mapped_column(Integer, nullable=False)

    # Set when the customer is admitted
    appointment_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("appointments.id")
    )

    @property
    def contact_info(self) -> str | None:
        return self.email or self.phone

    def __repr__(self) -> str:
        return f"<CustomerQueueEntry name={self.customer_name} status={self.status} seq={self.queue_position}>"
