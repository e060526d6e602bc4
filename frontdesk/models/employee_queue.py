"""EmployeeQueueEntry model — an employee's live-service availability at a facility."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from frontdesk.models.base import Base, TimestampMixin, UTCDateTime


class EmployeeQueueEntry(TimestampMixin, Base):
    """An employee's shift presence.

    ``current_customer_id`` holds the in-progress appointment being served;
    NULL means the employee is free. The column is unique so an appointment
    can be paired with at most one entry.
    """

    __tablename__ = "employee_queue"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("employees.id"), nullable=False, index=True
    )
    facility_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("facilities.id"), nullable=False, index=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    current_customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("appointments.id"), unique=True
    )

    check_in_time: Mapped[datetime | None] = mapped_column(UTCDateTime())
    last_assignment_time: Mapped[datetime | None] = mapped_column(UTCDateTime())
    check_out_time: Mapped[datetime | None] = mapped_column(UTCDateTime())

    @property
    def is_free(self) -> bool:
        return self.is_active and self.current_customer_id is None

    def __repr__(self) -> str:
        return (
            f"<EmployeeQueueEntry employee={self.employee_id} "
            f"active={self.is_active} customer={self.current_customer_id}>"
        )
