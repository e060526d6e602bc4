"""Appointment model — a scheduled or in-progress service instance."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from frontdesk.models.base import Base, TimestampMixin, UTCDateTime
from frontdesk.models.enums import AppointmentStatus


class Appointment(TimestampMixin, Base):
    """One customer's service, from booking or walk-in through completion.

    ``end_time`` is always ``start_time + duration_minutes``. Only the
    lifecycle manager writes ``status``, ``employee_id`` and ``chair_number``.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_employee_window", "employee_id", "start_time", "end_time"),
        Index("ix_appointments_facility_status", "facility_id", "status"),
    )

    # Customer
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(30))

    # Foreign keys
    service_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("services.id"), nullable=False
    )
    employee_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("employees.id")
    )
    facility_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("facilities.id"), nullable=False
    )

    # Window
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    arrival_time: Mapped[datetime | None] = mapped_column(UTCDateTime())

    status: Mapped[str] = mapped_column(
        String(20), default=AppointmentStatus.SCHEDULED.value, nullable=False
    )

    # Pedicure only
    chair_number: Mapped[int | None] = mapped_column(Integer)

    # Set at completion
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))

    def __repr__(self) -> str:
        return f"<Appointment id={self.id} status={self.status} at={self.start_time}>"
