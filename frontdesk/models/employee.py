"""Employee model — salon staff who serve customers."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from frontdesk.models.base import Base, TimestampMixin


class Employee(TimestampMixin, Base):
    """A member of staff attached to a facility."""

    __tablename__ = "employees"

    facility_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("facilities.id"), nullable=False, index=True
    )

    # Profile
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    table_number: Mapped[int | None] = mapped_column(Integer)

    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Employee name={self.full_name} approved={self.is_approved}>"
