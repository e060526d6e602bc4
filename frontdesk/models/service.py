"""Service model — a bookable treatment with its default duration."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Boolean, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from frontdesk.models.base import Base, TimestampMixin


class Service(TimestampMixin, Base):
    """A treatment offered by the salon (manicure, pedicure, ...)."""

    __tablename__ = "services"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))

    # Pedicure-style services need a chair in addition to an employee
    requires_chair: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Service name={self.name} duration={self.duration_minutes}>"
