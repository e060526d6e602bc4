"""Facility model — a salon location and its chair capacity."""

from __future__ import annotations

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from frontdesk.models.base import Base, TimestampMixin


class Facility(TimestampMixin, Base):
    """A salon location.

    Capacity is read-only for the scheduling core; it is changed only by
    facility configuration.
    """

    __tablename__ = "facilities"

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Capacity
    chairs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    pedicure_chairs: Mapped[int | None] = mapped_column(
        Integer, comment="Total pedicure chairs; NULL means not configured"
    )

    def __repr__(self) -> str:
        return f"<Facility name={self.name} pedicure_chairs={self.pedicure_chairs}>"
