"""AuditLog model — immutable audit trail for every system event.

Every state change in the front desk emits a SystemEvent which is persisted
here. This table is append-only — no updates or deletes.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import JSON, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from frontdesk.models.base import Base, TimestampMixin


class AuditLog(TimestampMixin, Base):
    """Immutable audit trail entry."""

    __tablename__ = "audit_log"

    # Event classification
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # Context (nullable)
    facility_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), index=True)
    appointment_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True))
    actor_id: Mapped[str | None] = mapped_column(String(100), comment="Employee ID, reception, or 'system'")

    # Event data, JSONB on PostgreSQL
    data: Mapped[dict[str, Any] | None] = mapped_column(JSON().with_variant(JSONB(), "postgresql"))

    def __repr__(self) -> str:
        return f"<AuditLog event={self.event_type} facility={self.facility_id}>"
