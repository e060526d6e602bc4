"""Pydantic schemas for booking / walk-in requests and queue position results."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from frontdesk.errors import InvalidInputError


class CustomerInfo(BaseModel):
    """Who the appointment or queue entry is for."""

    name: str = Field(min_length=1, max_length=200)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=30)

    @classmethod
    def from_contact(cls, name: str, contact: str) -> CustomerInfo:
        """Build from a single free-text contact (e-mail if it contains '@', else phone)."""
        contact = contact.strip()
        if "@" in contact:
            return cls(name=name, email=contact)
        return cls(name=name, phone=contact)

    @property
    def has_single_contact(self) -> bool:
        return (self.email is None) != (self.phone is None)


class AppointmentRequest(BaseModel):
    """A booking (future start) or walk-in (start now) request.

    ``employee_id`` of None (or the literal ``"any"``) lets the allocator pick
    the free employee with the lowest identifier.
    """

    facility_id: uuid.UUID
    service_id: uuid.UUID
    customer: CustomerInfo
    employee_id: uuid.UUID | None = None
    start_time: datetime | None = None
    duration_minutes: int | None = Field(default=None, description="Override of the service default")
    walk_in: bool = False

    @field_validator("employee_id", mode="before")
    @classmethod
    def any_employee(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip().lower() == "any":
            return None
        return v

    @model_validator(mode="after")
    def check_walk_in(self) -> AppointmentRequest:
        if self.start_time is None:
            self.walk_in = True
        if self.walk_in and not self.customer.has_single_contact:
            msg = "Walk-ins must provide exactly one of email or phone"
            raise ValueError(msg)
        return self

    @classmethod
    def parse(cls, data: AppointmentRequest | dict[str, Any]) -> AppointmentRequest:
        """Validate raw request data, surfacing problems as InvalidInputError."""
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise InvalidInputError(f"Invalid appointment request: {exc.errors()[0]['msg']}") from exc


class QueuePosition(BaseModel):
    """Live rank of a waiting customer."""

    queue_entry_id: uuid.UUID
    people_ahead: int
    position: int
    estimated_wait_minutes: int

    model_config = {"frozen": True}
