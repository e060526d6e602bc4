"""Duration resolution and time-window arithmetic.

A service's effective duration is the explicit override when one is given,
otherwise the service default. Windows are half-open: ``[start, end)``.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from frontdesk.errors import InvalidInputError, NotFoundError, store_errors
from frontdesk.models.service import Service

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def ensure_instant(value: datetime | str) -> datetime:
    """Coerce to a timezone-aware UTC datetime.

    ISO-8601 strings are parsed; naive datetimes are taken to be UTC.

    Raises:
        InvalidInputError: If the value is not a valid instant.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError as exc:
            raise InvalidInputError(f"Invalid start time: {value!r}") from exc
    if not isinstance(value, datetime):
        raise InvalidInputError(f"Invalid start time: {value!r}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def compute_end_time(start_time: datetime | str, minutes: int) -> datetime:
    """Return ``start_time + minutes``.

    Raises:
        InvalidInputError: If start_time is not an instant or minutes <= 0.
    """
    if not _is_positive_int(minutes):
        raise InvalidInputError(f"Duration must be a positive number of minutes, got {minutes!r}")
    return ensure_instant(start_time) + timedelta(minutes=minutes)


def windows_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open overlap: touching boundaries do not conflict."""
    return start_a < end_b and start_b < end_a


async def resolve_duration(
    db: AsyncSession,
    explicit_duration: int | None = None,
    service_id: uuid.UUID | None = None,
) -> int:
    """Effective duration in minutes.

    Args:
        db: Database session.
        explicit_duration: Override; used when it is a positive integer.
        service_id: Service whose default duration applies otherwise.

    Raises:
        InvalidInputError: Neither a usable override nor a service was given.
        NotFoundError: The service does not exist.
    """
    if _is_positive_int(explicit_duration):
        return explicit_duration  # type: ignore[return-value]

    if service_id is None:
        raise InvalidInputError("Either a positive duration or a service must be provided")

    with store_errors("resolve_duration"):
        service = await db.get(Service, service_id)
    if service is None:
        raise NotFoundError(f"Service {service_id} not found")
    if not _is_positive_int(service.duration_minutes):
        raise InvalidInputError(f"Service {service_id} has no valid default duration")

    logger.debug("Resolved duration %d min from service %s", service.duration_minutes, service_id)
    return service.duration_minutes
