"""Error taxonomy for the front-desk core.

Every failure surfaced by the core is one of five kinds. Each carries a
stable ``code`` and a default ``user_message`` so the request-handling layer
can map it to a distinct response without inspecting message text.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator

from sqlalchemy.exc import DBAPIError, IntegrityError

logger = logging.getLogger(__name__)


class FrontDeskError(Exception):
    """Base class for all core errors."""

    code = "frontdesk_error"
    user_message = "Something went wrong, please try again."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)
        self.message = message or self.user_message


class InvalidInputError(FrontDeskError):
    """Malformed or missing required fields, non-positive durations."""

    code = "invalid_input"
    user_message = "Some of the details are missing or invalid."


class NotFoundError(FrontDeskError):
    """A referenced appointment, employee, facility or service does not exist."""

    code = "not_found"
    user_message = "We could not find what you were looking for."


class InvalidStateTransitionError(FrontDeskError):
    """An appointment or queue entry was asked to move to an illegal state."""

    code = "invalid_state_transition"
    user_message = "This action is not possible in the current state."


class ConflictError(FrontDeskError):
    """Resource already assigned/occupied, or a compare-and-set race was lost."""

    code = "conflict"
    user_message = "The resource just became unavailable, please retry."


class UnavailableError(FrontDeskError):
    """The record store could not be reached or failed mid-operation."""

    code = "unavailable"
    user_message = "The system is temporarily unavailable, please try again shortly."


@contextlib.contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate SQLAlchemy driver failures into core error kinds.

    Unique-constraint violations are lost races (``ConflictError``); every
    other DBAPI failure means the store is unavailable.
    """
    try:
        yield
    except IntegrityError as exc:
        logger.warning("Integrity conflict during %s: %s", operation, exc.orig)
        raise ConflictError(f"{operation}: resource was claimed concurrently") from exc
    except DBAPIError as exc:
        logger.error("Record store failure during %s: %s", operation, exc.orig)
        raise UnavailableError(f"{operation}: record store unavailable") from exc
