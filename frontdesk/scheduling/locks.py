"""Per-resource asyncio locks.

Check-then-set sequences are serialised within the process: chair allocation
per facility, queue admission per facility queue, pairing per employee queue
entry. Always acquire in that order (facility, queue, entry), never the reverse.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict


class ResourceLocks:
    """Lazily created locks keyed by resource."""

    def __init__(self) -> None:
        self._locks: defaultdict[tuple[str, uuid.UUID], asyncio.Lock] = defaultdict(asyncio.Lock)

    def facility(self, facility_id: uuid.UUID) -> asyncio.Lock:
        return self._locks[("facility", facility_id)]

    def queue(self, facility_id: uuid.UUID) -> asyncio.Lock:
        return self._locks[("customer_queue", facility_id)]

    def employee_entry(self, entry_id: uuid.UUID) -> asyncio.Lock:
        return self._locks[("employee_queue", entry_id)]

    def release_employee_entry(self, entry_id: uuid.UUID) -> None:
        """Forget the lock of a checked-out entry. A held lock is kept.

        Entry ids are per shift, so without this the map grows with every check-in.
        """
        key = ("employee_queue", entry_id)
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


# Module-level singleton shared by the lifecycle manager and the queue tracker
resource_locks = ResourceLocks()
