"""
Process-local record store.

Used by tests and single-process demos. Guard evaluation and the write
happen without an await in between, so each conditional update is atomic
with respect to every other coroutine on the event loop.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from uuid import UUID, uuid4

from entryflow.constants import EntryStatus
from entryflow.types.entry import (
    UNLEASED,
    EntryChanges,
    EntryGuard,
    EntryPage,
    EntryRecord,
    LeasedBy,
    utc_now,
)

logger = logging.getLogger(__name__)


class InMemoryRecordStore:
    """Record store holding immutable ``EntryRecord`` snapshots in a dict."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._records: dict[UUID, EntryRecord] = {}
        self._clock = clock
        self.write_count = 0

    async def conditional_update(
        self,
        entry_id: UUID,
        guard: EntryGuard,
        changes: EntryChanges,
    ) -> int:
        # Yield like a store round trip so concurrent callers interleave.
        await asyncio.sleep(0)

        record = self._records.get(entry_id)
        if record is None or not guard.matches(record):
            return 0

        self._records[entry_id] = record.apply(changes, self._clock())
        self.write_count += 1
        return 1

    async def read(self, entry_id: UUID) -> EntryRecord | None:
        await asyncio.sleep(0)
        return self._records.get(entry_id)

    async def create(self, title: str) -> EntryRecord:
        now = self._clock()
        record = EntryRecord(
            id=uuid4(),
            title=title,
            status=EntryStatus.CREATED,
            progress=0,
            result=None,
            lease=UNLEASED,
            created_at=now,
            updated_at=now,
        )
        self._records[record.id] = record
        logger.info("Created new entry", extra={"entry_id": str(record.id)})
        return record

    async def list_entries(self, limit: int, offset: int) -> EntryPage:
        ordered = sorted(self._records.values(), key=lambda r: r.created_at, reverse=True)
        return EntryPage(entries=ordered[offset:offset + limit], total=len(ordered))

    async def list_resumable(self, stale_before: datetime, limit: int) -> list[UUID]:
        candidates = [
            record
            for record in self._records.values()
            if not record.is_terminal
            and record.updated_at < stale_before
            and not (isinstance(record.lease, LeasedBy) and record.lease.since >= stale_before)
        ]
        candidates.sort(key=lambda r: r.updated_at)
        return [record.id for record in candidates[:limit]]

    async def ping(self) -> bool:
        return True
