"""
Record store contract consumed by the stage-advancement core.
"""

from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from entryflow.types.entry import EntryChanges, EntryGuard, EntryPage, EntryRecord


@runtime_checkable
class RecordStore(Protocol):
    """
    Durable storage for entry records.

    The core only relies on ``conditional_update`` and ``read``. The
    conditional update must be one indivisible operation: the guard is
    evaluated at the instant of the write, never as a separate read.
    """

    async def conditional_update(
        self,
        entry_id: UUID,
        guard: EntryGuard,
        changes: EntryChanges,
    ) -> int:
        """Apply ``changes`` iff ``guard`` holds; return rows changed (0 or 1)."""
        ...

    async def read(self, entry_id: UUID) -> EntryRecord | None:
        """Fetch the current entry state, or None if it does not exist."""
        ...

    async def create(self, title: str) -> EntryRecord:
        """Create an entry in CREATED state."""
        ...

    async def list_entries(self, limit: int, offset: int) -> EntryPage:
        """Page through entries, newest first."""
        ...

    async def list_resumable(self, stale_before: datetime, limit: int) -> list[UUID]:
        """Ids of non-terminal entries with no live lease and no recent writes."""
        ...

    async def ping(self) -> bool:
        """Check the store is reachable."""
        ...
