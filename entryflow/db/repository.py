"""
Entry repository for database operations.
Implements the core data access patterns for entry management.
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, func, or_, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from entryflow.constants import ACTIVE_STATUSES, EntryStatus
from entryflow.db.models import Entry
from entryflow.types.entry import EntryChanges, EntryGuard, utc_now

logger = logging.getLogger(__name__)


class EntryRepository:
    """
    Repository for entry database operations.

    Implements atomic operations for:
    - Entry creation
    - Guarded conditional updates (lease claim, stage write, release)
    - Discovery of entries abandoned by crashed workers
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            session: The async database session.
        """
        self._session = session

    async def create_entry(self, title: str, now: datetime | None = None) -> Entry:
        """
        Create a new entry in CREATED state with no lease.

        Args:
            title: Display title.
            now: Creation timestamp, defaults to the current time.

        Returns:
            The persisted Entry.
        """
        now = now or utc_now()
        entry = Entry(
            title=title,
            status=EntryStatus.CREATED,
            progress=0,
            created_at=now,
            updated_at=now,
        )
        self._session.add(entry)
        await self._session.flush()

        logger.info("Created new entry", extra={"entry_id": str(entry.id)})
        return entry

    async def get_entry(self, entry_id: UUID) -> Entry | None:
        """
        Get an entry by ID.

        Args:
            entry_id: The entry UUID.

        Returns:
            The Entry or None if not found.
        """
        stmt = select(Entry).where(Entry.id == entry_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_entries(
        self,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[Entry], int]:
        """
        List entries, newest first.

        Args:
            limit: Maximum number of entries to return.
            offset: Offset for pagination.

        Returns:
            Tuple of (entries, total_count).
        """
        count_result = await self._session.execute(
            select(func.count()).select_from(Entry)
        )
        total = count_result.scalar() or 0

        stmt = (
            select(Entry)
            .order_by(Entry.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all(), total

    async def conditional_update(
        self,
        entry_id: UUID,
        guard: EntryGuard,
        changes: EntryChanges,
        now: datetime | None = None,
    ) -> int:
        """
        Apply ``changes`` to the entry only if ``guard`` holds.

        The guard is compiled into the WHERE clause of a single UPDATE, so the
        check and the write happen atomically at row level.

        Args:
            entry_id: The entry UUID.
            guard: Conditions that must hold at write time.
            changes: Field assignments.
            now: Value for updated_at, defaults to the current time.

        Returns:
            Number of rows changed (0 or 1).
        """
        filters = [Entry.id == entry_id]

        if guard.lease_claimable_before is not None:
            filters.append(
                or_(
                    Entry.locked_by.is_(None),
                    Entry.locked_at < guard.lease_claimable_before,
                )
            )
        if guard.held_by is not None:
            filters.append(Entry.locked_by == guard.held_by)
        if guard.status_in is not None:
            filters.append(Entry.status.in_(sorted(guard.status_in)))

        values = changes.to_columns()
        values["updated_at"] = now or utc_now()

        stmt = (
            update(Entry)
            .where(and_(*filters))
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        result = await self._session.execute(stmt)
        return result.rowcount

    async def list_resumable(
        self,
        stale_before: datetime,
        limit: int = 50,
    ) -> list[UUID]:
        """
        Find non-terminal entries nobody is working on.

        An entry qualifies when its lease is absent or stale and it has not
        been written since ``stale_before``.

        Args:
            stale_before: Cut-off instant for leases and last activity.
            limit: Maximum number of ids to return.

        Returns:
            Entry ids, least recently updated first.
        """
        stmt = (
            select(Entry.id)
            .where(
                and_(
                    Entry.status.in_(sorted(ACTIVE_STATUSES)),
                    or_(
                        Entry.locked_by.is_(None),
                        Entry.locked_at < stale_before,
                    ),
                    Entry.updated_at < stale_before,
                )
            )
            .order_by(Entry.updated_at.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def ping(self) -> None:
        """Round-trip a trivial query to check connectivity."""
        await self._session.execute(text("SELECT 1"))
