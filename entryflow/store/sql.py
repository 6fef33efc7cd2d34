"""
SQLAlchemy-backed record store.

Each call runs in its own session and commits immediately, so a claim or a
stage write is visible to every other worker as soon as it returns.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from entryflow.db.connection import get_session_factory, session_scope
from entryflow.db.repository import EntryRepository
from entryflow.errors import StoreUnavailableError
from entryflow.types.entry import EntryChanges, EntryGuard, EntryPage, EntryRecord

logger = logging.getLogger(__name__)


class SqlRecordStore:
    """Record store over the ``entries`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        """
        Args:
            session_factory: Factory to open sessions from. Defaults to the
                process-wide factory set up by ``init_db``.
        """
        self._session_factory = session_factory

    @asynccontextmanager
    async def _repository(self) -> AsyncIterator[EntryRepository]:
        factory = self._session_factory or get_session_factory()
        try:
            async with session_scope(factory) as session:
                yield EntryRepository(session)
        except (SQLAlchemyError, OSError) as e:
            logger.error("Record store operation failed", extra={"error": str(e)})
            raise StoreUnavailableError(str(e)) from e

    async def conditional_update(
        self,
        entry_id: UUID,
        guard: EntryGuard,
        changes: EntryChanges,
    ) -> int:
        async with self._repository() as repo:
            return await repo.conditional_update(entry_id, guard, changes)

    async def read(self, entry_id: UUID) -> EntryRecord | None:
        async with self._repository() as repo:
            entry = await repo.get_entry(entry_id)
            return entry.to_record() if entry is not None else None

    async def create(self, title: str) -> EntryRecord:
        async with self._repository() as repo:
            entry = await repo.create_entry(title)
            return entry.to_record()

    async def list_entries(self, limit: int, offset: int) -> EntryPage:
        async with self._repository() as repo:
            entries, total = await repo.list_entries(limit=limit, offset=offset)
            return EntryPage(entries=[e.to_record() for e in entries], total=total)

    async def list_resumable(self, stale_before: datetime, limit: int) -> list[UUID]:
        async with self._repository() as repo:
            return await repo.list_resumable(stale_before=stale_before, limit=limit)

    async def ping(self) -> bool:
        try:
            async with self._repository() as repo:
                await repo.ping()
        except StoreUnavailableError:
            return False
        return True
