"""
Unit tests for the entry repository and the SQL record store.
"""

from datetime import timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from entryflow.constants import EntryStatus
from entryflow.db import Base, make_session_factory
from entryflow.db.connection import session_scope
from entryflow.db.repository import EntryRepository
from entryflow.errors import StoreUnavailableError
from entryflow.store import SqlRecordStore
from entryflow.types.entry import (
    UNLEASED,
    EntryChanges,
    EntryGuard,
    LeasedBy,
    utc_now,
)
from entryflow.worker.lease import LeaseManager

TIMEOUT = timedelta(seconds=30)


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(async_engine)


class TestEntryRepository:
    """Tests for EntryRepository."""

    async def test_create_entry(self, session_factory):
        """Test creating an entry."""
        async with session_scope(session_factory) as session:
            entry = await EntryRepository(session).create_entry("first")

        async with session_scope(session_factory) as session:
            loaded = await EntryRepository(session).get_entry(entry.id)

        record = loaded.to_record()
        assert record.title == "first"
        assert record.status == EntryStatus.CREATED
        assert record.progress == 0
        assert record.result is None
        assert record.lease == UNLEASED
        assert record.created_at.tzinfo is not None

    async def test_get_entry_not_found(self, session_factory):
        async with session_scope(session_factory) as session:
            assert await EntryRepository(session).get_entry(uuid4()) is None

    async def test_list_entries_newest_first(self, session_factory):
        """Test ordering and total count of the listing."""
        base = utc_now()
        async with session_scope(session_factory) as session:
            repo = EntryRepository(session)
            for i in range(5):
                await repo.create_entry(f"entry-{i}", now=base + timedelta(seconds=i))

        async with session_scope(session_factory) as session:
            entries, total = await EntryRepository(session).list_entries(limit=2, offset=1)

        assert total == 5
        assert [e.title for e in entries] == ["entry-3", "entry-2"]

    async def test_conditional_update_guard_rejects(self, session_factory):
        """Test that a failing guard leaves the row untouched."""
        async with session_scope(session_factory) as session:
            entry = await EntryRepository(session).create_entry("guarded")

        async with session_scope(session_factory) as session:
            rows = await EntryRepository(session).conditional_update(
                entry.id,
                EntryGuard(held_by="nobody"),
                EntryChanges(status=EntryStatus.STAGE_1, progress=33),
            )

        assert rows == 0
        async with session_scope(session_factory) as session:
            loaded = await EntryRepository(session).get_entry(entry.id)
        assert loaded.status == EntryStatus.CREATED

    async def test_list_resumable(self, session_factory):
        """Test discovery of idle non-terminal entries."""
        old = utc_now() - timedelta(minutes=10)
        async with session_scope(session_factory) as session:
            repo = EntryRepository(session)
            idle = await repo.create_entry("idle", now=old)
            held = await repo.create_entry("held", now=old)
            done = await repo.create_entry("done", now=old)
            fresh = await repo.create_entry("fresh")

        async with session_scope(session_factory) as session:
            repo = EntryRepository(session)
            await repo.conditional_update(
                held.id,
                EntryGuard(),
                EntryChanges(lease=LeasedBy("worker-a", utc_now())),
                now=old,
            )
            await repo.conditional_update(
                done.id,
                EntryGuard(),
                EntryChanges(status=EntryStatus.COMPLETED, progress=100, result="ok"),
                now=old,
            )

        async with session_scope(session_factory) as session:
            ids = await EntryRepository(session).list_resumable(
                stale_before=utc_now() - TIMEOUT,
            )

        assert ids == [idle.id]
        assert fresh.id not in ids


class TestSqlRecordStore:
    """Tests for SqlRecordStore against a real SQL engine."""

    async def test_create_and_read(self, sql_store: SqlRecordStore):
        record = await sql_store.create("demo")

        loaded = await sql_store.read(record.id)

        assert loaded.id == record.id
        assert loaded.title == "demo"
        assert loaded.status == EntryStatus.CREATED

    async def test_read_missing(self, sql_store: SqlRecordStore):
        assert await sql_store.read(uuid4()) is None

    async def test_list_entries(self, sql_store: SqlRecordStore):
        for i in range(3):
            await sql_store.create(f"entry-{i}")

        page = await sql_store.list_entries(limit=10, offset=0)

        assert page.total == 3
        assert len(page.entries) == 3

    async def test_claim_and_release(self, sql_store: SqlRecordStore):
        """Test the lease primitives on the SQL store."""
        record = await sql_store.create("demo")
        a = LeaseManager(sql_store, "worker-a", TIMEOUT)
        b = LeaseManager(sql_store, "worker-b", TIMEOUT)
        t0 = utc_now()

        assert await a.claim(record.id, now=t0) is True
        assert await b.claim(record.id, now=t0 + timedelta(seconds=1)) is False

        loaded = await sql_store.read(record.id)
        assert loaded.locked_by == "worker-a"

        await a.release(record.id)

        loaded = await sql_store.read(record.id)
        assert loaded.lease == UNLEASED

    async def test_stale_lease_reclaimed(self, sql_store: SqlRecordStore):
        record = await sql_store.create("demo")
        crashed = LeaseManager(sql_store, "crashed-worker", TIMEOUT)
        fresh = LeaseManager(sql_store, "fresh-worker", TIMEOUT)
        t0 = utc_now()

        await crashed.claim(record.id, now=t0)
        assert await fresh.claim(record.id, now=t0 + TIMEOUT + timedelta(seconds=1)) is True

        await crashed.release(record.id)

        loaded = await sql_store.read(record.id)
        assert loaded.locked_by == "fresh-worker"

    async def test_stage_write_requires_lease_and_source(self, sql_store: SqlRecordStore):
        """Test the stage persist guard."""
        record = await sql_store.create("demo")
        lease = LeaseManager(sql_store, "worker-a", TIMEOUT)
        await lease.claim(record.id)
        changes = EntryChanges(status=EntryStatus.STAGE_1, progress=33)

        wrong_source = EntryGuard(held_by="worker-a", status_in=frozenset({EntryStatus.STAGE_1}))
        assert await sql_store.conditional_update(record.id, wrong_source, changes) == 0

        guard = EntryGuard(held_by="worker-a", status_in=frozenset({EntryStatus.CREATED}))
        assert await sql_store.conditional_update(record.id, guard, changes) == 1

        loaded = await sql_store.read(record.id)
        assert loaded.status == EntryStatus.STAGE_1
        assert loaded.progress == 33
        assert loaded.locked_by == "worker-a"

    async def test_ping(self, sql_store: SqlRecordStore):
        assert await sql_store.ping() is True

    async def test_errors_become_store_unavailable(self, async_engine: AsyncEngine):
        """Test that driver errors surface as StoreUnavailableError."""
        store = SqlRecordStore(make_session_factory(async_engine))
        async with async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

        with pytest.raises(StoreUnavailableError):
            await store.read(uuid4())

        assert await store.ping() is True


class TestSchedulerOnSql:
    """End-to-end scheduler runs against the SQL store."""

    @pytest_asyncio.fixture
    async def entry_id(self, sql_store: SqlRecordStore):
        record = await sql_store.create("demo")
        return record.id

    async def test_run_completes(self, sql_store, make_scheduler, entry_id):
        await make_scheduler(store=sql_store).run(entry_id)

        final = await sql_store.read(entry_id)
        assert final.status == EntryStatus.COMPLETED
        assert final.progress == 100
        assert final.result.startswith("Processed successfully at ")
        assert final.lease == UNLEASED

    async def test_run_failure(self, sql_store, make_scheduler, entry_id):
        await make_scheduler(store=sql_store, handler_name="test_fail_on_stage_2").run(entry_id)

        final = await sql_store.read(entry_id)
        assert final.status == EntryStatus.FAILED
        assert final.progress == 33
        assert final.result == "Error: Stage 2 failed: boom in stage 2"
        assert final.lease == UNLEASED

    async def test_rerun_is_noop(self, sql_store, make_scheduler, entry_id):
        await make_scheduler(store=sql_store).run(entry_id)
        completed = await sql_store.read(entry_id)

        await make_scheduler(store=sql_store, worker_id="other-worker").run(entry_id)

        assert await sql_store.read(entry_id) == completed
