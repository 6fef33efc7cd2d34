"""
Pytest configuration and shared fixtures.
"""

import os
from collections.abc import AsyncGenerator, Callable
from datetime import timedelta
from typing import Any
from uuid import UUID

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from entryflow.api.main import create_app
from entryflow.config import Settings
from entryflow.constants import ContentionPolicy
from entryflow.db import Base, make_session_factory
from entryflow.store import InMemoryRecordStore, SqlRecordStore
from entryflow.types.entry import EntryChanges, EntryGuard, EntryRecord
from entryflow.types.stage import StageContext, StageResult
from entryflow.worker.processors import StageProcessor, register_handler
from entryflow.worker.scheduler import EntryScheduler

# Test database URL - in-memory SQLite unless a real database is provided
TEST_DATABASE_URL = os.getenv(
    "TEST_DATABASE_URL",
    "sqlite+aiosqlite:///:memory:",
)


class RecordingStore(InMemoryRecordStore):
    """In-memory store that keeps every state produced by a successful write."""

    def __init__(self, **kwargs: Any):
        super().__init__(**kwargs)
        self.history: dict[UUID, list[EntryRecord]] = {}

    async def create(self, title: str) -> EntryRecord:
        record = await super().create(title)
        self.history[record.id] = [record]
        return record

    async def conditional_update(
        self,
        entry_id: UUID,
        guard: EntryGuard,
        changes: EntryChanges,
    ) -> int:
        rows = await super().conditional_update(entry_id, guard, changes)
        if rows:
            self.history[entry_id].append(self._records[entry_id])
        return rows

    def statuses(self, entry_id: UUID) -> list[str]:
        """Distinct consecutive statuses the entry went through."""
        walk: list[str] = []
        for record in self.history[entry_id]:
            if not walk or walk[-1] != record.status:
                walk.append(record.status)
        return walk

    def progress_values(self, entry_id: UUID) -> list[int]:
        return [record.progress for record in self.history[entry_id]]


@register_handler("test_fail_on_stage_2")
async def handle_fail_on_stage_2(context: StageContext) -> StageResult:
    """Raises during the second stage."""
    if context.stage_index == 1:
        raise RuntimeError("boom in stage 2")
    return StageResult(success=True, output="done" if context.is_final else None)


@register_handler("test_reject_stage_2")
async def handle_reject_stage_2(context: StageContext) -> StageResult:
    """Reports failure (without raising) during the second stage."""
    if context.stage_index == 1:
        return StageResult(success=False, error="stage 2 rejected the input")
    return StageResult(success=True, output="done" if context.is_final else None)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        log_level="DEBUG",
        log_format="console",
        lease_timeout_seconds=30,
        stage_delay_seconds=0,
        sweeper_interval_seconds=0.1,
        otel_exporter_otlp_endpoint=None,
    )


@pytest.fixture
def memory_store() -> RecordingStore:
    """Create an in-memory store that records its write history."""
    return RecordingStore()


@pytest.fixture
def make_scheduler(memory_store: RecordingStore) -> Callable[..., EntryScheduler]:
    """Factory for schedulers over the in-memory store."""

    def factory(
        worker_id: str = "test-worker",
        handler_name: str = "simulated",
        stage_delay_seconds: float = 0,
        lease_timeout: timedelta = timedelta(seconds=30),
        store: Any = None,
        **kwargs: Any,
    ) -> EntryScheduler:
        return EntryScheduler(
            store=store or memory_store,
            worker_id=worker_id,
            lease_timeout=lease_timeout,
            processor=StageProcessor(
                handler_name=handler_name,
                stage_delay_seconds=stage_delay_seconds,
            ),
            **kwargs,
        )

    return factory


@pytest.fixture
def retry_kwargs() -> dict[str, Any]:
    """Scheduler options for the polling contention policy with short intervals."""
    return {
        "contention_policy": ContentionPolicy.RETRY,
        "claim_retry_initial": 0.01,
        "claim_retry_max": 0.05,
    }


@pytest_asyncio.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an async database engine with the schema in place."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_async_engine(TEST_DATABASE_URL, pool_pre_ping=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def sql_store(async_engine: AsyncEngine) -> SqlRecordStore:
    """Create a SQL record store bound to the test engine."""
    return SqlRecordStore(make_session_factory(async_engine))


@pytest.fixture
def app(test_settings: Settings) -> FastAPI:
    """Create a FastAPI app backed by an in-memory store."""
    return create_app(store=InMemoryRecordStore(), settings=test_settings)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
