"""
Sweeper for entries abandoned by crashed workers.

Dispatch happens once, right after creation. If the worker running an entry
dies (or the process restarts before the run starts), nothing would ever
pick the entry up again. The sweeper runs periodically, finds non-terminal
entries whose lease is absent or stale and that have not been written for a
full lease timeout, and dispatches them again.
"""

import asyncio
import logging
import signal
from collections.abc import Callable
from datetime import datetime, timedelta

from entryflow.config import Settings, get_settings
from entryflow.db import close_db, get_engine, init_db
from entryflow.observability.logging import setup_logging
from entryflow.observability.metrics import get_metrics
from entryflow.observability.tracing import instrument_sqlalchemy, setup_tracing
from entryflow.store import RecordStore, SqlRecordStore
from entryflow.types.entry import utc_now
from entryflow.worker.dispatcher import Dispatcher
from entryflow.worker.scheduler import EntryScheduler

logger = logging.getLogger(__name__)


class Sweeper:
    """
    Periodic re-dispatcher of stalled entries.

    Runs periodically to:
    1. Find non-terminal entries with no live lease and no recent writes
    2. Dispatch a scheduler run for each (the lease keeps this safe)
    3. Record metrics for monitoring
    """

    def __init__(
        self,
        store: RecordStore,
        dispatcher: Dispatcher,
        interval_seconds: float | None = None,
        batch_size: int | None = None,
        lease_timeout: timedelta | None = None,
        clock: Callable[[], datetime] = utc_now,
        settings: Settings | None = None,
    ):
        """
        Initialize the sweeper.

        Args:
            store: Record store to scan.
            dispatcher: Dispatcher used to start scheduler runs.
            interval_seconds: Seconds between sweeps.
            batch_size: Maximum entries dispatched per sweep.
            lease_timeout: Inactivity window before an entry counts as stalled.
            clock: Source of the current time.
            settings: Fallback for the options not given explicitly.
                Defaults to the cached settings.
        """
        if None in (interval_seconds, batch_size, lease_timeout):
            settings = settings or get_settings()
        self._store = store
        self._dispatcher = dispatcher
        self.interval = (
            settings.sweeper_interval_seconds if interval_seconds is None else interval_seconds
        )
        self.batch_size = settings.sweeper_batch_size if batch_size is None else batch_size
        self.lease_timeout = settings.lease_timeout if lease_timeout is None else lease_timeout
        self._clock = clock
        self._running = False
        self._metrics = get_metrics()

    async def start(self) -> None:
        """Start the sweeper loop."""
        logger.info(f"Sweeper starting with interval {self.interval}s")
        self._running = True

        while self._running:
            try:
                dispatched = await self.run_once()

                if dispatched > 0:
                    logger.info(f"Re-dispatched {dispatched} stalled entries")

            except Exception as e:
                logger.exception(f"Error in sweeper loop: {e}")

            await asyncio.sleep(self.interval)

        await self._dispatcher.drain()
        logger.info("Sweeper stopped")

    async def stop(self) -> None:
        """Stop the sweeper."""
        logger.info("Sweeper stopping")
        self._running = False

    async def run_once(self) -> int:
        """
        Run one sweep.

        Returns:
            Number of entries dispatched.
        """
        stale_before = self._clock() - self.lease_timeout
        entry_ids = await self._store.list_resumable(
            stale_before=stale_before,
            limit=self.batch_size,
        )

        for entry_id in entry_ids:
            self._dispatcher.dispatch(entry_id)

        if entry_ids:
            self._metrics.record_entries_resumed(len(entry_ids))

        return len(entry_ids)


async def run_async() -> None:
    """Run the sweeper asynchronously."""
    settings = get_settings()
    setup_logging(settings)
    setup_tracing(settings)
    await init_db(settings)
    instrument_sqlalchemy(get_engine().sync_engine)

    store = SqlRecordStore()
    scheduler = EntryScheduler.from_settings(store, settings)
    sweeper = Sweeper(store, Dispatcher(scheduler), settings=settings)

    logger.info("Sweeper worker identity", extra={"worker_id": scheduler.worker_id})

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(sweeper.stop())
        )

    try:
        await sweeper.start()
    finally:
        await close_db()


def run() -> None:
    """Run the sweeper."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
