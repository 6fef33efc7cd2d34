"""
Fire-and-forget dispatch of scheduler runs.

Dispatch is not exactly-once: the same entry may be dispatched again (retry
by a caller, the sweeper after a restart) and the lease makes that safe.
"""

import asyncio
import logging
from uuid import UUID

from entryflow.worker.scheduler import EntryScheduler

logger = logging.getLogger(__name__)


class Dispatcher:
    """Starts ``EntryScheduler.run`` in the background and tracks the tasks."""

    def __init__(self, scheduler: EntryScheduler):
        self._scheduler = scheduler
        self._tasks: set[asyncio.Task] = set()

    @property
    def scheduler(self) -> EntryScheduler:
        return self._scheduler

    @property
    def pending(self) -> int:
        """Number of scheduler runs still in flight."""
        return len(self._tasks)

    def dispatch(self, entry_id: UUID) -> asyncio.Task:
        """
        Schedule a run for ``entry_id`` without waiting for it.

        Must be called from a running event loop.

        Returns:
            The background task.
        """
        task = asyncio.create_task(
            self._scheduler.run(entry_id),
            name=f"entry-{entry_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

        logger.debug("Dispatched entry", extra={"entry_id": str(entry_id)})
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background processing cancelled", extra={"task": task.get_name()})
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Background processing failed",
                extra={"task": task.get_name(), "error": str(error)},
                exc_info=error,
            )

    async def drain(self) -> None:
        """Wait for every in-flight run to finish."""
        while self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} entry runs to complete")
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
