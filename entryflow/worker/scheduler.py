"""
Entry scheduler: drives one entry from CREATED to a terminal status.

Each stage transition is one cycle of claim -> execute -> persist -> release.
Every write is a conditional update guarded by lease ownership, so a worker
that lost its lease mid-stage cannot overwrite a newer state.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import UUID

from entryflow.config import Settings, get_settings
from entryflow.constants import (
    ACTIVE_STATUSES,
    FAILURE_RESULT_PREFIX,
    SPAN_EXECUTE_STAGE,
    SPAN_MARK_FAILED,
    SPAN_PERSIST_STAGE,
    SPAN_RUN_ENTRY,
    ContentionPolicy,
    EntryStatus,
)
from entryflow.observability.logging import bind_context, unbind_context
from entryflow.observability.metrics import get_metrics
from entryflow.observability.tracing import get_tracer
from entryflow.store.base import RecordStore
from entryflow.types.entry import EntryChanges, EntryGuard, EntryRecord, utc_now
from entryflow.types.stage import StageContext, StagePlan, StageTransition
from entryflow.worker.lease import LeaseManager
from entryflow.worker.processors import StageProcessor

logger = logging.getLogger(__name__)


class EntryScheduler:
    """
    Orchestrates the full lifecycle of an entry for one worker identity.

    Features:
    - Stage sequence is data (``StagePlan``) consumed by one generic loop
    - Claims carry the transition's source status, so re-running on a
      finished entry performs no writes
    - Configurable contention policy: skip to the next transition (default)
      or poll the claim until the holder's lease could have gone stale
    - Failures become a best-effort FAILED write; nothing is raised
    """

    def __init__(
        self,
        store: RecordStore,
        worker_id: str,
        lease_timeout: timedelta,
        processor: StageProcessor,
        plan: StagePlan | None = None,
        contention_policy: ContentionPolicy = ContentionPolicy.SKIP,
        claim_retry_initial: float = 0.5,
        claim_retry_max: float = 5.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the scheduler.

        Args:
            store: Record store for reads and conditional updates.
            worker_id: Unique identity of this worker instance.
            lease_timeout: Reclaim window for abandoned leases.
            processor: Executes the work of each stage.
            plan: Ordered stage transitions. Defaults to the three-stage plan.
            contention_policy: Behaviour when a claim finds a live lease.
            claim_retry_initial: First poll interval in seconds (RETRY policy).
            claim_retry_max: Poll interval cap in seconds (RETRY policy).
            clock: Source of the current time.
        """
        self._store = store
        self.worker_id = worker_id
        self._lease = LeaseManager(store, worker_id, lease_timeout, clock)
        self._processor = processor
        self._plan = plan or StagePlan()
        self._policy = ContentionPolicy(contention_policy)
        self._retry_initial = claim_retry_initial
        self._retry_max = claim_retry_max
        self._metrics = get_metrics()

    @classmethod
    def from_settings(
        cls,
        store: RecordStore,
        settings: Settings | None = None,
        **overrides,
    ) -> "EntryScheduler":
        """Build a scheduler with a fresh worker identity from settings."""
        settings = settings or get_settings()
        kwargs = {
            "worker_id": settings.resolve_worker_id(),
            "lease_timeout": settings.lease_timeout,
            "processor": StageProcessor(settings=settings),
            "contention_policy": settings.contention_policy,
            "claim_retry_initial": settings.claim_retry_initial_seconds,
            "claim_retry_max": settings.claim_retry_max_seconds,
        }
        kwargs.update(overrides)
        return cls(store, **kwargs)

    @property
    def lease_manager(self) -> LeaseManager:
        return self._lease

    @property
    def plan(self) -> StagePlan:
        return self._plan

    async def run(self, entry_id: UUID) -> None:
        """
        Advance an entry through every stage transition.

        Safe to call any number of times for the same entry, from any number
        of workers. Failures are recorded on the entry, never raised.

        Args:
            entry_id: The entry UUID.
        """
        bind_context(entry_id=str(entry_id), worker_id=self.worker_id)
        try:
            with get_tracer().start_as_current_span(SPAN_RUN_ENTRY) as span:
                span.set_attribute("entry_id", str(entry_id))
                span.set_attribute("worker_id", self.worker_id)
                try:
                    await self._advance_all(entry_id)
                except Exception as e:
                    logger.exception(
                        "Error processing entry",
                        extra={"entry_id": str(entry_id), "error": str(e)},
                    )
                    span.record_exception(e)
                    await self._mark_failed(entry_id, e)
        finally:
            unbind_context("entry_id", "worker_id")

    async def _advance_all(self, entry_id: UUID) -> None:
        entry = await self._store.read(entry_id)
        if entry is None:
            logger.warning("Entry not found", extra={"entry_id": str(entry_id)})
            return

        remaining = self._plan.remaining(entry.status)
        if not remaining:
            logger.debug(
                "Entry has no stage left to run",
                extra={"entry_id": str(entry_id), "status": entry.status.value},
            )
            return

        for stage in remaining:
            await self._advance(entry, stage)

    async def _advance(self, entry: EntryRecord, stage: StageTransition) -> None:
        """Run one claim -> execute -> persist -> release cycle."""
        stage_label = stage.target.value

        if not await self._claim(entry.id, stage):
            return

        context = StageContext(
            entry_id=entry.id,
            title=entry.title,
            stage=stage,
            stage_count=len(self._plan),
            worker_id=self.worker_id,
        )

        with get_tracer().start_as_current_span(SPAN_EXECUTE_STAGE) as span:
            span.set_attribute("entry_id", str(entry.id))
            span.set_attribute("stage", stage_label)
            result = await self._processor.execute(context)

        changes = EntryChanges(
            status=stage.target,
            progress=stage.progress,
            result=result.output if stage.is_final else None,
        )
        guard = EntryGuard(held_by=self.worker_id, status_in=frozenset({stage.source}))

        with get_tracer().start_as_current_span(SPAN_PERSIST_STAGE):
            rows = await self._store.conditional_update(entry.id, guard, changes)

        if rows == 1:
            self._metrics.record_stage_transition(stage_label, (result.duration_ms or 0.0) / 1000)
            logger.info(
                "Stage transition persisted",
                extra={
                    "entry_id": str(entry.id),
                    "status": stage_label,
                    "progress": stage.progress,
                },
            )
            if stage.is_final:
                self._metrics.record_entry_finished(EntryStatus.COMPLETED.value)
        else:
            self._metrics.record_lease_lost(stage_label)
            logger.warning(
                "Lease lost before stage write, result discarded",
                extra={"entry_id": str(entry.id), "stage": stage_label},
            )

        await self._lease.release(entry.id)

    async def _claim(self, entry_id: UUID, stage: StageTransition) -> bool:
        """
        Claim the lease for one transition according to the contention policy.

        A refused claim only counts as contention while the entry still sits
        in the transition's source status; otherwise another worker already
        made the transition and there is nothing to wait for. RETRY polls with
        exponential backoff for up to the lease timeout plus one poll interval.
        """
        if await self._lease.claim(entry_id, expected_status=stage.source):
            return True

        stage_label = stage.target.value
        if not await self._awaits_transition(entry_id, stage):
            logger.debug(
                "Transition already made elsewhere",
                extra={"entry_id": str(entry_id), "stage": stage_label},
            )
            return False

        self._metrics.record_lease_contention(stage_label)

        if self._policy is ContentionPolicy.SKIP:
            logger.info(
                "Stage claim not acquired, skipping transition",
                extra={"entry_id": str(entry_id), "stage": stage_label},
            )
            return False

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._lease.lease_timeout.total_seconds() + self._retry_max
        delay = self._retry_initial

        while loop.time() < deadline:
            await asyncio.sleep(delay)

            if await self._lease.claim(entry_id, expected_status=stage.source):
                return True

            if not await self._awaits_transition(entry_id, stage):
                return False

            delay = min(delay * 2, self._retry_max)

        logger.info(
            "Stage claim not acquired before deadline, giving up",
            extra={"entry_id": str(entry_id), "stage": stage_label},
        )
        return False

    async def _awaits_transition(self, entry_id: UUID, stage: StageTransition) -> bool:
        current = await self._store.read(entry_id)
        return current is not None and current.status == stage.source

    async def _mark_failed(self, entry_id: UUID, error: Exception) -> None:
        """
        Best-effort terminal FAILED write, then release.

        Guarded by lease ownership: if the lease is already gone the marker
        is not applied. Errors here are logged and not retried; a lease left
        behind is recovered by lease timeout.
        """
        changes = EntryChanges(
            status=EntryStatus.FAILED,
            result=f"{FAILURE_RESULT_PREFIX}{str(error) or type(error).__name__}",
        )
        guard = EntryGuard(held_by=self.worker_id, status_in=ACTIVE_STATUSES)

        try:
            with get_tracer().start_as_current_span(SPAN_MARK_FAILED):
                rows = await self._store.conditional_update(entry_id, guard, changes)

            if rows == 1:
                self._metrics.record_entry_finished(EntryStatus.FAILED.value)
                logger.warning(
                    "Entry marked as failed",
                    extra={"entry_id": str(entry_id), "error": str(error)},
                )
            else:
                logger.warning(
                    "Failure marker not applied, lease not held",
                    extra={"entry_id": str(entry_id)},
                )

            await self._lease.release(entry_id)
        except Exception:
            logger.exception(
                "Failed to mark entry as failed",
                extra={"entry_id": str(entry_id)},
            )
