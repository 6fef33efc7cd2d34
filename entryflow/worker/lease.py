"""
Lease acquisition and release on a single entry.

The store's conditional update is the only primitive: the staleness check
and the acquisition run inside the same atomic write, so there is no
read-then-write window for two workers to both win.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import UUID

from entryflow.constants import SPAN_CLAIM_LEASE, SPAN_RELEASE_LEASE, EntryStatus
from entryflow.observability.metrics import get_metrics
from entryflow.observability.tracing import get_tracer
from entryflow.store.base import RecordStore
from entryflow.types.entry import UNLEASED, EntryChanges, EntryGuard, LeasedBy, utc_now

logger = logging.getLogger(__name__)


class LeaseManager:
    """
    Acquires and releases time-bounded exclusive leases for one worker.

    A lease older than ``lease_timeout`` is stale and may be reclaimed by any
    worker, even though ``locked_by`` still names the previous holder.
    """

    def __init__(
        self,
        store: RecordStore,
        worker_id: str,
        lease_timeout: timedelta,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            store: Record store providing the conditional update.
            worker_id: Identity written into ``locked_by``; must be unique per
                worker instance.
            lease_timeout: Reclaim window for an abandoned lease.
            clock: Source of the current time.
        """
        self._store = store
        self.worker_id = worker_id
        self.lease_timeout = lease_timeout
        self._clock = clock

    async def claim(
        self,
        entry_id: UUID,
        *,
        now: datetime | None = None,
        expected_status: EntryStatus | None = None,
    ) -> bool:
        """
        Try to acquire the lease on an entry.

        Succeeds when the entry is unleased, or its lease was acquired before
        ``now - lease_timeout``. With ``expected_status`` the entry must also
        currently be in that status.

        Args:
            entry_id: The entry UUID.
            now: Acquisition time, defaults to the clock.
            expected_status: Optional status precondition.

        Returns:
            True iff this worker now holds the lease.
        """
        now = now or self._clock()
        guard = EntryGuard(
            lease_claimable_before=now - self.lease_timeout,
            status_in=frozenset({expected_status}) if expected_status is not None else None,
        )
        changes = EntryChanges(lease=LeasedBy(worker_id=self.worker_id, since=now))

        with get_tracer().start_as_current_span(SPAN_CLAIM_LEASE) as span:
            span.set_attribute("entry_id", str(entry_id))
            span.set_attribute("worker_id", self.worker_id)
            rows = await self._store.conditional_update(entry_id, guard, changes)
            span.set_attribute("acquired", rows == 1)

        if rows == 1:
            get_metrics().record_lease_acquired(self.worker_id)
            logger.debug(
                "Lease acquired",
                extra={"entry_id": str(entry_id), "worker_id": self.worker_id},
            )
            return True
        return False

    async def release(self, entry_id: UUID) -> None:
        """
        Release the lease if this worker still holds it.

        Losing the lease before release (it went stale and another worker
        reclaimed it) is expected under contention; nothing is raised.

        Args:
            entry_id: The entry UUID.
        """
        guard = EntryGuard(held_by=self.worker_id)
        changes = EntryChanges(lease=UNLEASED)

        with get_tracer().start_as_current_span(SPAN_RELEASE_LEASE) as span:
            span.set_attribute("entry_id", str(entry_id))
            rows = await self._store.conditional_update(entry_id, guard, changes)

        if rows == 0:
            logger.debug(
                "Lease already gone at release",
                extra={"entry_id": str(entry_id), "worker_id": self.worker_id},
            )
