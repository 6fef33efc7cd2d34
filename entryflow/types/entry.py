"""
Entry-related type definitions shared by the record stores and the worker.

The lease is persisted as two nullable columns (``locked_by``, ``locked_at``)
but is only ever handled here as a single ``Lease`` value, so a half-set
lease cannot be built in application code.
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from entryflow.constants import EntryStatus


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (some dialects drop the offset)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(frozen=True)
class Unleased:
    """No worker holds the entry."""


@dataclass(frozen=True)
class LeasedBy:
    """A worker holds the entry since ``since``."""

    worker_id: str
    since: datetime

    def is_stale(self, now: datetime, lease_timeout: timedelta) -> bool:
        """Check whether the lease is older than the reclaim window."""
        return ensure_utc(self.since) < ensure_utc(now) - lease_timeout


Lease = Unleased | LeasedBy

UNLEASED = Unleased()


def lease_from_columns(locked_by: str | None, locked_at: datetime | None) -> Lease:
    """
    Build a Lease from its persisted column pair.

    Raises:
        ValueError: If only one of the two columns is set.
    """
    if locked_by is None and locked_at is None:
        return UNLEASED
    if locked_by is None or locked_at is None:
        raise ValueError(
            f"Inconsistent lease columns: locked_by={locked_by!r}, locked_at={locked_at!r}"
        )
    return LeasedBy(worker_id=locked_by, since=ensure_utc(locked_at))


def lease_to_columns(lease: Lease) -> dict[str, Any]:
    """Flatten a Lease into its persisted column pair."""
    if isinstance(lease, LeasedBy):
        return {"locked_by": lease.worker_id, "locked_at": lease.since}
    return {"locked_by": None, "locked_at": None}


@dataclass(frozen=True)
class EntryRecord:
    """Point-in-time snapshot of an entry as read from a record store."""

    id: UUID
    title: str
    status: EntryStatus
    progress: int
    result: str | None
    lease: Lease
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def locked_by(self) -> str | None:
        return self.lease.worker_id if isinstance(self.lease, LeasedBy) else None

    @property
    def locked_at(self) -> datetime | None:
        return self.lease.since if isinstance(self.lease, LeasedBy) else None

    def apply(self, changes: "EntryChanges", now: datetime) -> "EntryRecord":
        """Return a copy with ``changes`` applied and ``updated_at`` refreshed."""
        values: dict[str, Any] = {"updated_at": now}
        if changes.status is not None:
            values["status"] = changes.status
        if changes.progress is not None:
            values["progress"] = changes.progress
        if changes.result is not None:
            values["result"] = changes.result
        if changes.lease is not None:
            values["lease"] = changes.lease
        return replace(self, **values)


@dataclass(frozen=True)
class EntryGuard:
    """
    Predicate evaluated by the store inside a conditional update.

    All conditions that are set must hold (logical AND):
    - lease_claimable_before: the entry is unleased, or its lease was
      acquired strictly before this instant (stale)
    - held_by: the lease is currently held by this worker
    - status_in: the entry's status is one of these
    """

    lease_claimable_before: datetime | None = None
    held_by: str | None = None
    status_in: frozenset[EntryStatus] | None = None

    def matches(self, record: EntryRecord) -> bool:
        if self.lease_claimable_before is not None:
            lease = record.lease
            if isinstance(lease, LeasedBy) and not (
                ensure_utc(lease.since) < ensure_utc(self.lease_claimable_before)
            ):
                return False
        if self.held_by is not None and record.locked_by != self.held_by:
            return False
        if self.status_in is not None and record.status not in self.status_in:
            return False
        return True


@dataclass(frozen=True)
class EntryChanges:
    """
    Field assignments applied by a conditional update.

    ``None`` leaves a field untouched. ``result`` is never cleared once set.
    """

    status: EntryStatus | None = None
    progress: int | None = None
    result: str | None = None
    lease: Lease | None = None

    def to_columns(self) -> dict[str, Any]:
        """Column values for a SQL UPDATE."""
        values: dict[str, Any] = {}
        if self.status is not None:
            values["status"] = self.status
        if self.progress is not None:
            values["progress"] = self.progress
        if self.result is not None:
            values["result"] = self.result
        if self.lease is not None:
            values.update(lease_to_columns(self.lease))
        return values


@dataclass
class EntryPage:
    """A page of entries plus the total count, newest first."""

    entries: list[EntryRecord] = field(default_factory=list)
    total: int = 0
