"""
Unit tests for entry and stage type definitions.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from entryflow.constants import EntryStatus
from entryflow.errors import InvalidStagePlanError
from entryflow.types.entry import (
    UNLEASED,
    EntryChanges,
    EntryGuard,
    EntryRecord,
    LeasedBy,
    ensure_utc,
    lease_from_columns,
    lease_to_columns,
)
from entryflow.types.stage import StagePlan


def make_record(**overrides) -> EntryRecord:
    now = datetime(2026, 1, 1, tzinfo=UTC)
    values = {
        "id": uuid4(),
        "title": "demo",
        "status": EntryStatus.CREATED,
        "progress": 0,
        "result": None,
        "lease": UNLEASED,
        "created_at": now,
        "updated_at": now,
    }
    values.update(overrides)
    return EntryRecord(**values)


class TestLease:
    """Tests for the lease sum type and its column mapping."""

    def test_columns_round_trip(self):
        since = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
        lease = LeasedBy(worker_id="w1", since=since)

        assert lease_to_columns(lease) == {"locked_by": "w1", "locked_at": since}
        assert lease_from_columns("w1", since) == lease
        assert lease_to_columns(UNLEASED) == {"locked_by": None, "locked_at": None}
        assert lease_from_columns(None, None) == UNLEASED

    @pytest.mark.parametrize(
        "locked_by,locked_at",
        [("w1", None), (None, datetime(2026, 1, 1, tzinfo=UTC))],
    )
    def test_half_set_lease_rejected(self, locked_by, locked_at):
        with pytest.raises(ValueError):
            lease_from_columns(locked_by, locked_at)

    def test_naive_timestamp_is_treated_as_utc(self):
        lease = lease_from_columns("w1", datetime(2026, 1, 1, 12, 0))
        assert lease.since.tzinfo is not None
        assert ensure_utc(datetime(2026, 1, 1)) == datetime(2026, 1, 1, tzinfo=UTC)

    def test_is_stale(self):
        since = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
        lease = LeasedBy(worker_id="w1", since=since)
        timeout = timedelta(minutes=2)

        assert lease.is_stale(since + timedelta(minutes=1), timeout) is False
        assert lease.is_stale(since + timedelta(minutes=3), timeout) is True


class TestEntryGuard:
    """Tests for in-process guard evaluation."""

    def test_claimable_when_unleased(self):
        guard = EntryGuard(lease_claimable_before=datetime(2026, 1, 1, tzinfo=UTC))
        assert guard.matches(make_record()) is True

    def test_claimable_when_stale(self):
        since = datetime(2026, 1, 1, tzinfo=UTC)
        record = make_record(lease=LeasedBy("w1", since))

        assert EntryGuard(lease_claimable_before=since + timedelta(seconds=1)).matches(record)
        assert not EntryGuard(lease_claimable_before=since).matches(record)

    def test_held_by(self):
        record = make_record(lease=LeasedBy("w1", datetime(2026, 1, 1, tzinfo=UTC)))

        assert EntryGuard(held_by="w1").matches(record) is True
        assert EntryGuard(held_by="w2").matches(record) is False
        assert EntryGuard(held_by="w1").matches(make_record()) is False

    def test_conditions_are_combined(self):
        record = make_record(
            status=EntryStatus.STAGE_1,
            lease=LeasedBy("w1", datetime(2026, 1, 1, tzinfo=UTC)),
        )

        assert EntryGuard(held_by="w1", status_in=frozenset({EntryStatus.STAGE_1})).matches(record)
        assert not EntryGuard(held_by="w1", status_in=frozenset({EntryStatus.CREATED})).matches(record)


class TestEntryChanges:
    """Tests for change sets."""

    def test_to_columns_skips_untouched_fields(self):
        changes = EntryChanges(status=EntryStatus.STAGE_1, progress=33)
        assert changes.to_columns() == {"status": EntryStatus.STAGE_1, "progress": 33}

    def test_release_writes_both_lease_columns(self):
        assert EntryChanges(lease=UNLEASED).to_columns() == {"locked_by": None, "locked_at": None}

    def test_apply_refreshes_updated_at(self):
        record = make_record()
        later = record.updated_at + timedelta(seconds=5)

        updated = record.apply(EntryChanges(status=EntryStatus.STAGE_1, progress=33), later)

        assert updated.status == EntryStatus.STAGE_1
        assert updated.progress == 33
        assert updated.result is None
        assert updated.updated_at == later
        assert record.status == EntryStatus.CREATED


class TestStagePlan:
    """Tests for stage plan construction and validation."""

    def test_default_plan(self):
        plan = StagePlan()

        assert len(plan) == 3
        assert [(t.source, t.target, t.progress) for t in plan] == [
            (EntryStatus.CREATED, EntryStatus.STAGE_1, 33),
            (EntryStatus.STAGE_1, EntryStatus.STAGE_2, 66),
            (EntryStatus.STAGE_2, EntryStatus.COMPLETED, 100),
        ]
        assert [t.is_final for t in plan] == [False, False, True]
        assert plan.progress_values == [0, 33, 66, 100]

    def test_shorter_plan(self):
        plan = StagePlan([(EntryStatus.STAGE_1, 50), (EntryStatus.COMPLETED, 100)])

        assert plan[1].source == EntryStatus.STAGE_1
        assert plan[1].is_final

    @pytest.mark.parametrize(
        "status, targets",
        [
            (EntryStatus.CREATED, [EntryStatus.STAGE_1, EntryStatus.STAGE_2, EntryStatus.COMPLETED]),
            (EntryStatus.STAGE_2, [EntryStatus.COMPLETED]),
            (EntryStatus.COMPLETED, []),
            (EntryStatus.FAILED, []),
        ],
    )
    def test_remaining(self, status, targets):
        assert [t.target for t in StagePlan().remaining(status)] == targets

    @pytest.mark.parametrize(
        "targets",
        [
            [],
            [(EntryStatus.STAGE_1, 33), (EntryStatus.STAGE_2, 66)],
            [(EntryStatus.STAGE_1, 66), (EntryStatus.STAGE_2, 33), (EntryStatus.COMPLETED, 100)],
            [(EntryStatus.COMPLETED, 100), (EntryStatus.STAGE_1, 100)],
            [(EntryStatus.FAILED, 100)],
            [(EntryStatus.STAGE_1, 33), (EntryStatus.COMPLETED, 90)],
        ],
    )
    def test_invalid_plans_rejected(self, targets):
        with pytest.raises(InvalidStagePlanError):
            StagePlan(targets)
