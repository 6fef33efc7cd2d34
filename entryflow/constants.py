"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class EntryStatus(StrEnum):
    """
    Entry lifecycle states.

    State transitions:
    - CREATED -> STAGE_1 (first stage done)
    - STAGE_1 -> STAGE_2 (second stage done)
    - STAGE_2 -> COMPLETED (final stage done, result set)
    - any non-terminal -> FAILED (stage or store error, result set)
    """

    CREATED = "CREATED"
    STAGE_1 = "STAGE_1"
    STAGE_2 = "STAGE_2"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[EntryStatus] = frozenset(
    {EntryStatus.COMPLETED, EntryStatus.FAILED}
)
ACTIVE_STATUSES: frozenset[EntryStatus] = frozenset(EntryStatus) - TERMINAL_STATUSES


class ContentionPolicy(StrEnum):
    """What a scheduler does when a stage claim finds a live lease."""

    SKIP = "skip"
    RETRY = "retry"


# Default stage sequence: (target status, target progress)
DEFAULT_STAGE_TARGETS: tuple[tuple[EntryStatus, int], ...] = (
    (EntryStatus.STAGE_1, 33),
    (EntryStatus.STAGE_2, 66),
    (EntryStatus.COMPLETED, 100),
)

FAILURE_RESULT_PREFIX = "Error: "

# API constants
API_PREFIX = "/api"

# Metrics names
METRIC_ENTRIES_CREATED = "entries_created_total"
METRIC_ENTRIES_FINISHED = "entries_finished_total"
METRIC_LEASE_ACQUIRED = "entry_lease_acquired_total"
METRIC_LEASE_CONTENTION = "entry_lease_contention_total"
METRIC_LEASE_LOST = "entry_lease_lost_total"
METRIC_STAGE_TRANSITIONS = "entry_stage_transitions_total"
METRIC_STAGE_DURATION = "entry_stage_duration_seconds"
METRIC_ENTRIES_RESUMED = "entries_resumed_total"

# Trace span names
SPAN_RUN_ENTRY = "run_entry"
SPAN_CLAIM_LEASE = "claim_lease"
SPAN_EXECUTE_STAGE = "execute_stage"
SPAN_PERSIST_STAGE = "persist_stage"
SPAN_RELEASE_LEASE = "release_lease"
SPAN_MARK_FAILED = "mark_failed"
