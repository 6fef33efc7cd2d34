"""
Exception types raised inside the stage-advancement core.

Lease contention and a lease lost before the stage write are not errors:
they surface as ``False`` / zero rows changed and are only logged.
"""


class EntryflowError(Exception):
    """Base class for entryflow errors."""


class StageExecutionError(EntryflowError):
    """The work of a stage failed."""

    def __init__(self, stage_index: int, message: str):
        self.stage_index = stage_index
        self.message = message
        super().__init__(f"Stage {stage_index + 1} failed: {message}")


class StoreUnavailableError(EntryflowError):
    """The record store could not complete a read or write."""


class InvalidStagePlanError(EntryflowError, ValueError):
    """A stage plan does not describe a valid forward walk of the state machine."""
