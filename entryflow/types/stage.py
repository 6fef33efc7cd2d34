"""
Stage-related type definitions for the worker.
"""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from uuid import UUID

from pydantic import BaseModel

from entryflow.config import Settings
from entryflow.constants import DEFAULT_STAGE_TARGETS, EntryStatus
from entryflow.errors import InvalidStagePlanError


@dataclass(frozen=True)
class StageTransition:
    """One step of the stage plan: ``source -> target`` at ``progress`` percent."""

    index: int
    source: EntryStatus
    target: EntryStatus
    progress: int

    @property
    def is_final(self) -> bool:
        return self.target == EntryStatus.COMPLETED


class StagePlan:
    """
    Ordered list of stage transitions consumed by the scheduler loop.

    Adding a stage is a data change: pass a longer target list.
    """

    def __init__(self, targets: Sequence[tuple[EntryStatus, int]] = DEFAULT_STAGE_TARGETS):
        if not targets:
            raise InvalidStagePlanError("Stage plan must contain at least one stage")

        transitions: list[StageTransition] = []
        source = EntryStatus.CREATED
        last_progress = 0
        for index, (target, progress) in enumerate(targets):
            target = EntryStatus(target)
            if target.is_terminal and index != len(targets) - 1:
                raise InvalidStagePlanError(f"Terminal status {target} must be the last stage")
            if target in (EntryStatus.CREATED, EntryStatus.FAILED):
                raise InvalidStagePlanError(f"{target} cannot be a stage target")
            if not last_progress < progress <= 100:
                raise InvalidStagePlanError(
                    f"Stage progress must increase within 1..100, got {progress} after {last_progress}"
                )
            transitions.append(
                StageTransition(index=index, source=source, target=target, progress=progress)
            )
            source = target
            last_progress = progress

        if transitions[-1].target != EntryStatus.COMPLETED or transitions[-1].progress != 100:
            raise InvalidStagePlanError("Last stage must reach COMPLETED at 100%")

        self._transitions = tuple(transitions)

    def __iter__(self) -> Iterator[StageTransition]:
        return iter(self._transitions)

    def __len__(self) -> int:
        return len(self._transitions)

    def __getitem__(self, index: int) -> StageTransition:
        return self._transitions[index]

    def remaining(self, status: EntryStatus) -> tuple[StageTransition, ...]:
        """Transitions still ahead of an entry in ``status``, starting with the one leaving it."""
        for transition in self._transitions:
            if transition.source == status:
                return self._transitions[transition.index:]
        return ()

    @property
    def progress_values(self) -> list[int]:
        return [0, *(t.progress for t in self._transitions)]


@dataclass
class StageContext:
    """
    Context passed to stage handlers during execution.
    Handlers get everything they need here and never touch the record store.
    """

    entry_id: UUID
    title: str
    stage: StageTransition
    stage_count: int
    worker_id: str
    delay_seconds: float = 0.0
    settings: Settings | None = None

    @property
    def stage_index(self) -> int:
        return self.stage.index

    @property
    def is_final(self) -> bool:
        return self.stage.is_final


class StageResult(BaseModel):
    """
    Result of one stage of work.
    Returned by stage handlers after processing.
    """

    success: bool
    output: str | None = None
    error: str | None = None
    duration_ms: float | None = None
