"""
Type definitions for entryflow.
Contains input/output type definitions for all functions, grouped by module.
"""

from entryflow.types.api import (
    CreateEntryRequest,
    EntryListResponse,
    EntryResponse,
    ErrorResponse,
    HealthResponse,
)
from entryflow.types.entry import (
    UNLEASED,
    EntryChanges,
    EntryGuard,
    EntryPage,
    EntryRecord,
    Lease,
    LeasedBy,
    Unleased,
)
from entryflow.types.stage import (
    StageContext,
    StagePlan,
    StageResult,
    StageTransition,
)

__all__ = [
    # API types
    "CreateEntryRequest",
    "EntryResponse",
    "EntryListResponse",
    "HealthResponse",
    "ErrorResponse",
    # Entry types
    "EntryRecord",
    "EntryGuard",
    "EntryChanges",
    "EntryPage",
    "Lease",
    "LeasedBy",
    "Unleased",
    "UNLEASED",
    # Stage types
    "StageTransition",
    "StagePlan",
    "StageContext",
    "StageResult",
]
