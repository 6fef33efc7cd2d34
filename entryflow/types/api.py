"""
API request and response type definitions.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from entryflow.constants import EntryStatus
from entryflow.types.entry import EntryRecord


class CreateEntryRequest(BaseModel):
    """Request body for creating a new entry."""

    title: str = Field(..., max_length=255, description="Display title of the entry")

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title is required and must be a non-empty string")
        return value


class EntryResponse(BaseModel):
    """Full entry details response."""

    id: UUID
    title: str
    status: EntryStatus
    progress: int
    result: str | None
    locked_by: str | None
    locked_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: EntryRecord) -> "EntryResponse":
        return cls(
            id=record.id,
            title=record.title,
            status=record.status,
            progress=record.progress,
            result=record.result,
            locked_by=record.locked_by,
            locked_at=record.locked_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class EntryListResponse(BaseModel):
    """Paginated list of entries."""

    entries: list[EntryResponse]
    total: int
    limit: int
    offset: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    store: str
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response body raised through HTTPException."""

    detail: str
