"""
SQLAlchemy database models.
Defines the Entry table.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from entryflow.constants import EntryStatus
from entryflow.types.entry import EntryRecord, ensure_utc, lease_from_columns


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Entry(Base):
    """
    Entry model representing one work item advanced through the stages.

    This is the authoritative source of truth for entry state.
    Every mutation after creation is a conditional UPDATE guarded either by
    lease ownership or by the lease being absent/stale.

    Key constraints:
    - locked_by and locked_at are set and cleared together
    - progress only moves forward: 0 -> 33 -> 66 -> 100
    """

    __tablename__ = "entries"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
        nullable=False,
    )

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    status: Mapped[EntryStatus] = mapped_column(
        Enum(EntryStatus, name="entry_status", create_constraint=True, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=EntryStatus.CREATED,
        index=True,
    )
    progress: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    result: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Lease
    locked_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )
    locked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("ix_entries_created_at", "created_at"),
        # Lease columns are set and cleared as a pair
        CheckConstraint(
            "(locked_by IS NULL) = (locked_at IS NULL)",
            name="ck_entries_lease_pair",
        ),
        CheckConstraint(
            "progress >= 0 AND progress <= 100",
            name="ck_entries_progress_range",
        ),
    )

    def to_record(self) -> EntryRecord:
        """Convert the row into an immutable snapshot."""
        return EntryRecord(
            id=self.id,
            title=self.title,
            status=EntryStatus(self.status),
            progress=self.progress,
            result=self.result,
            lease=lease_from_columns(self.locked_by, self.locked_at),
            created_at=ensure_utc(self.created_at),
            updated_at=ensure_utc(self.updated_at),
        )

    def __repr__(self) -> str:
        return (
            f"Entry(id={self.id}, status={self.status}, "
            f"progress={self.progress}, locked_by={self.locked_by})"
        )
