"""Initial schema with entries table

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create enum using raw SQL with IF NOT EXISTS
    op.execute("""
        DO $$ BEGIN
            CREATE TYPE entry_status AS ENUM ('CREATED', 'STAGE_1', 'STAGE_2', 'COMPLETED', 'FAILED');
        EXCEPTION
            WHEN duplicate_object THEN null;
        END $$;
    """)

    op.create_table(
        "entries",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column(
            "status",
            postgresql.ENUM(
                "CREATED", "STAGE_1", "STAGE_2", "COMPLETED", "FAILED",
                name="entry_status",
                create_type=False,
            ),
            nullable=False,
            server_default="CREATED",
        ),
        sa.Column("progress", sa.Integer, nullable=False, server_default="0"),
        sa.Column("result", sa.Text, nullable=True),
        sa.Column("locked_by", sa.String(255), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id"),
        # Lease columns are set and cleared as a pair
        sa.CheckConstraint(
            "(locked_by IS NULL) = (locked_at IS NULL)",
            name="ck_entries_lease_pair",
        ),
        sa.CheckConstraint(
            "progress >= 0 AND progress <= 100",
            name="ck_entries_progress_range",
        ),
    )

    op.create_index("ix_entries_status", "entries", ["status"])
    op.create_index("ix_entries_locked_by", "entries", ["locked_by"])
    op.create_index("ix_entries_locked_at", "entries", ["locked_at"])
    op.create_index("ix_entries_created_at", "entries", ["created_at"])

    # Partial index for the sweeper's stalled-entry scan
    op.execute("""
        CREATE INDEX ix_entries_active_updated
        ON entries (updated_at)
        WHERE status IN ('CREATED', 'STAGE_1', 'STAGE_2')
    """)


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS ix_entries_active_updated")
    op.drop_index("ix_entries_created_at")
    op.drop_index("ix_entries_locked_at")
    op.drop_index("ix_entries_locked_by")
    op.drop_index("ix_entries_status")

    op.drop_table("entries")

    op.execute("DROP TYPE IF EXISTS entry_status")
