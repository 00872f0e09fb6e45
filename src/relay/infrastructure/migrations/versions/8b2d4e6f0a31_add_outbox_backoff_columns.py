"""add_outbox_backoff_columns

Add next_attempt_at and updated_at to the outbox table. next_attempt_at
holds back a failed record until its backoff has elapsed; updated_at lets
the reaper find PROCESSING records abandoned by a crashed dispatcher.

Revision ID: 8b2d4e6f0a31
Revises: 3f9a1c7e2b10
Create Date: 2026-03-16 14:40:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "8b2d4e6f0a31"
down_revision: Union[str, Sequence[str], None] = "3f9a1c7e2b10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add backoff and status-change columns to the outbox table."""
    # NULL means claimable immediately
    op.add_column(
        "outbox_events",
        sa.Column(
            "next_attempt_at",
            sa.DateTime(timezone=True),
            nullable=True,
        ),
    )

    # Existing rows take the insert time as their last status change
    op.add_column(
        "outbox_events",
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    # Create partial index for failed entries (for monitoring/alerting)
    op.create_index(
        "idx_outbox_events_failed",
        "outbox_events",
        ["updated_at"],
        unique=False,
        postgresql_where=sa.text("status = 'FAILED'"),
        sqlite_where=sa.text("status = 'FAILED'"),
    )


def downgrade() -> None:
    """Remove backoff and status-change columns from the outbox table."""
    op.drop_index("idx_outbox_events_failed", table_name="outbox_events")
    op.drop_column("outbox_events", "updated_at")
    op.drop_column("outbox_events", "next_attempt_at")
