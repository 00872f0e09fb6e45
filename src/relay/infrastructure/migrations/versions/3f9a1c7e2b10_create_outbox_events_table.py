"""create_outbox_events_table

Create the outbox table for the transactional outbox pattern. Business
transactions insert events here; the dispatcher delivers them to the
message bus. Applied independently to the identity, auth and legal
databases.

Revision ID: 3f9a1c7e2b10
Revises:
Create Date: 2026-03-02 09:15:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "3f9a1c7e2b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "outbox_events",
        sa.Column("id", sa.Uuid(), nullable=False),  # UUIDv7, set by the application
        sa.Column(
            "aggregate_type", sa.String(length=255), nullable=False
        ),  # e.g., "Account"
        sa.Column("aggregate_id", sa.String(length=255), nullable=False),
        sa.Column(
            "event_type", sa.String(length=255), nullable=False
        ),  # e.g., "identity.account.created"
        sa.Column(
            "payload",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.String(length=16),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "processed_at", sa.DateTime(timezone=True), nullable=True
        ),  # NULL until COMPLETED
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    # Claim order: oldest PENDING first, id breaks ties
    op.create_index(
        "idx_outbox_events_pending",
        "outbox_events",
        ["created_at", "id"],
        unique=False,
        postgresql_where=sa.text("status = 'PENDING'"),
        sqlite_where=sa.text("status = 'PENDING'"),
    )
    # Retention cleanup
    op.create_index(
        "idx_outbox_events_completed",
        "outbox_events",
        ["processed_at"],
        unique=False,
        postgresql_where=sa.text("status = 'COMPLETED'"),
        sqlite_where=sa.text("status = 'COMPLETED'"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("idx_outbox_events_completed", table_name="outbox_events")
    op.drop_index("idx_outbox_events_pending", table_name="outbox_events")
    op.drop_table("outbox_events")
