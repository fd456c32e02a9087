"""Add leased_until to outbox events

Revision ID: 8c2e5d1a9b63
Revises: 3f9a1c2b7d40
Create Date: 2026-10-20 14:03:52.718240

"""

import sqlalchemy as sa

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "8c2e5d1a9b63"
down_revision = "3f9a1c2b7d40"
branch_labels = None
depends_on = None

SCHEMA = "rentals"


def upgrade() -> None:
    """Upgrade schema."""
    op.add_column(
        "outbox_events",
        sa.Column("leased_until", sa.DateTime(timezone=True), nullable=True),
        schema=SCHEMA,
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_column("outbox_events", "leased_until", schema=SCHEMA)
