"""Create rentals schema: users, properties, bookings, notifications, messaging, outbox

Revision ID: 3f9a1c2b7d40
Revises:
Create Date: 2026-10-19 09:12:31.204518

"""

import sqlalchemy as sa

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "3f9a1c2b7d40"
down_revision = None
branch_labels = None
depends_on = None

SCHEMA = "rentals"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    # needed for the "=" operator on uuid inside a gist exclusion constraint
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(320), nullable=True, unique=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="GUEST"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        schema=SCHEMA,
    )

    op.create_table(
        "properties",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "host_id",
            sa.Uuid(),
            sa.ForeignKey(f"{SCHEMA}.users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=True, unique=True),
        sa.Column("base_price", sa.Numeric(18, 6), nullable=False),
        sa.Column("discount_percentage", sa.Numeric(5, 2), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("max_guests", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("base_price >= 0", name="ck_properties_base_price_non_negative"),
        sa.CheckConstraint(
            "discount_percentage IS NULL OR "
            "(discount_percentage >= 0 AND discount_percentage <= 100)",
            name="ck_properties_discount_range",
        ),
        sa.CheckConstraint("max_guests >= 1", name="ck_properties_max_guests_positive"),
        schema=SCHEMA,
    )
    op.create_index("ix_rentals_properties_host_id", "properties", ["host_id"], schema=SCHEMA)

    op.create_table(
        "conversations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        *_timestamps(),
        schema=SCHEMA,
    )

    op.create_table(
        "conversation_participants",
        sa.Column(
            "conversation_id",
            sa.Uuid(),
            sa.ForeignKey(f"{SCHEMA}.conversations.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey(f"{SCHEMA}.users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_rentals_conversation_participants_user_id",
        "conversation_participants",
        ["user_id"],
        schema=SCHEMA,
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "conversation_id",
            sa.Uuid(),
            sa.ForeignKey(f"{SCHEMA}.conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "sender_id",
            sa.Uuid(),
            sa.ForeignKey(f"{SCHEMA}.users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_messages_conversation_created",
        "messages",
        ["conversation_id", "created_at"],
        schema=SCHEMA,
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("booking_number", sa.String(20), nullable=False, unique=True),
        sa.Column(
            "guest_id",
            sa.Uuid(),
            sa.ForeignKey(f"{SCHEMA}.users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "property_id",
            sa.Uuid(),
            sa.ForeignKey(f"{SCHEMA}.properties.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "conversation_id",
            sa.Uuid(),
            sa.ForeignKey(f"{SCHEMA}.conversations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("check_in_date", sa.Date(), nullable=False),
        sa.Column("check_out_date", sa.Date(), nullable=False),
        sa.Column("adults", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("children", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("infants", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("base_price", sa.Numeric(18, 6), nullable=False),
        sa.Column("discount_percentage", sa.Numeric(5, 2), nullable=True),
        sa.Column("total_amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("payment_reference", sa.String(255), nullable=True, unique=True),
        sa.Column("payment_intent_id", sa.String(255), nullable=True),
        sa.Column("guest_note", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.String(100), nullable=True),
        sa.Column("cancelled_by", sa.Uuid(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("check_out_date > check_in_date", name="ck_bookings_date_order"),
        sa.CheckConstraint("adults >= 1", name="ck_bookings_adults_positive"),
        sa.CheckConstraint(
            "children >= 0 AND infants >= 0", name="ck_bookings_counts_non_negative"
        ),
        sa.CheckConstraint("total_amount >= 0", name="ck_bookings_total_non_negative"),
        schema=SCHEMA,
    )
    op.create_index("ix_rentals_bookings_guest_id", "bookings", ["guest_id"], schema=SCHEMA)
    op.create_index(
        "ix_bookings_property_status", "bookings", ["property_id", "status"], schema=SCHEMA
    )
    op.execute(
        f"""
        ALTER TABLE {SCHEMA}.bookings
        ADD CONSTRAINT bookings_no_overlap_per_property
        EXCLUDE USING gist (
            property_id WITH =,
            daterange(check_in_date, check_out_date, '[)') WITH &&
        )
        WHERE (status IN ('PENDING', 'CONFIRMED'))
        """
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "recipient_id",
            sa.Uuid(),
            sa.ForeignKey(f"{SCHEMA}.users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "booking_id",
            sa.Uuid(),
            sa.ForeignKey(f"{SCHEMA}.bookings.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.UniqueConstraint(
            "recipient_id", "type", "booking_id", name="uq_notifications_recipient_type_booking"
        ),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_rentals_notifications_recipient_id", "notifications", ["recipient_id"], schema=SCHEMA
    )

    op.create_table(
        "outbox_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("kind", sa.String(64), nullable=False),
        sa.Column(
            "booking_id",
            sa.Uuid(),
            sa.ForeignKey(f"{SCHEMA}.bookings.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_outbox_events_status_created", "outbox_events", ["status", "created_at"], schema=SCHEMA
    )
    op.create_index(
        "ix_rentals_outbox_events_booking_id", "outbox_events", ["booking_id"], schema=SCHEMA
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("outbox_events", schema=SCHEMA)
    op.drop_table("notifications", schema=SCHEMA)
    op.drop_table("bookings", schema=SCHEMA)
    op.drop_table("messages", schema=SCHEMA)
    op.drop_table("conversation_participants", schema=SCHEMA)
    op.drop_table("conversations", schema=SCHEMA)
    op.drop_table("properties", schema=SCHEMA)
    op.drop_table("users", schema=SCHEMA)
