import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Text, Uuid
from sqlalchemy.sql import func

from rental_reservations.config import SCHEMA
from rental_reservations.models.base import Base


class Conversation(Base):
    """
    ORM model for a guest-host message thread.

    A conversation is created on demand by messaging or when a booking is
    confirmed, and is reused for every later booking between the same pair.
    ``updated_at`` is bumped on each message so listings sort by activity.
    """

    __tablename__ = "conversations"
    __table_args__ = {"schema": SCHEMA}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class ConversationParticipant(Base):
    __tablename__ = "conversation_participants"
    __table_args__ = {"schema": SCHEMA}

    conversation_id = Column(
        Uuid,
        ForeignKey(f"{SCHEMA}.conversations.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id = Column(
        Uuid,
        ForeignKey(f"{SCHEMA}.users.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )


class Message(Base):
    """ORM model for a single message in a conversation."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
        {"schema": SCHEMA},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(
        Uuid,
        ForeignKey(f"{SCHEMA}.conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id = Column(
        Uuid,
        ForeignKey(f"{SCHEMA}.users.id", ondelete="CASCADE"),
        nullable=False,
    )
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
