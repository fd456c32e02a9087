from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.engine import Connection

from rental_reservations.domain.records import MessageRecord
from rental_reservations.models.messages import Conversation, ConversationParticipant, Message
from rental_reservations.models.users import User


def find_conversation_between(
    conn: Connection, user_id: UUID, other_user_id: UUID
) -> Optional[UUID]:
    """
    Find an existing two-party conversation between two users.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        user_id (UUID): First participant.
        other_user_id (UUID): Second participant.

    Returns:
        Optional[UUID]: Conversation id, or None when the pair has never talked.
    """
    stmt = (
        select(ConversationParticipant.conversation_id)
        .where(ConversationParticipant.user_id.in_([user_id, other_user_id]))
        .group_by(ConversationParticipant.conversation_id)
        .having(func.count(func.distinct(ConversationParticipant.user_id)) == 2)
        .limit(1)
    )
    row = conn.execute(stmt).fetchone()
    return row[0] if row else None


def conversation_exists(conn: Connection, conversation_id: UUID) -> bool:
    result = conn.execute(select(Conversation.id).where(Conversation.id == conversation_id))
    return result.fetchone() is not None


def get_participant_ids(conn: Connection, conversation_id: UUID) -> list[UUID]:
    result = conn.execute(
        select(ConversationParticipant.user_id)
        .where(ConversationParticipant.conversation_id == conversation_id)
        .order_by(ConversationParticipant.user_id)
    )
    return [row[0] for row in result]


def list_conversations_for_user(conn: Connection, user_id: UUID) -> list[dict]:
    """
    List the conversations a user takes part in, most recently active first.

    Returns:
        list[dict]: Rows with ``id`` and ``updated_at``.
    """
    stmt = (
        select(Conversation.id, Conversation.updated_at)
        .join(
            ConversationParticipant,
            ConversationParticipant.conversation_id == Conversation.id,
        )
        .where(ConversationParticipant.user_id == user_id)
        .order_by(Conversation.updated_at.desc())
    )
    return [dict(row) for row in conn.execute(stmt).mappings()]


def list_messages(
    conn: Connection, conversation_id: UUID, limit: Optional[int] = None
) -> list[MessageRecord]:
    """
    Messages in a conversation in the order they were sent.

    With ``limit`` only the latest ``limit`` messages are returned (still
    oldest first), which is what conversation previews need.
    """
    stmt = (
        select(Message, User.name.label("sender_name"))
        .join(User, User.id == Message.sender_id)
        .where(Message.conversation_id == conversation_id)
    )
    if limit is not None:
        stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)
        rows = list(conn.execute(stmt).mappings())
        rows.reverse()
    else:
        stmt = stmt.order_by(Message.created_at, Message.id)
        rows = list(conn.execute(stmt).mappings())
    return [MessageRecord.from_row(row) for row in rows]
