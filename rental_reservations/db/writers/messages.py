import uuid
from datetime import datetime
from uuid import UUID

from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from rental_reservations.models.messages import Conversation, ConversationParticipant, Message
from rental_reservations.utils.datetime import utc_now


def create_conversation(conn: Connection, participant_ids: list[UUID]) -> UUID:
    """
    Create a conversation and its participant rows.

    Args:
        conn (Connection): SQLAlchemy DB connection inside a transaction.
        participant_ids (list[UUID]): Users taking part (duplicates are collapsed).

    Returns:
        UUID: The new conversation id.
    """
    conversation_id = uuid.uuid4()
    now = utc_now()
    conn.execute(
        insert(Conversation).values(id=conversation_id, created_at=now, updated_at=now)
    )
    conn.execute(
        insert(ConversationParticipant),
        [
            {"conversation_id": conversation_id, "user_id": user_id}
            for user_id in dict.fromkeys(participant_ids)
        ],
    )
    return conversation_id


def insert_message(
    conn: Connection, conversation_id: UUID, sender_id: UUID, content: str
) -> dict:
    """
    Insert a message and bump the conversation's ``updated_at``.

    Returns:
        dict: The stored row (id, conversation_id, sender_id, content, is_read, created_at).
    """
    now = utc_now()
    row = {
        "id": uuid.uuid4(),
        "conversation_id": conversation_id,
        "sender_id": sender_id,
        "content": content,
        "is_read": False,
        "created_at": now,
    }
    conn.execute(insert(Message).values(**row))
    touch_conversation(conn, conversation_id, now)
    return row


def touch_conversation(conn: Connection, conversation_id: UUID, now: datetime) -> None:
    conn.execute(
        update(Conversation).where(Conversation.id == conversation_id).values(updated_at=now)
    )


def mark_messages_read(conn: Connection, conversation_id: UUID, reader_id: UUID) -> int:
    """
    Mark messages sent by the other participants as read.

    Returns:
        int: Number of messages flipped to read.
    """
    stmt = (
        update(Message)
        .where(
            Message.conversation_id == conversation_id,
            Message.sender_id != reader_id,
            Message.is_read.is_(False),
        )
        .values(is_read=True)
    )
    return conn.execute(stmt).rowcount
