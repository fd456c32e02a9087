"""
Guest/host conversations.

A pair of users shares one conversation, created on demand or when a booking
between them is confirmed. Sending a message persists it first and only then
publishes it to subscribers. Neither a failed notification nor a failed
publish loses the message.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy.engine import Connection, Engine

from rental_reservations.db.readers.messages import (
    conversation_exists,
    find_conversation_between,
    get_participant_ids,
    list_conversations_for_user,
    list_messages,
)
from rental_reservations.db.readers.users import get_user, user_exists
from rental_reservations.db.writers.messages import (
    create_conversation,
    insert_message,
    mark_messages_read,
)
from rental_reservations.domain.records import ConversationRecord, MessageRecord
from rental_reservations.errors import (
    ConversationNotFoundError,
    DataAccessError,
    PermissionDeniedError,
    ValidationError,
)
from rental_reservations.metrics import messages_published, notification_failures
from rental_reservations.models.enums import NotificationType
from rental_reservations.services.notifications import emit
from rental_reservations.services.pubsub import NEW_MESSAGE_EVENT, Publisher, conversation_channel

logger = structlog.get_logger(__name__)

MAX_MESSAGE_LENGTH = 5000
PREVIEW_LENGTH = 80


def ensure_conversation(conn: Connection, user_id: UUID, other_user_id: UUID) -> tuple[UUID, bool]:
    """
    Return the pair's conversation id, creating it if needed.

    Returns:
        tuple[UUID, bool]: Conversation id and whether it was created now
    """
    existing = find_conversation_between(conn, user_id, other_user_id)
    if existing is not None:
        return existing, False
    return create_conversation(conn, [user_id, other_user_id]), True


def get_or_create_conversation(
    engine: Engine, user_id: UUID, other_user_id: UUID
) -> ConversationRecord:
    """
    Open the conversation between the caller and another user.

    Raises:
        ValidationError: If the other user is the caller or does not exist
    """
    if user_id == other_user_id:
        raise ValidationError("Cannot start a conversation with yourself")

    with engine.begin() as conn:
        if not user_exists(conn, other_user_id):
            raise ValidationError("User not found")
        conversation_id, created = ensure_conversation(conn, user_id, other_user_id)
        participants = get_participant_ids(conn, conversation_id)
        messages = list_messages(conn, conversation_id)

    if created:
        logger.info(
            "conversation_created",
            conversation_id=str(conversation_id),
            user_id=str(user_id),
            other_user_id=str(other_user_id),
        )

    return ConversationRecord(
        id=conversation_id,
        participant_ids=tuple(participants),
        messages=tuple(messages),
    )


def _notify_recipient(conn: Connection, recipient_id: UUID, text: str, message_id: UUID) -> None:
    """Record a MESSAGE_RECEIVED notification in a savepoint; failures are only logged."""
    try:
        with conn.begin_nested():
            emit(conn, recipient_id, NotificationType.MESSAGE_RECEIVED, "New message", text)
    except DataAccessError as e:
        notification_failures.labels(type=NotificationType.MESSAGE_RECEIVED.value).inc()
        logger.error(
            "message_notification_failed",
            recipient_id=str(recipient_id),
            message_id=str(message_id),
            error=e.message,
        )


def send_message(
    engine: Engine,
    publisher: Publisher,
    conversation_id: UUID,
    sender_id: UUID,
    content: str,
    optimistic_id: Optional[str] = None,
) -> dict[str, Any]:
    """
    Persist a message, notify the other participants and publish it.

    The published payload carries ``optimistic_id`` back so the sender's
    client can swap its placeholder for the stored message.

    Args:
        engine: SQLAlchemy engine
        publisher: Pub/sub publisher for ``conversation-{id}`` channels
        conversation_id: Target conversation
        sender_id: Authenticated sender, must be a participant
        content: Message text
        optimistic_id: Client-generated placeholder id, echoed back

    Returns:
        dict: The stored message as published

    Raises:
        ValidationError: If content is empty or too long
        ConversationNotFoundError: If the conversation does not exist
        PermissionDeniedError: If the sender is not a participant
    """
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message content is required")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message content cannot exceed {MAX_MESSAGE_LENGTH} characters")

    with engine.begin() as conn:
        if not conversation_exists(conn, conversation_id):
            raise ConversationNotFoundError()
        participants = get_participant_ids(conn, conversation_id)
        if sender_id not in participants:
            raise PermissionDeniedError("You are not a participant in this conversation")

        sender = get_user(conn, sender_id)
        sender_name = sender.name if sender else None
        row = insert_message(conn, conversation_id, sender_id, text)

        preview = text if len(text) <= PREVIEW_LENGTH else text[:PREVIEW_LENGTH] + "..."
        for recipient_id in participants:
            if recipient_id != sender_id:
                _notify_recipient(
                    conn, recipient_id, f"{sender_name or 'Someone'}: {preview}", row["id"]
                )

    message = MessageRecord.from_row({**row, "sender_name": sender_name})
    payload = {**message.to_dict(), "optimistic_id": optimistic_id}

    logger.info(
        "message_sent",
        conversation_id=str(conversation_id),
        message_id=str(message.id),
        sender_id=str(sender_id),
    )

    try:
        publisher.publish(conversation_channel(conversation_id), NEW_MESSAGE_EVENT, payload)
        messages_published.labels(status="success").inc()
    except Exception as e:
        messages_published.labels(status="failure").inc()
        logger.error(
            "message_publish_failed",
            conversation_id=str(conversation_id),
            message_id=str(message.id),
            error=str(e),
        )

    return payload


def list_conversations(engine: Engine, user_id: UUID) -> list[ConversationRecord]:
    """Conversations the user takes part in, each with its latest message."""
    conversations: list[ConversationRecord] = []
    with engine.connect() as conn:
        for row in list_conversations_for_user(conn, user_id):
            conversations.append(
                ConversationRecord(
                    id=row["id"],
                    participant_ids=tuple(get_participant_ids(conn, row["id"])),
                    messages=tuple(list_messages(conn, row["id"], limit=1)),
                    updated_at=row["updated_at"],
                )
            )
    return conversations


def get_conversation(engine: Engine, conversation_id: UUID, user_id: UUID) -> ConversationRecord:
    """
    Load a conversation with all its messages and mark the other side's messages read.

    Raises:
        ConversationNotFoundError: If it does not exist or the user is not a participant
    """
    with engine.begin() as conn:
        participants = get_participant_ids(conn, conversation_id)
        if user_id not in participants:
            raise ConversationNotFoundError()
        marked = mark_messages_read(conn, conversation_id, user_id)
        messages = list_messages(conn, conversation_id)

    if marked:
        logger.debug(
            "messages_marked_read",
            conversation_id=str(conversation_id),
            user_id=str(user_id),
            count=marked,
        )

    return ConversationRecord(
        id=conversation_id,
        participant_ids=tuple(participants),
        messages=tuple(messages),
    )
