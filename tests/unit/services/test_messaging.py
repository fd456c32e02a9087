"""
Unit tests for conversations and message publishing.
"""

from __future__ import annotations

import uuid
from typing import Any, Callable
from unittest.mock import patch

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from rental_reservations.errors import (
    ConversationNotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from rental_reservations.models.enums import NotificationType
from rental_reservations.services.messaging import (
    get_conversation,
    get_or_create_conversation,
    list_conversations,
    send_message,
)
from rental_reservations.services.notifications import list_notifications


@pytest.mark.unit
def test_get_or_create_conversation_is_reused(
    sqlite_engine: Engine, guest_id: uuid.UUID, host_id: uuid.UUID
) -> None:
    first = get_or_create_conversation(sqlite_engine, guest_id, host_id)
    second = get_or_create_conversation(sqlite_engine, host_id, guest_id)

    assert first.id == second.id
    assert set(first.participant_ids) == {guest_id, host_id}


@pytest.mark.unit
def test_conversation_with_yourself_is_rejected(
    sqlite_engine: Engine, guest_id: uuid.UUID
) -> None:
    with pytest.raises(ValidationError):
        get_or_create_conversation(sqlite_engine, guest_id, guest_id)


@pytest.mark.unit
def test_conversation_with_unknown_user_is_rejected(
    sqlite_engine: Engine, guest_id: uuid.UUID
) -> None:
    with pytest.raises(ValidationError, match="User not found"):
        get_or_create_conversation(sqlite_engine, guest_id, uuid.uuid4())


@pytest.mark.unit
def test_send_message_persists_notifies_and_publishes(
    sqlite_engine: Engine, guest_id: uuid.UUID, host_id: uuid.UUID, fake_publisher: Any
) -> None:
    conversation = get_or_create_conversation(sqlite_engine, guest_id, host_id)

    payload = send_message(
        sqlite_engine,
        fake_publisher,
        conversation.id,
        guest_id,
        "  Is early check-in possible?  ",
        optimistic_id="tmp-1",
    )

    assert payload["content"] == "Is early check-in possible?"
    assert payload["optimistic_id"] == "tmp-1"
    assert payload["sender"] == {"id": str(guest_id), "name": "Gary Guest"}
    channel, event, data = fake_publisher.published[0]
    assert channel == f"conversation-{conversation.id}"
    assert event == "new-message"
    assert data == payload

    notifications, unread = list_notifications(sqlite_engine, host_id)
    assert unread == 1
    assert notifications[0].type is NotificationType.MESSAGE_RECEIVED
    assert notifications[0].message == "Gary Guest: Is early check-in possible?"
    assert list_notifications(sqlite_engine, guest_id)[1] == 0


@pytest.mark.unit
def test_publish_failure_keeps_the_message(
    sqlite_engine: Engine, guest_id: uuid.UUID, host_id: uuid.UUID, fake_publisher: Any
) -> None:
    conversation = get_or_create_conversation(sqlite_engine, guest_id, host_id)
    fake_publisher.fail = True

    send_message(sqlite_engine, fake_publisher, conversation.id, guest_id, "Hello")

    stored = get_conversation(sqlite_engine, conversation.id, host_id)
    assert [m.content for m in stored.messages] == ["Hello"]


@pytest.mark.unit
def test_notification_failure_keeps_the_message(
    sqlite_engine: Engine, guest_id: uuid.UUID, host_id: uuid.UUID, fake_publisher: Any
) -> None:
    """Test that a failed MESSAGE_RECEIVED insert is rolled back alone."""
    conversation = get_or_create_conversation(sqlite_engine, guest_id, host_id)

    with patch("rental_reservations.services.notifications.insert_notification") as mock_insert:
        mock_insert.side_effect = OperationalError("INSERT", {}, Exception("disk I/O error"))
        payload = send_message(sqlite_engine, fake_publisher, conversation.id, guest_id, "Hello")

    stored = get_conversation(sqlite_engine, conversation.id, host_id)
    assert [m.content for m in stored.messages] == ["Hello"]
    assert fake_publisher.published[0][2] == payload
    notifications, unread = list_notifications(sqlite_engine, host_id)
    assert (notifications, unread) == ([], 0)


@pytest.mark.unit
@pytest.mark.parametrize("content", ["", "   ", "x" * 5001])
def test_invalid_content_is_rejected(
    sqlite_engine: Engine,
    guest_id: uuid.UUID,
    host_id: uuid.UUID,
    fake_publisher: Any,
    content: str,
) -> None:
    conversation = get_or_create_conversation(sqlite_engine, guest_id, host_id)

    with pytest.raises(ValidationError):
        send_message(sqlite_engine, fake_publisher, conversation.id, guest_id, content)

    assert fake_publisher.published == []


@pytest.mark.unit
def test_non_participant_cannot_send(
    sqlite_engine: Engine,
    guest_id: uuid.UUID,
    host_id: uuid.UUID,
    fake_publisher: Any,
    make_user: Callable[..., uuid.UUID],
) -> None:
    conversation = get_or_create_conversation(sqlite_engine, guest_id, host_id)

    with pytest.raises(PermissionDeniedError):
        send_message(sqlite_engine, fake_publisher, conversation.id, make_user(), "Hi there")


@pytest.mark.unit
def test_send_to_unknown_conversation(
    sqlite_engine: Engine, guest_id: uuid.UUID, fake_publisher: Any
) -> None:
    with pytest.raises(ConversationNotFoundError):
        send_message(sqlite_engine, fake_publisher, uuid.uuid4(), guest_id, "Hello?")


@pytest.mark.unit
def test_opening_conversation_marks_other_side_read(
    sqlite_engine: Engine, guest_id: uuid.UUID, host_id: uuid.UUID, fake_publisher: Any
) -> None:
    conversation = get_or_create_conversation(sqlite_engine, guest_id, host_id)
    send_message(sqlite_engine, fake_publisher, conversation.id, guest_id, "First")
    send_message(sqlite_engine, fake_publisher, conversation.id, host_id, "Reply")

    as_guest = get_conversation(sqlite_engine, conversation.id, guest_id)
    as_host = get_conversation(sqlite_engine, conversation.id, host_id)

    assert [m.content for m in as_guest.messages] == ["First", "Reply"]
    # the guest opened first, so only the host's reply was read at that point
    assert [m.is_read for m in as_guest.messages] == [False, True]
    assert [m.is_read for m in as_host.messages] == [True, True]


@pytest.mark.unit
def test_outsider_cannot_open_conversation(
    sqlite_engine: Engine,
    guest_id: uuid.UUID,
    host_id: uuid.UUID,
    make_user: Callable[..., uuid.UUID],
) -> None:
    conversation = get_or_create_conversation(sqlite_engine, guest_id, host_id)

    with pytest.raises(ConversationNotFoundError):
        get_conversation(sqlite_engine, conversation.id, make_user())


@pytest.mark.unit
def test_list_conversations_shows_latest_message(
    sqlite_engine: Engine,
    guest_id: uuid.UUID,
    host_id: uuid.UUID,
    fake_publisher: Any,
    make_user: Callable[..., uuid.UUID],
) -> None:
    quiet = get_or_create_conversation(sqlite_engine, guest_id, make_user(name="Quinn Quiet"))
    busy = get_or_create_conversation(sqlite_engine, guest_id, host_id)
    send_message(sqlite_engine, fake_publisher, busy.id, guest_id, "One")
    send_message(sqlite_engine, fake_publisher, busy.id, host_id, "Two")

    conversations = list_conversations(sqlite_engine, guest_id)

    assert [c.id for c in conversations] == [busy.id, quiet.id]
    assert [m.content for m in conversations[0].messages] == ["Two"]
    assert conversations[1].messages == ()
