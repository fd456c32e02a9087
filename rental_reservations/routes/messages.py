from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.engine import Engine

from rental_reservations.dependencies import get_current_user_id, get_db_engine, get_publisher
from rental_reservations.errors import ReservationError
from rental_reservations.routes._helpers import to_http_exception
from rental_reservations.schemas.messages import ConversationCreatePayload, MessageCreatePayload
from rental_reservations.services.messaging import (
    get_conversation,
    get_or_create_conversation,
    list_conversations,
    send_message,
)
from rental_reservations.services.pubsub import Publisher

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/conversations")
def get_conversations(
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """Conversations the caller takes part in, each with its latest message."""
    try:
        conversations = list_conversations(engine, user_id)
        return {"conversations": [c.to_dict() for c in conversations]}
    except Exception as e:
        logger.exception("conversation_list_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/conversations")
def open_conversation(
    payload: ConversationCreatePayload,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """Get the conversation with another user, creating it on first contact."""
    try:
        conversation = get_or_create_conversation(engine, user_id, payload.user_id)
        return conversation.to_dict()

    except ReservationError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("conversation_open_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/conversations/{conversation_id}")
def get_conversation_endpoint(
    conversation_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    A conversation with all of its messages.

    Opening it marks the other participants' messages as read.
    """
    try:
        conversation = get_conversation(engine, conversation_id, user_id)
        return conversation.to_dict()

    except ReservationError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception(
            "conversation_fetch_failed", conversation_id=str(conversation_id), error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/messages", status_code=status.HTTP_201_CREATED)
def post_message(
    payload: MessageCreatePayload,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_db_engine),
    publisher: Publisher = Depends(get_publisher),
) -> dict[str, Any]:
    """
    Send a message and publish it on ``conversation-{id}``.

    Returns:
        dict: {"message": "Message sent successfully", "data": <message + optimistic_id>}
    """
    try:
        data = send_message(
            engine,
            publisher,
            payload.conversation_id,
            user_id,
            payload.content,
            optimistic_id=payload.optimistic_id,
        )
        return {"message": "Message sent successfully", "data": data}

    except ReservationError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception(
            "message_send_failed", conversation_id=str(payload.conversation_id), error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")
