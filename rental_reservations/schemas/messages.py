from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ConversationCreatePayload(BaseModel):
    user_id: UUID = Field(..., description="User to open a conversation with")


class MessageCreatePayload(BaseModel):
    """
    Schema for sending a chat message.

    ``optimistic_id`` is the client's placeholder id; it is echoed back in the
    response and in the published event.
    """

    conversation_id: UUID = Field(..., description="Conversation to post in")
    content: str = Field(..., description="Message text")
    optimistic_id: Optional[str] = Field(None, max_length=100, description="Client placeholder id")
