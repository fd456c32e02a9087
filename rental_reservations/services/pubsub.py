"""
Real-time fan-out of chat events over Redis pub/sub.

Clients subscribed to ``conversation-{id}`` receive a JSON envelope
``{"event": "new-message", "data": {...}}`` for every message sent.
"""

from __future__ import annotations

import json
from typing import Any, Optional, Protocol
from uuid import UUID

import redis
import structlog

from rental_reservations.config import REDIS_URL

logger = structlog.get_logger(__name__)

NEW_MESSAGE_EVENT = "new-message"


def conversation_channel(conversation_id: UUID | str) -> str:
    return f"conversation-{conversation_id}"


class Publisher(Protocol):
    def publish(self, channel: str, event: str, data: dict[str, Any]) -> None: ...


class RedisPublisher:
    """
    Publish events to Redis channels.

    The client is created on first use so importing the app never opens a
    connection.
    """

    def __init__(self, url: str = REDIS_URL, client: Optional[redis.Redis] = None) -> None:
        self.url = url
        self._client = client

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.Redis.from_url(self.url)
        return self._client

    def publish(self, channel: str, event: str, data: dict[str, Any]) -> None:
        """
        Publish ``data`` under ``event`` on ``channel``.

        Raises:
            redis.RedisError: If the server cannot be reached
        """
        envelope = json.dumps({"event": event, "data": data}, default=str)
        receivers = self.client.publish(channel, envelope)
        logger.debug("pubsub_published", channel=channel, event=event, receivers=receivers)
