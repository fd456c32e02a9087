"""
FastAPI dependency injection providers.

Routes receive the engine, the caller's identity and the external service
adapters through these providers, so tests can swap any of them with
``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Generator, Optional
from uuid import UUID

from fastapi import Header, HTTPException, status
from sqlalchemy.engine import Engine

from rental_reservations.db.engine import engine
from rental_reservations.services.email import EmailSender, ResendEmailSender
from rental_reservations.services.payments import PaymentGateway, StripeGateway
from rental_reservations.services.pubsub import Publisher, RedisPublisher

_publisher: Optional[RedisPublisher] = None


def get_db_engine() -> Generator[Engine, None, None]:
    """
    Provide database engine for dependency injection.

    Yields:
        Engine: SQLAlchemy database engine

    Testing Example:
        >>> app.dependency_overrides[get_db_engine] = lambda: sqlite_engine
        >>> client = TestClient(app)
    """
    yield engine


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> UUID:
    """
    Identity of the caller, set by the upstream auth gateway in ``X-User-Id``.

    Raises:
        HTTPException: 401 if the header is missing or not a UUID
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not authenticated",
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not authenticated",
        )


def get_payment_gateway() -> PaymentGateway:
    return StripeGateway()


def get_email_sender() -> EmailSender:
    return ResendEmailSender()


def get_publisher() -> Publisher:
    """Shared Redis publisher; its connection pool lives for the process."""
    global _publisher
    if _publisher is None:
        _publisher = RedisPublisher()
    return _publisher
