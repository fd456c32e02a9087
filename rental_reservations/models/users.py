import uuid

from sqlalchemy import Column, DateTime, Enum, String, Uuid
from sqlalchemy.sql import func

from rental_reservations.config import SCHEMA
from rental_reservations.models.base import Base
from rental_reservations.models.enums import UserRole


class User(Base):
    """
    ORM model for marketplace users (guests, hosts and administrators).

    Authentication lives upstream; this table only carries what the booking
    workflow needs: who owns a property, who a booking belongs to, and where
    to send the confirmation email.
    """

    __tablename__ = "users"
    __table_args__ = {"schema": SCHEMA}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    email = Column(String(320), nullable=True, unique=True)
    role = Column(
        Enum(UserRole, name="user_role", native_enum=False, length=20),
        nullable=False,
        default=UserRole.GUEST,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
