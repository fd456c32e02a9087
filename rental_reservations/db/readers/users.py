from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.engine import Connection

from rental_reservations.domain.records import UserRecord
from rental_reservations.models.users import User


def get_user(conn: Connection, user_id: UUID) -> Optional[UserRecord]:
    """
    Fetch a user by id.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        user_id (UUID): User ID.

    Returns:
        Optional[UserRecord]: The user, or None if not found.
    """
    row = conn.execute(select(User).where(User.id == user_id)).mappings().fetchone()
    return UserRecord.from_row(row) if row else None


def user_exists(conn: Connection, user_id: UUID) -> bool:
    result = conn.execute(select(User.id).where(User.id == user_id))
    return result.fetchone() is not None
