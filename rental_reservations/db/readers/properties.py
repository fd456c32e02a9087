from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.engine import Connection

from rental_reservations.domain.records import PropertyRecord
from rental_reservations.models.properties import Property


def get_property(
    conn: Connection, property_id: UUID, for_update: bool = False
) -> Optional[PropertyRecord]:
    """
    Fetch a property by id.

    With ``for_update=True`` the row is locked until the surrounding
    transaction ends. Booking creation takes this lock so two checkouts for
    the same property run their overlap check one after the other.

    Args:
        conn (Connection): Connection inside an open transaction when locking.
        property_id (UUID): Property ID.
        for_update (bool): Take a row lock (SELECT ... FOR UPDATE).

    Returns:
        Optional[PropertyRecord]: The property, or None if not found.
    """
    stmt = select(Property).where(Property.id == property_id)
    if for_update:
        stmt = stmt.with_for_update()
    row = conn.execute(stmt).mappings().fetchone()
    return PropertyRecord.from_row(row) if row else None


def count_host_properties(conn: Connection, host_id: UUID) -> int:
    return int(
        conn.execute(
            select(func.count()).select_from(Property).where(Property.host_id == host_id)
        ).scalar_one()
    )
