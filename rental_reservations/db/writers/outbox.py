import uuid
from datetime import datetime
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from rental_reservations.models.enums import OutboxKind, OutboxStatus
from rental_reservations.models.outbox import OutboxEvent
from rental_reservations.utils.datetime import utc_now


def enqueue_event(
    conn: Connection,
    kind: OutboxKind,
    payload: dict[str, Any],
    booking_id: Optional[UUID] = None,
) -> UUID:
    """
    Queue a side effect in the same transaction as the change that caused it.

    Args:
        conn (Connection): Connection inside the transition's transaction.
        kind (OutboxKind): What the dispatcher should do.
        payload (dict[str, Any]): JSON-serializable snapshot the dispatcher needs.
        booking_id (Optional[UUID]): Booking the event belongs to.

    Returns:
        UUID: The event id.
    """
    event_id = uuid.uuid4()
    conn.execute(
        insert(OutboxEvent).values(
            id=event_id,
            kind=kind,
            booking_id=booking_id,
            payload=payload,
            status=OutboxStatus.PENDING,
            attempts=0,
            created_at=utc_now(),
        )
    )
    return event_id


def lease_events(conn: Connection, event_ids: Sequence[UUID], until: datetime) -> None:
    """Reserve claimed events for one dispatcher until ``until``."""
    if not event_ids:
        return
    conn.execute(
        update(OutboxEvent).where(OutboxEvent.id.in_(list(event_ids))).values(leased_until=until)
    )


def mark_sent(conn: Connection, event_id: UUID, attempts: int) -> None:
    conn.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id == event_id)
        .values(
            status=OutboxStatus.SENT,
            attempts=attempts,
            last_error=None,
            leased_until=None,
            processed_at=utc_now(),
        )
    )


def record_failure(
    conn: Connection, event_id: UUID, attempts: int, error: str, give_up: bool
) -> None:
    """
    Record a failed delivery attempt.

    The event stays PENDING for the next run unless ``give_up`` is set, in
    which case it becomes FAILED and is never retried.
    """
    values: dict[str, Any] = {
        "attempts": attempts,
        "last_error": error[:2000],
        "leased_until": None,
    }
    if give_up:
        values["status"] = OutboxStatus.FAILED
        values["processed_at"] = utc_now()
    conn.execute(update(OutboxEvent).where(OutboxEvent.id == event_id).values(**values))
