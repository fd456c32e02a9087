"""
Outbox dispatcher.

Delivers side effects queued by booking transitions. Each run claims a batch
of PENDING events in a short transaction that leases them to this run, then
performs them with no transaction open and records each outcome in its own
transaction. A failed delivery is retried on later runs until
``OUTBOX_MAX_ATTEMPTS``, then the event is marked FAILED. Booking state is
never touched here.

An outcome that cannot be recorded leaves the event leased: it is not sent
again until the lease runs out.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import partial
from typing import Any, Callable, Optional

import structlog
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from rental_reservations.config import OUTBOX_LEASE_SECONDS, OUTBOX_MAX_ATTEMPTS
from rental_reservations.db.readers.outbox import find_claimable_events
from rental_reservations.db.writers.outbox import lease_events, mark_sent, record_failure
from rental_reservations.metrics import outbox_dispatched
from rental_reservations.models.enums import OutboxKind
from rental_reservations.services.email import EmailSender
from rental_reservations.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


@dataclass
class DispatchStats:
    claimed: int = 0
    sent: int = 0
    retried: int = 0
    failed: int = 0
    unrecorded: int = 0


def _handlers(email_sender: EmailSender) -> dict[OutboxKind, Callable[[dict[str, Any]], None]]:
    return {
        OutboxKind.BOOKING_CONFIRMATION_EMAIL: email_sender.send_booking_confirmation,
    }


def claim_events(
    engine: Engine, batch_size: int, now: datetime, lease_seconds: int = OUTBOX_LEASE_SECONDS
) -> list[dict[str, Any]]:
    """Claim and lease up to ``batch_size`` events; the row locks end with this call."""
    with engine.begin() as conn:
        events = find_claimable_events(conn, batch_size, now)
        lease_events(conn, [e["id"] for e in events], now + timedelta(seconds=lease_seconds))
    return events


def _record(engine: Engine, log: Any, write: Callable[[Connection], None]) -> bool:
    try:
        with engine.begin() as conn:
            write(conn)
    except SQLAlchemyError as e:
        log.error("outbox_result_not_recorded", error=str(e))
        return False
    return True


def dispatch_outbox(
    engine: Engine,
    email_sender: EmailSender,
    batch_size: int = 20,
    max_attempts: int = OUTBOX_MAX_ATTEMPTS,
    lease_seconds: int = OUTBOX_LEASE_SECONDS,
    now: Optional[datetime] = None,
) -> DispatchStats:
    """
    Deliver one batch of pending outbox events.

    Args:
        engine: SQLAlchemy engine
        email_sender: Sender used for confirmation emails
        batch_size: Maximum events handled in this run
        max_attempts: Attempts after which an event is marked FAILED
        lease_seconds: How long claimed events are reserved for this run
        now: Claim time, defaults to the current time

    Returns:
        DispatchStats: Counts of claimed, sent, retried, failed and unrecorded events
    """
    stats = DispatchStats()
    handlers = _handlers(email_sender)

    events = claim_events(engine, batch_size, now or utc_now(), lease_seconds)
    stats.claimed = len(events)

    for event in events:
        kind = OutboxKind(event["kind"])
        event_id = event["id"]
        attempts = event["attempts"] + 1
        log = logger.bind(
            event_id=str(event_id),
            kind=kind.value,
            booking_id=str(event["booking_id"]) if event["booking_id"] else None,
            attempt=attempts,
        )

        try:
            handlers[kind](event["payload"])
        except Exception as e:
            error = str(e)
            give_up = attempts >= max_attempts
            write = partial(
                record_failure, event_id=event_id, attempts=attempts, error=error, give_up=give_up
            )
            if not _record(engine, log, write):
                stats.unrecorded += 1
            if give_up:
                stats.failed += 1
                outbox_dispatched.labels(kind=kind.value, result="failed").inc()
                log.error("outbox_event_failed", error=error)
            else:
                stats.retried += 1
                outbox_dispatched.labels(kind=kind.value, result="retry").inc()
                log.warning("outbox_event_retry_scheduled", error=error)
            continue

        stats.sent += 1
        outbox_dispatched.labels(kind=kind.value, result="sent").inc()
        if _record(engine, log, partial(mark_sent, event_id=event_id, attempts=attempts)):
            log.info("outbox_event_sent")
        else:
            stats.unrecorded += 1

    if stats.claimed:
        logger.info(
            "outbox_dispatch_complete",
            claimed=stats.claimed,
            sent=stats.sent,
            retried=stats.retried,
            failed=stats.failed,
            unrecorded=stats.unrecorded,
        )
    return stats
