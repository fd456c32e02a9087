"""Payment provider webhook receiver route."""

from typing import Any, Mapping

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from rental_reservations.dependencies import get_db_engine, get_email_sender, get_payment_gateway
from rental_reservations.errors import (
    BookingNotFoundError,
    DataAccessError,
    HoldExpiredError,
    InvalidTransitionError,
    PaymentProviderError,
    PaymentVerificationError,
    ValidationError,
)
from rental_reservations.metrics import webhook_events
from rental_reservations.services.checkout import settle_paid_session
from rental_reservations.services.email import EmailSender
from rental_reservations.services.outbox import dispatch_outbox
from rental_reservations.services.payments import (
    CHECKOUT_COMPLETED_EVENT,
    CheckoutSession,
    PaymentGateway,
)

router = APIRouter()
logger = structlog.get_logger(__name__)


def _respond(
    event_type: str, outcome: str, status_code: int, content: dict[str, Any]
) -> JSONResponse:
    webhook_events.labels(event_type=event_type, outcome=outcome).inc()
    return JSONResponse(status_code=status_code, content=content)


def _ignored(event_type: str) -> JSONResponse:
    return _respond(event_type, "ignored", status.HTTP_200_OK, {"status": "ignored"})


@router.post("/webhooks/stripe")
async def receive_stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    engine: Engine = Depends(get_db_engine),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    email_sender: EmailSender = Depends(get_email_sender),
) -> JSONResponse:
    """
    Handle payment provider webhook events.

    Only ``checkout.session.completed`` with ``payment_status == "paid"``
    changes state: it confirms the booking holding the session id. The 200
    acknowledgment is sent only after the confirmation committed; the
    confirmation email goes out afterwards as a background task.

    Responses:
        400 {"error": "Invalid signature"}  signature missing or wrong, nothing changed
        400 {"error": ...}                  malformed payload or missing session id
        200 {"status": "ignored"}           other events, unpaid sessions, unknown or
                                            cancelled bookings (a retry cannot help)
        200 {"status": "accepted", ...}     booking confirmed (or already was)
        200 {"status": "refunded", ...}     hold expired, dates taken, payment refunded
        500 {"error": ...}                  database or refund failure, the provider will
                                            redeliver

    Args:
        request: FastAPI request with the raw body and Stripe-Signature header

    Returns:
        JSONResponse: Acknowledgment response
    """
    payload = await request.body()
    signature = request.headers.get("Stripe-Signature")

    try:
        event = gateway.verify_webhook_event(payload, signature)
    except PaymentVerificationError as e:
        logger.warning("webhook_signature_invalid", reason=e.message)
        return _respond(
            "unknown",
            "invalid_signature",
            status.HTTP_400_BAD_REQUEST,
            {"error": "Invalid signature"},
        )
    except ValidationError:
        logger.warning("webhook_payload_invalid")
        return _respond(
            "unknown", "bad_request", status.HTTP_400_BAD_REQUEST, {"error": "Invalid payload"}
        )

    event_type = str(event.get("type") or "unknown")
    logger.info("webhook_received", event_type=event_type, event_id=event.get("id"))

    if event_type != CHECKOUT_COMPLETED_EVENT:
        logger.debug("webhook_event_ignored", event_type=event_type)
        return _ignored(event_type)

    data = event.get("data")
    session_object = data.get("object") if isinstance(data, Mapping) else None
    if not isinstance(session_object, Mapping) or not session_object.get("id"):
        logger.warning("webhook_missing_session_id", event_id=event.get("id"))
        return _respond(
            event_type, "bad_request", status.HTTP_400_BAD_REQUEST, {"error": "Missing session id"}
        )

    session = CheckoutSession.from_provider(session_object)
    if not session.is_paid:
        logger.info(
            "webhook_session_not_paid",
            session_id=session.id,
            payment_status=session.payment_status,
        )
        return _ignored(event_type)

    try:
        outcome = settle_paid_session(engine, session, gateway)
    except HoldExpiredError as e:
        logger.error("webhook_payment_refunded", session_id=session.id, error=e.message)
        return _respond(
            event_type,
            "refunded",
            status.HTTP_200_OK,
            {"status": "refunded", "booking_number": session.metadata.get("booking_number")},
        )
    except (BookingNotFoundError, InvalidTransitionError) as e:
        logger.warning(
            "webhook_booking_not_confirmable",
            session_id=session.id,
            error_code=e.code,
            error=e.message,
        )
        return _ignored(event_type)
    except (DataAccessError, PaymentProviderError) as e:
        logger.error("webhook_processing_failed", session_id=session.id, error=e.message)
        return _respond(
            event_type,
            "error",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {"error": "Internal server error"},
        )
    except Exception as e:
        logger.exception("webhook_processing_failed", session_id=session.id, error=str(e))
        return _respond(
            event_type,
            "error",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {"error": "Internal server error"},
        )

    if outcome.newly_confirmed:
        background_tasks.add_task(dispatch_outbox, engine, email_sender)

    return _respond(
        event_type,
        "accepted",
        status.HTTP_200_OK,
        {"status": "accepted", "booking_number": outcome.booking.booking_number},
    )
