from typing import Any, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from rental_reservations.db.readers.properties import get_property
from rental_reservations.dependencies import (
    get_current_user_id,
    get_db_engine,
    get_email_sender,
    get_payment_gateway,
)
from rental_reservations.domain.availability import is_available
from rental_reservations.domain.pricing import compute_quote
from rental_reservations.errors import PropertyNotFoundError, ReservationError
from rental_reservations.routes._helpers import (
    CHECKOUT_STATUS_BY_CODE,
    parse_status_or_400,
    to_http_exception,
)
from rental_reservations.schemas.bookings import CancelPayload, CheckoutPayload, QuotePayload
from rental_reservations.services.checkout import CheckoutRequest, complete_checkout, start_checkout
from rental_reservations.services.email import EmailSender
from rental_reservations.services.outbox import dispatch_outbox
from rental_reservations.services.payments import PaymentGateway
from rental_reservations.services.reservations import (
    cancel_booking,
    find_booking_by_number,
    get_booking_details,
    list_bookings,
)
from rental_reservations.services.stats import booking_stats

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/bookings/quote")
def quote_booking(
    payload: QuotePayload,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Price a stay at the property's current nightly rate.

    Returns:
        dict: Quote (nights, price per night, total, display total) and availability
    """
    try:
        with engine.connect() as conn:
            prop = get_property(conn, payload.property_id)
        if prop is None:
            raise PropertyNotFoundError()

        quote = compute_quote(
            prop.base_price, prop.discount_percentage, payload.check_in, payload.check_out
        )
        available = is_available(engine, prop.id, quote.check_in, quote.check_out)
        return {**quote.to_dict(prop.currency), "available": available}

    except HTTPException:
        raise
    except ReservationError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("quote_failed", property_id=str(payload.property_id), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/bookings/checkout")
def create_checkout(
    payload: CheckoutPayload,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_db_engine),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> JSONResponse:
    """
    Hold the dates as a PENDING booking and open a payment checkout session.

    Returns 201 with the booking and ``session_url`` to redirect to, or an
    error status with ``{"success": false, "error_code", "error"}``.
    """
    request = CheckoutRequest(
        property_id=payload.property_id,
        check_in=payload.check_in,
        check_out=payload.check_out,
        adults=payload.adults,
        children=payload.children,
        infants=payload.infants,
        guest_note=payload.guest_note,
    )
    try:
        result = start_checkout(engine, user_id, request, gateway)
    except Exception as e:
        logger.exception("checkout_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    if result.ok:
        return JSONResponse(status_code=status.HTTP_201_CREATED, content=result.to_dict())
    return JSONResponse(
        status_code=CHECKOUT_STATUS_BY_CODE.get(result.error_code or "", 400),
        content=result.to_dict(),
    )


@router.get("/bookings/checkout/success")
def checkout_success(
    background_tasks: BackgroundTasks,
    session_id: str = Query(..., min_length=1, description="Checkout session id"),
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_db_engine),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    email_sender: EmailSender = Depends(get_email_sender),
) -> dict[str, Any]:
    """
    Confirm the booking when the guest lands on the success page.

    Safe to call after the webhook already confirmed the booking.
    """
    try:
        outcome = complete_checkout(engine, session_id, gateway, guest_id=user_id)
        if outcome.newly_confirmed:
            background_tasks.add_task(dispatch_outbox, engine, email_sender)
        return {
            "success": True,
            "booking": outcome.booking.to_dict(),
            "newly_confirmed": outcome.newly_confirmed,
        }

    except HTTPException:
        raise
    except ReservationError as e:
        logger.warning("checkout_success_rejected", session_id=session_id, error_code=e.code)
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("checkout_success_failed", session_id=session_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/bookings")
def get_bookings(
    status_filter: Optional[str] = Query(
        None, alias="status", description="Booking status or 'all'"
    ),
    timeframe: str = Query("all", description="all, today, week, month or year"),
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """List the caller's bookings as a guest."""
    booking_status = parse_status_or_400(status_filter)
    try:
        bookings = list_bookings(engine, user_id, status=booking_status, timeframe=timeframe)
        return {"bookings": [b.to_dict() for b in bookings], "count": len(bookings)}

    except ReservationError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("booking_list_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/bookings/stats")
def get_booking_stats(
    timeframe: str = Query("all", description="all, today, week, month or year"),
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Spending and stay counts for the caller's bookings as a guest.

    ``total_spent`` maps each currency to a decimal string.
    """
    try:
        return booking_stats(engine, user_id, timeframe=timeframe).to_dict()

    except ReservationError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("booking_stats_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/bookings/number/{booking_number}")
def get_booking_by_number_endpoint(
    booking_number: str,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """Booking detail by booking number, with the same visibility as by id."""
    try:
        booking, email_status = find_booking_by_number(engine, booking_number, user_id)
        return {**booking.to_dict(), "confirmation_email": email_status}

    except ReservationError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("booking_fetch_failed", booking_number=booking_number, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/bookings/{booking_id}")
def get_booking_endpoint(
    booking_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Booking detail for its guest, host or an admin.

    ``confirmation_email`` is "pending", "sent", "failed" or null, so the UI
    can tell a confirmed booking whose email did not go out.
    """
    try:
        booking, email_status = get_booking_details(engine, booking_id, user_id)
        return {**booking.to_dict(), "confirmation_email": email_status}

    except ReservationError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("booking_fetch_failed", booking_id=str(booking_id), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/bookings/{booking_id}/cancel")
def cancel_booking_endpoint(
    booking_id: UUID,
    payload: Optional[CancelPayload] = None,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """Cancel a PENDING or CONFIRMED booking."""
    try:
        booking = cancel_booking(
            engine, booking_id, user_id, reason=payload.reason if payload else None
        )
        return {"success": True, "booking": booking.to_dict()}

    except ReservationError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("booking_cancel_failed", booking_id=str(booking_id), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
