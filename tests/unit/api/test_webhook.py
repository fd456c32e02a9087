"""Unit tests for the payment provider webhook endpoint."""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from datetime import timedelta
from typing import Any, Callable
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from rental_reservations.db.readers.bookings import get_booking
from rental_reservations.dependencies import get_payment_gateway
from rental_reservations.domain.records import BookingRecord
from rental_reservations.errors import DataAccessError
from rental_reservations.main import app
from rental_reservations.models.enums import BookingStatus
from rental_reservations.models.outbox import OutboxEvent
from rental_reservations.services.payments import StripeGateway
from rental_reservations.services.reservations import cancel_booking, expire_pending_bookings
from rental_reservations.utils.datetime import utc_now

pytestmark = pytest.mark.unit

VALID_SIGNATURE = "t=1,v1=valid"


def completed_event(session_id: str, payment_status: str = "paid") -> dict[str, Any]:
    return {
        "id": "evt_test_1",
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "payment_status": payment_status,
                "payment_intent": "pi_test_1",
            }
        },
    }


async def post_event(body: bytes, signature: str | None = VALID_SIGNATURE) -> Any:
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["Stripe-Signature"] = signature
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        return await ac.post("/webhooks/stripe", content=body, headers=headers)


def _status(engine: Engine, booking: BookingRecord) -> BookingStatus:
    with engine.connect() as conn:
        stored = get_booking(conn, booking.id)
    assert stored is not None
    return stored.status


@pytest.mark.asyncio
async def test_webhook_rejects_invalid_signature(client: TestClient) -> None:
    """Test that webhook returns 400 and changes nothing when the signature is wrong."""
    body = json.dumps(completed_event("cs_test_x")).encode()

    response = await post_event(body, signature="t=1,v1=forged")

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid signature"}


@pytest.mark.asyncio
async def test_webhook_rejects_missing_signature(client: TestClient) -> None:
    response = await post_event(b"{}", signature=None)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid signature"}


@pytest.mark.asyncio
async def test_webhook_ignores_other_event_types(client: TestClient) -> None:
    body = json.dumps({"id": "evt_2", "type": "payment_intent.created", "data": {}}).encode()

    response = await post_event(body)

    assert response.status_code == 200
    assert response.json() == {"status": "ignored"}


@pytest.mark.asyncio
async def test_webhook_missing_session_id(client: TestClient) -> None:
    body = json.dumps(
        {"id": "evt_3", "type": "checkout.session.completed", "data": {"object": {}}}
    ).encode()

    response = await post_event(body)

    assert response.status_code == 400
    assert response.json() == {"error": "Missing session id"}


@pytest.mark.asyncio
async def test_webhook_confirms_paid_session(
    client: TestClient,
    sqlite_engine: Engine,
    fake_email_sender: Any,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    """Test that a paid checkout confirms the booking and sends the email afterwards."""
    booking = make_pending_booking()
    body = json.dumps(completed_event(f"cs_test_{booking.booking_number}")).encode()

    response = await post_event(body)

    assert response.status_code == 200
    assert response.json() == {"status": "accepted", "booking_number": booking.booking_number}
    assert _status(sqlite_engine, booking) is BookingStatus.CONFIRMED
    assert [s["booking"]["booking_number"] for s in fake_email_sender.sent] == [
        booking.booking_number
    ]


@pytest.mark.asyncio
async def test_webhook_redelivery_is_idempotent(
    client: TestClient,
    sqlite_engine: Engine,
    fake_email_sender: Any,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking()
    body = json.dumps(completed_event(f"cs_test_{booking.booking_number}")).encode()

    first = await post_event(body)
    second = await post_event(body)

    assert first.status_code == second.status_code == 200
    assert second.json()["status"] == "accepted"
    with sqlite_engine.connect() as conn:
        events = conn.execute(select(func.count()).select_from(OutboxEvent)).scalar_one()
    assert events == 1
    assert len(fake_email_sender.sent) == 1


@pytest.mark.asyncio
async def test_webhook_ignores_unpaid_session(
    client: TestClient,
    sqlite_engine: Engine,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking()
    body = json.dumps(
        completed_event(f"cs_test_{booking.booking_number}", payment_status="unpaid")
    ).encode()

    response = await post_event(body)

    assert response.json() == {"status": "ignored"}
    assert _status(sqlite_engine, booking) is BookingStatus.PENDING


@pytest.mark.asyncio
async def test_webhook_ignores_unknown_session(client: TestClient) -> None:
    body = json.dumps(completed_event("cs_test_nobody")).encode()

    response = await post_event(body)

    assert response.status_code == 200
    assert response.json() == {"status": "ignored"}


@pytest.mark.asyncio
async def test_webhook_ignores_cancelled_booking(
    client: TestClient,
    sqlite_engine: Engine,
    guest_id: Any,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking()
    cancel_booking(sqlite_engine, booking.id, guest_id)
    body = json.dumps(completed_event(f"cs_test_{booking.booking_number}")).encode()

    response = await post_event(body)

    assert response.json() == {"status": "ignored"}
    assert _status(sqlite_engine, booking) is BookingStatus.CANCELLED


@pytest.mark.asyncio
@patch("rental_reservations.routes.webhook.settle_paid_session")
async def test_webhook_database_failure_asks_for_redelivery(
    mock_settle: Any, client: TestClient
) -> None:
    mock_settle.side_effect = DataAccessError()
    body = json.dumps(completed_event("cs_test_x")).encode()

    response = await post_event(body)

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


@pytest.mark.asyncio
async def test_webhook_with_real_stripe_signature(
    client: TestClient,
    sqlite_engine: Engine,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    """End to end through StripeGateway's signature verification."""
    secret = "whsec_test_secret"
    app.dependency_overrides[get_payment_gateway] = lambda: StripeGateway(
        api_key="sk_test_123", webhook_secret=secret
    )
    booking = make_pending_booking()
    body = json.dumps(completed_event(f"cs_test_{booking.booking_number}")).encode()
    timestamp = int(time.time())
    digest = hmac.new(
        secret.encode(), f"{timestamp}.{body.decode()}".encode(), hashlib.sha256
    ).hexdigest()

    response = await post_event(body, signature=f"t={timestamp},v1={digest}")

    assert response.status_code == 200
    assert response.json()["status"] == "accepted"
    assert _status(sqlite_engine, booking) is BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_webhook_confirms_payment_that_outlived_its_hold(
    client: TestClient,
    sqlite_engine: Engine,
    fake_gateway: Any,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking()
    expire_pending_bookings(sqlite_engine, now=utc_now() + timedelta(minutes=45))
    body = json.dumps(completed_event(f"cs_test_{booking.booking_number}")).encode()

    response = await post_event(body)

    assert response.status_code == 200
    assert response.json()["status"] == "accepted"
    assert _status(sqlite_engine, booking) is BookingStatus.CONFIRMED
    assert fake_gateway.refunds == []


@pytest.mark.asyncio
async def test_webhook_refunds_late_payment_when_dates_were_taken(
    client: TestClient,
    sqlite_engine: Engine,
    fake_gateway: Any,
    make_user: Callable[..., Any],
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    late = make_pending_booking()
    expire_pending_bookings(sqlite_engine, now=utc_now() + timedelta(minutes=45))
    make_pending_booking(guest=make_user(name="Quick Guest"))
    event = completed_event(f"cs_test_{late.booking_number}")
    event["data"]["object"]["metadata"] = {"booking_number": late.booking_number}
    body = json.dumps(event).encode()

    response = await post_event(body)
    redelivered = await post_event(body)

    assert response.status_code == 200
    assert response.json() == {"status": "refunded", "booking_number": late.booking_number}
    assert redelivered.json() == {"status": "ignored"}
    assert fake_gateway.refunds == ["pi_test_1"]
    with sqlite_engine.connect() as conn:
        stored = get_booking(conn, late.id)
    assert stored is not None
    assert stored.status is BookingStatus.CANCELLED
    assert stored.cancellation_reason == "late_payment_refunded"
    assert stored.payment_intent_id == "pi_test_1"


@pytest.mark.asyncio
async def test_webhook_refund_failure_asks_for_redelivery(
    client: TestClient,
    sqlite_engine: Engine,
    fake_gateway: Any,
    make_user: Callable[..., Any],
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    late = make_pending_booking()
    expire_pending_bookings(sqlite_engine, now=utc_now() + timedelta(minutes=45))
    make_pending_booking(guest=make_user(name="Quick Guest"))
    fake_gateway.fail_refund = True
    body = json.dumps(completed_event(f"cs_test_{late.booking_number}")).encode()

    response = await post_event(body)

    assert response.status_code == 500
    with sqlite_engine.connect() as conn:
        stored = get_booking(conn, late.id)
    assert stored is not None
    assert stored.cancellation_reason == "expired"
