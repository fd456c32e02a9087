"""Unit tests for the booking endpoints."""

from __future__ import annotations

from typing import Any, Callable
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from rental_reservations.domain.records import BookingRecord
from rental_reservations.models.enums import UserRole

pytestmark = pytest.mark.unit

STAY = {"check_in": "2030-06-10", "check_out": "2030-06-15"}


def auth(user_id: UUID) -> dict[str, str]:
    return {"X-User-Id": str(user_id)}


def test_quote_prices_stay_at_current_rate(client: TestClient, property_id: UUID) -> None:
    response = client.post("/bookings/quote", json={"property_id": str(property_id), **STAY})

    assert response.status_code == 200
    data = response.json()
    assert data["total_nights"] == 5
    assert data["display_total"] == "450.00 USD"
    assert data["available"] is True


def test_quote_reports_unavailable_dates(
    client: TestClient,
    property_id: UUID,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    make_pending_booking()

    response = client.post("/bookings/quote", json={"property_id": str(property_id), **STAY})

    assert response.json()["available"] is False


def test_quote_unknown_property_returns_404(client: TestClient) -> None:
    response = client.post("/bookings/quote", json={"property_id": str(uuid4()), **STAY})

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "property_not_found"


def test_quote_rejects_reversed_dates(client: TestClient, property_id: UUID) -> None:
    response = client.post(
        "/bookings/quote",
        json={"property_id": str(property_id), "check_in": "2030-06-15", "check_out": "2030-06-10"},
    )

    assert response.status_code == 400


def test_checkout_requires_authentication(client: TestClient, property_id: UUID) -> None:
    response = client.post("/bookings/checkout", json={"property_id": str(property_id), **STAY})

    assert response.status_code == 401
    assert response.json() == {"detail": "User not authenticated"}


def test_checkout_rejects_malformed_user_header(client: TestClient, property_id: UUID) -> None:
    response = client.post(
        "/bookings/checkout",
        json={"property_id": str(property_id), **STAY},
        headers={"X-User-Id": "not-a-uuid"},
    )

    assert response.status_code == 401


def test_checkout_creates_pending_booking(
    client: TestClient, property_id: UUID, guest_id: UUID
) -> None:
    """Test that checkout holds the dates and returns the session url."""
    response = client.post(
        "/bookings/checkout",
        json={"property_id": str(property_id), "adults": 2, **STAY},
        headers=auth(guest_id),
    )

    assert response.status_code == 201
    data = response.json()
    assert data["success"] is True
    assert data["booking"]["status"] == "PENDING"
    assert data["booking"]["guest_id"] == str(guest_id)
    assert data["session_url"].startswith("https://checkout.example.com/")


def test_checkout_conflict_returns_409(
    client: TestClient,
    property_id: UUID,
    make_user: Callable[..., UUID],
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    make_pending_booking()
    other_guest = make_user(name="Olga Other")

    response = client.post(
        "/bookings/checkout",
        json={"property_id": str(property_id), **STAY},
        headers=auth(other_guest),
    )

    assert response.status_code == 409
    assert response.json()["success"] is False
    assert response.json()["error_code"] == "dates_unavailable"


def test_checkout_over_capacity_returns_400(
    client: TestClient, property_id: UUID, guest_id: UUID
) -> None:
    response = client.post(
        "/bookings/checkout",
        json={"property_id": str(property_id), "adults": 3, "children": 2, **STAY},
        headers=auth(guest_id),
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "validation_error"


def test_checkout_provider_failure_returns_503(
    client: TestClient, property_id: UUID, guest_id: UUID, fake_gateway: Any
) -> None:
    fake_gateway.fail_create = True

    response = client.post(
        "/bookings/checkout",
        json={"property_id": str(property_id), **STAY},
        headers=auth(guest_id),
    )

    assert response.status_code == 503
    assert response.json()["error_code"] == "temporary_failure"


def test_checkout_success_confirms_paid_booking(
    client: TestClient,
    guest_id: UUID,
    fake_gateway: Any,
    fake_email_sender: Any,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking()
    session_id = f"cs_test_{booking.booking_number}"
    fake_gateway.paid.add(session_id)

    response = client.get(
        "/bookings/checkout/success", params={"session_id": session_id}, headers=auth(guest_id)
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["newly_confirmed"] is True
    assert data["booking"]["status"] == "CONFIRMED"
    assert len(fake_email_sender.sent) == 1


def test_checkout_success_unpaid_returns_402(
    client: TestClient,
    guest_id: UUID,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking()

    response = client.get(
        "/bookings/checkout/success",
        params={"session_id": f"cs_test_{booking.booking_number}"},
        headers=auth(guest_id),
    )

    assert response.status_code == 402


def test_checkout_success_for_another_guest_returns_404(
    client: TestClient,
    fake_gateway: Any,
    make_user: Callable[..., UUID],
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking()
    session_id = f"cs_test_{booking.booking_number}"
    fake_gateway.paid.add(session_id)

    response = client.get(
        "/bookings/checkout/success",
        params={"session_id": session_id},
        headers=auth(make_user(name="Mallory")),
    )

    assert response.status_code == 404


def test_list_bookings_filters_by_status(
    client: TestClient,
    guest_id: UUID,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    make_pending_booking()

    pending = client.get("/bookings", params={"status": "pending"}, headers=auth(guest_id))
    confirmed = client.get("/bookings", params={"status": "CONFIRMED"}, headers=auth(guest_id))

    assert pending.json()["count"] == 1
    assert confirmed.json() == {"bookings": [], "count": 0}


def test_list_bookings_rejects_unknown_status(client: TestClient, guest_id: UUID) -> None:
    response = client.get("/bookings", params={"status": "sideways"}, headers=auth(guest_id))

    assert response.status_code == 400


def test_list_bookings_rejects_unknown_timeframe(client: TestClient, guest_id: UUID) -> None:
    response = client.get("/bookings", params={"timeframe": "decade"}, headers=auth(guest_id))

    assert response.status_code == 400


def test_booking_detail_includes_confirmation_email_status(
    client: TestClient,
    guest_id: UUID,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking()

    response = client.get(f"/bookings/{booking.id}", headers=auth(guest_id))

    assert response.status_code == 200
    assert response.json()["booking_number"] == booking.booking_number
    assert response.json()["confirmation_email"] is None


def test_booking_detail_visible_to_host(
    client: TestClient,
    host_id: UUID,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking()

    response = client.get(f"/bookings/{booking.id}", headers=auth(host_id))

    assert response.status_code == 200


def test_booking_detail_hidden_from_strangers(
    client: TestClient,
    make_user: Callable[..., UUID],
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking()

    response = client.get(f"/bookings/{booking.id}", headers=auth(make_user(name="Eve")))

    assert response.status_code == 404


def test_cancel_booking_by_guest(
    client: TestClient,
    guest_id: UUID,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking()

    response = client.post(
        f"/bookings/{booking.id}/cancel", json={"reason": "change of plans"}, headers=auth(guest_id)
    )

    assert response.status_code == 200
    assert response.json()["booking"]["status"] == "CANCELLED"


def test_cancel_booking_without_body(
    client: TestClient,
    make_user: Callable[..., UUID],
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking()
    admin_id = make_user(name="Ada Admin", role=UserRole.ADMIN)

    response = client.post(f"/bookings/{booking.id}/cancel", headers=auth(admin_id))

    assert response.status_code == 200


def test_cancel_booking_twice_returns_409(
    client: TestClient,
    guest_id: UUID,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking()
    client.post(f"/bookings/{booking.id}/cancel", headers=auth(guest_id))

    response = client.post(f"/bookings/{booking.id}/cancel", headers=auth(guest_id))

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "invalid_transition"


def test_cancel_unknown_booking_returns_404(client: TestClient, guest_id: UUID) -> None:
    response = client.post(f"/bookings/{uuid4()}/cancel", headers=auth(guest_id))

    assert response.status_code == 404


def test_booking_stats_route_is_not_a_booking_id(
    client: TestClient,
    guest_id: UUID,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    make_pending_booking()

    response = client.get("/bookings/stats", headers=auth(guest_id))

    assert response.status_code == 200
    data = response.json()
    assert data["booking_count"] == 1
    assert data["total_spent"] == {}
    assert data["by_status"]["PENDING"] == 1


def test_booking_stats_reject_unknown_timeframe(client: TestClient, guest_id: UUID) -> None:
    response = client.get("/bookings/stats?timeframe=decade", headers=auth(guest_id))

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "validation_error"


def test_booking_lookup_by_number(
    client: TestClient,
    guest_id: UUID,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking()

    response = client.get(
        f"/bookings/number/{booking.booking_number.lower()}", headers=auth(guest_id)
    )

    assert response.status_code == 200
    assert response.json()["id"] == str(booking.id)
    assert response.json()["confirmation_email"] is None


def test_booking_lookup_by_number_hidden_from_strangers(
    client: TestClient,
    make_user: Callable[..., UUID],
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking()

    response = client.get(
        f"/bookings/number/{booking.booking_number}", headers=auth(make_user(name="Eve"))
    )

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "booking_not_found"
