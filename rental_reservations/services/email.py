"""Transactional email through the Resend HTTP API."""

from __future__ import annotations

from typing import Any, Protocol

import requests
import structlog

from rental_reservations.config import EMAIL_FROM, RESEND_API_KEY

logger = structlog.get_logger(__name__)

RESEND_URL = "https://api.resend.com/emails"
REQUEST_TIMEOUT = 10


class EmailDeliveryError(RuntimeError):
    """Raised when an email could not be handed to the provider."""


class EmailSender(Protocol):
    def send_booking_confirmation(self, snapshot: dict[str, Any]) -> None: ...


def confirmation_text(snapshot: dict[str, Any]) -> tuple[str, str]:
    """
    Subject and plain-text body for a booking confirmation.

    Args:
        snapshot: Outbox payload taken when the booking was confirmed

    Returns:
        tuple[str, str]: (subject, body)
    """
    booking = snapshot["booking"]
    guest_name = snapshot.get("guest", {}).get("name") or "Guest"
    title = snapshot.get("property", {}).get("title") or "your stay"

    subject = f"Booking Confirmation #{booking['booking_number']}"
    body = "\n".join(
        [
            f"Hi {guest_name},",
            "",
            f"Your booking for {title} is confirmed.",
            "",
            f"Booking number: {booking['booking_number']}",
            f"Check-in: {booking['check_in_date']}",
            f"Check-out: {booking['check_out_date']}",
            f"Nights: {snapshot.get('nights')}",
            f"Total paid: {snapshot.get('display_total')}",
        ]
    )
    return subject, body


class ResendEmailSender:
    def __init__(self, api_key: str = RESEND_API_KEY, sender: str = EMAIL_FROM) -> None:
        self.api_key = api_key
        self.sender = sender

    def send_booking_confirmation(self, snapshot: dict[str, Any]) -> None:
        """
        Send the confirmation email for a booking snapshot.

        Raises:
            EmailDeliveryError: If the service is not configured, the guest has
                no address, or the provider rejects the request
        """
        if not self.api_key:
            raise EmailDeliveryError("Email service not configured")

        recipient = snapshot.get("guest", {}).get("email")
        if not recipient:
            raise EmailDeliveryError("Guest has no email address")

        subject, body = confirmation_text(snapshot)
        try:
            response = requests.post(
                RESEND_URL,
                json={"from": self.sender, "to": [recipient], "subject": subject, "text": body},
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            status_code = getattr(e.response, "status_code", None)
            logger.error(
                "email_send_failed",
                booking_number=snapshot["booking"]["booking_number"],
                status_code=status_code,
                error=str(e),
            )
            raise EmailDeliveryError(f"Failed to send confirmation email: {e}") from e

        logger.info(
            "email_sent",
            booking_number=snapshot["booking"]["booking_number"],
            provider_id=response.json().get("id"),
        )
