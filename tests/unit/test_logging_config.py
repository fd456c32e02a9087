"""
Unit tests for structured logging setup.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

import pytest
import structlog

from rental_reservations.logging_config import setup_logging, stringify_domain_values


@pytest.mark.unit
def test_domain_values_render_as_strings() -> None:
    booking_id = UUID("6f1c2a9e-0000-4000-8000-000000000001")
    event = {
        "event": "booking_confirmed",
        "booking_id": booking_id,
        "total_amount": Decimal("450.00"),
        "check_in": date(2030, 6, 10),
        "nights": 5,
    }

    result = stringify_domain_values(None, "info", event)

    assert result == {
        "event": "booking_confirmed",
        "booking_id": str(booking_id),
        "total_amount": "450.00",
        "check_in": "2030-06-10",
        "nights": 5,
    }


@pytest.mark.unit
def test_setup_logging_emits_json_with_context(capsys: pytest.CaptureFixture[str]) -> None:
    setup_logging("INFO")
    structlog.contextvars.bind_contextvars(request_id="req-1")
    try:
        structlog.get_logger("test").info("booking_created", amount=Decimal("1.50"))
    finally:
        structlog.contextvars.clear_contextvars()

    out = capsys.readouterr().out
    assert '"event": "booking_created"' in out
    assert '"request_id": "req-1"' in out
    assert '"amount": "1.50"' in out
