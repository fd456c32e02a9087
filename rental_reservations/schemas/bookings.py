from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class QuotePayload(BaseModel):
    """
    Schema for pricing a stay at a property's current rate.
    """

    property_id: UUID = Field(..., description="Property to price")
    check_in: date = Field(..., description="Arrival date (YYYY-MM-DD)")
    check_out: date = Field(..., description="Departure date (YYYY-MM-DD), exclusive")


class CheckoutPayload(BaseModel):
    """
    Schema for starting checkout. The price is never taken from the client.
    """

    property_id: UUID = Field(..., description="Property to book")
    check_in: date = Field(..., description="Arrival date (YYYY-MM-DD)")
    check_out: date = Field(..., description="Departure date (YYYY-MM-DD), exclusive")
    adults: int = Field(1, description="Number of adults (at least 1)")
    children: int = Field(0, description="Number of children")
    infants: int = Field(0, description="Number of infants (not counted against capacity)")
    guest_note: Optional[str] = Field(None, max_length=1000, description="Note for the host")


class CancelPayload(BaseModel):
    reason: Optional[str] = Field(None, max_length=100, description="Why the booking is cancelled")
