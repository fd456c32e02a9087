"""
Typed records passed between the HTTP layer, the workflow and the store.

Rows come back from SQLAlchemy as mappings; the ``from_row`` constructors
turn them into frozen dataclasses so nothing downstream deals with loose
dicts. Value objects validate themselves on construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from rental_reservations.config import DEFAULT_CURRENCY
from rental_reservations.errors import GuestCountError, InvalidDateRange
from rental_reservations.models.enums import BookingStatus, NotificationType, UserRole
from rental_reservations.utils.datetime import to_date


@dataclass(frozen=True)
class DateRange:
    """Half-open stay range [check_in, check_out)."""

    check_in: date
    check_out: date

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "check_in", to_date(self.check_in))
            object.__setattr__(self, "check_out", to_date(self.check_out))
        except (TypeError, ValueError, AttributeError) as e:
            raise InvalidDateRange("Check-in and check-out must be valid dates") from e
        if self.check_in >= self.check_out:
            raise InvalidDateRange(
                f"Check-in {self.check_in} must be before check-out {self.check_out}"
            )

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

    def overlaps(self, other: "DateRange") -> bool:
        return self.check_in < other.check_out and other.check_in < self.check_out


@dataclass(frozen=True)
class GuestCounts:
    adults: int = 1
    children: int = 0
    infants: int = 0

    def __post_init__(self) -> None:
        if self.adults < 1:
            raise GuestCountError("At least one adult is required")
        if self.children < 0 or self.infants < 0:
            raise GuestCountError("Guest counts cannot be negative")

    @property
    def occupying(self) -> int:
        """Guests counted against a property's max_guests (infants excluded)."""
        return self.adults + self.children


@dataclass(frozen=True)
class UserRecord:
    id: UUID
    name: str
    email: str | None
    role: UserRole

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "UserRecord":
        return cls(id=row["id"], name=row["name"], email=row["email"], role=UserRole(row["role"]))


@dataclass(frozen=True)
class PropertyRecord:
    id: UUID
    host_id: UUID
    title: str
    base_price: Decimal
    discount_percentage: Decimal | None
    currency: str
    max_guests: int
    is_available: bool
    slug: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PropertyRecord":
        return cls(
            id=row["id"],
            host_id=row["host_id"],
            title=row["title"],
            slug=row.get("slug"),
            base_price=Decimal(row["base_price"]),
            discount_percentage=(
                Decimal(row["discount_percentage"])
                if row["discount_percentage"] is not None
                else None
            ),
            currency=(row["currency"] or DEFAULT_CURRENCY).upper(),
            max_guests=row["max_guests"],
            is_available=bool(row["is_available"]),
        )


@dataclass(frozen=True)
class BookingRecord:
    id: UUID
    booking_number: str
    guest_id: UUID
    property_id: UUID
    check_in_date: date
    check_out_date: date
    adults: int
    children: int
    infants: int
    base_price: Decimal
    discount_percentage: Decimal | None
    total_amount: Decimal
    currency: str
    status: BookingStatus
    payment_reference: str | None = None
    payment_intent_id: str | None = None
    conversation_id: UUID | None = None
    guest_note: str | None = None
    cancellation_reason: str | None = None
    expires_at: datetime | None = None
    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "BookingRecord":
        return cls(
            id=row["id"],
            booking_number=row["booking_number"],
            guest_id=row["guest_id"],
            property_id=row["property_id"],
            check_in_date=to_date(row["check_in_date"]),
            check_out_date=to_date(row["check_out_date"]),
            adults=row["adults"],
            children=row["children"],
            infants=row["infants"],
            base_price=Decimal(row["base_price"]),
            discount_percentage=(
                Decimal(row["discount_percentage"])
                if row["discount_percentage"] is not None
                else None
            ),
            total_amount=Decimal(row["total_amount"]),
            currency=row["currency"],
            status=BookingStatus(row["status"]),
            payment_reference=row.get("payment_reference"),
            payment_intent_id=row.get("payment_intent_id"),
            conversation_id=row.get("conversation_id"),
            guest_note=row.get("guest_note"),
            cancellation_reason=row.get("cancellation_reason"),
            expires_at=row.get("expires_at"),
            confirmed_at=row.get("confirmed_at"),
            cancelled_at=row.get("cancelled_at"),
            created_at=row.get("created_at"),
        )

    @property
    def dates(self) -> DateRange:
        return DateRange(self.check_in_date, self.check_out_date)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation (amounts as strings, dates as ISO)."""
        return {
            "id": str(self.id),
            "booking_number": self.booking_number,
            "guest_id": str(self.guest_id),
            "property_id": str(self.property_id),
            "check_in_date": self.check_in_date.isoformat(),
            "check_out_date": self.check_out_date.isoformat(),
            "adults": self.adults,
            "children": self.children,
            "infants": self.infants,
            "base_price": str(self.base_price),
            "discount_percentage": (
                str(self.discount_percentage) if self.discount_percentage is not None else None
            ),
            "total_amount": str(self.total_amount),
            "currency": self.currency,
            "status": self.status.value,
            "conversation_id": str(self.conversation_id) if self.conversation_id else None,
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
        }


@dataclass(frozen=True)
class NotificationRecord:
    id: UUID
    recipient_id: UUID
    type: NotificationType
    title: str
    message: str
    is_read: bool
    booking_id: UUID | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "NotificationRecord":
        return cls(
            id=row["id"],
            recipient_id=row["recipient_id"],
            type=NotificationType(row["type"]),
            title=row["title"],
            message=row["message"],
            is_read=bool(row["is_read"]),
            booking_id=row.get("booking_id"),
            created_at=row.get("created_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "is_read": self.is_read,
            "booking_id": str(self.booking_id) if self.booking_id else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class MessageRecord:
    id: UUID
    conversation_id: UUID
    sender_id: UUID
    content: str
    is_read: bool
    created_at: datetime | None = None
    sender_name: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "MessageRecord":
        return cls(
            id=row["id"],
            conversation_id=row["conversation_id"],
            sender_id=row["sender_id"],
            content=row["content"],
            is_read=bool(row["is_read"]),
            created_at=row.get("created_at"),
            sender_name=row.get("sender_name"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "conversation_id": str(self.conversation_id),
            "sender": {"id": str(self.sender_id), "name": self.sender_name},
            "content": self.content,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class ConversationRecord:
    id: UUID
    participant_ids: tuple[UUID, ...]
    messages: tuple[MessageRecord, ...] = field(default_factory=tuple)
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "participants": [str(p) for p in self.participant_ids],
            "messages": [m.to_dict() for m in self.messages],
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
