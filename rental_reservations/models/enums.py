"""Enumerations shared by the ORM models and the workflow."""

import enum


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


# Statuses that hold a property's dates
BLOCKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class NotificationType(str, enum.Enum):
    BOOKING_REQUEST = "BOOKING_REQUEST"
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    MESSAGE_RECEIVED = "MESSAGE_RECEIVED"
    REVIEW_RECEIVED = "REVIEW_RECEIVED"
    PAYOUT_SENT = "PAYOUT_SENT"
    PAYMENT_PROCESSED = "PAYMENT_PROCESSED"
    SYSTEM_UPDATE = "SYSTEM_UPDATE"


class UserRole(str, enum.Enum):
    GUEST = "GUEST"
    HOST = "HOST"
    ADMIN = "ADMIN"


class OutboxStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class OutboxKind(str, enum.Enum):
    BOOKING_CONFIRMATION_EMAIL = "booking_confirmation_email"
