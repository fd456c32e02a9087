"""
Prometheus metrics for the booking workflow, payments, notifications and messaging.

Metrics are exposed via the /metrics endpoint for scraping by Prometheus.

Example:
    >>> from rental_reservations.metrics import booking_transitions
    >>> booking_transitions.labels(from_status="PENDING", to_status="CONFIRMED").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# =============================================================================
# Booking Metrics
# =============================================================================

bookings_created = Counter(
    "rentals_bookings_created_total",
    "Total number of PENDING bookings created",
)
"""Counter for bookings created by checkout."""

booking_conflicts = Counter(
    "rentals_booking_conflicts_total",
    "Booking attempts rejected because the dates were already held",
    ["source"],
)
"""
Counter for availability conflicts at booking time.

Labels:
    source: Where the conflict was detected (overlap_check, constraint)
"""

booking_transitions = Counter(
    "rentals_booking_transitions_total",
    "Booking status transitions applied",
    ["from_status", "to_status"],
)
"""
Counter for booking status transitions.

Labels:
    from_status: Status before the transition
    to_status: Status after the transition
"""

availability_checks = Counter(
    "rentals_availability_checks_total",
    "Availability checks performed",
    ["result"],
)
"""
Counter for availability checks.

Labels:
    result: available, unavailable or error (errors report unavailable)
"""

# =============================================================================
# Payment Metrics
# =============================================================================

webhook_events = Counter(
    "rentals_payment_webhook_events_total",
    "Payment provider webhook events received",
    ["event_type", "outcome"],
)
"""
Counter for payment webhook deliveries.

Labels:
    event_type: Provider event type (e.g., "checkout.session.completed")
    outcome: accepted, ignored, invalid_signature, bad_request or error
"""

payment_api_latency = Histogram(
    "rentals_payment_api_latency_seconds",
    "Payment provider API request latency in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf")),
)
"""
Histogram for payment provider calls.

Labels:
    operation: create_checkout_session or retrieve_session

Buckets: 0.1s, 0.25s, 0.5s, 1s, 2.5s, 5s, 10s, +Inf
"""

# =============================================================================
# Side Effect Metrics
# =============================================================================

outbox_dispatched = Counter(
    "rentals_outbox_dispatched_total",
    "Outbox events processed by the dispatcher",
    ["kind", "result"],
)
"""
Counter for outbox dispatch attempts.

Labels:
    kind: Outbox event kind
    result: sent, retry or failed
"""

notification_failures = Counter(
    "rentals_notification_failures_total",
    "Notifications that could not be recorded after a committed transition",
    ["type"],
)
"""Counter for notification emission failures, labelled by notification type."""

messages_published = Counter(
    "rentals_messages_published_total",
    "Chat messages published to subscribers",
    ["status"],
)
"""
Counter for message pub/sub publishes.

Labels:
    status: success or failure
"""
