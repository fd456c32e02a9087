# rental_reservations/main.py

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rental_reservations.config import ALLOWED_ORIGINS
from rental_reservations.logging_config import setup_logging
from rental_reservations.middleware import RequestIDMiddleware
from rental_reservations.routes.bookings import router as bookings_router
from rental_reservations.routes.health import router as health_router
from rental_reservations.routes.host import router as host_router
from rental_reservations.routes.messages import router as messages_router
from rental_reservations.routes.metrics import router as metrics_router
from rental_reservations.routes.notifications import router as notifications_router
from rental_reservations.routes.properties import router as properties_router
from rental_reservations.routes.webhook import router as webhook_router

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Rental Reservations API",
    description="Availability, pricing and reservation confirmation for property rentals",
    version="1.0.0",
)

app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(health_router, tags=["Health"])
app.include_router(metrics_router, tags=["Metrics"])
app.include_router(properties_router, tags=["Properties"])
app.include_router(bookings_router, tags=["Bookings"])
app.include_router(host_router, tags=["Host"])
app.include_router(webhook_router, tags=["Webhooks"])
app.include_router(notifications_router, tags=["Notifications"])
app.include_router(messages_router, tags=["Messaging"])


@app.on_event("startup")
def startup_event() -> None:
    logger.info("FastAPI application starting up...")
