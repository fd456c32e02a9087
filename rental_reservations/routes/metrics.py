"""
Prometheus metrics endpoint.

Example:
    GET /metrics

    Response:
        # HELP rentals_bookings_created_total Total number of PENDING bookings created
        # TYPE rentals_bookings_created_total counter
        rentals_bookings_created_total 42.0
        ...
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics", response_class=Response)
async def metrics() -> Any:
    """
    Metrics in Prometheus text exposition format, for scraping.
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
