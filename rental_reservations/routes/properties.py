from datetime import date
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.engine import Engine

from rental_reservations.dependencies import get_db_engine
from rental_reservations.domain.availability import is_available
from rental_reservations.errors import ReservationError
from rental_reservations.routes._helpers import to_http_exception

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/properties/{property_id}/availability")
def property_availability(
    property_id: UUID,
    check_in: date = Query(..., description="Arrival date (YYYY-MM-DD)"),
    check_out: date = Query(..., description="Departure date (YYYY-MM-DD), exclusive"),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Whether a property can be booked for the given dates.

    Example:
        >>> GET /properties/6f1c.../availability?check_in=2024-06-10&check_out=2024-06-15
        {"property_id": "6f1c...", "check_in": "2024-06-10", "check_out": "2024-06-15",
         "available": true}
    """
    try:
        available = is_available(engine, property_id, check_in, check_out)
    except ReservationError as e:
        raise to_http_exception(e)

    return {
        "property_id": str(property_id),
        "check_in": check_in.isoformat(),
        "check_out": check_out.isoformat(),
        "available": available,
    }
