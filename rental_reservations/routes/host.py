"""Host dashboard routes."""

from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.engine import Engine

from rental_reservations.dependencies import get_current_user_id, get_db_engine
from rental_reservations.errors import ReservationError
from rental_reservations.routes._helpers import to_http_exception
from rental_reservations.services.stats import host_reservation_overview

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/host/reservations")
def get_reservation_overview(
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Reservation overview for the properties the caller hosts.

    A caller who hosts nothing gets zeros and empty lists.
    """
    try:
        return host_reservation_overview(engine, user_id).to_dict()

    except ReservationError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("reservation_overview_failed", host_id=str(user_id), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
