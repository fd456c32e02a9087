from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.engine import Engine

from rental_reservations.dependencies import get_current_user_id, get_db_engine
from rental_reservations.errors import ReservationError
from rental_reservations.routes._helpers import to_http_exception
from rental_reservations.services.notifications import (
    list_notifications,
    mark_all_notifications_read,
    mark_notification_read,
)

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/notifications")
def get_notifications(
    limit: int = Query(50, ge=1, le=200),
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    The caller's notifications, newest first, with the unread count.

    Example:
        >>> GET /notifications
        {"notifications": [{"id": "...", "type": "BOOKING_CONFIRMED", ...}], "unread_count": 1}
    """
    try:
        notifications, unread = list_notifications(engine, user_id, limit=limit)
        return {
            "notifications": [n.to_dict() for n in notifications],
            "unread_count": unread,
        }
    except Exception as e:
        logger.exception("notification_list_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/notifications/read-all")
def read_all_notifications(
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    try:
        updated = mark_all_notifications_read(engine, user_id)
        return {"success": True, "updated": updated}
    except Exception as e:
        logger.exception("notification_read_all_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/notifications/{notification_id}/read")
def read_notification(
    notification_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, bool]:
    """Mark one of the caller's notifications as read; 404 for anyone else's."""
    try:
        mark_notification_read(engine, user_id, notification_id)
        return {"success": True}

    except ReservationError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception(
            "notification_read_failed", notification_id=str(notification_id), error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")
