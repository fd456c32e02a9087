import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import logging

from rental_reservations.db.engine import engine
from rental_reservations.logging_config import setup_logging
from rental_reservations.services.reservations import expire_pending_bookings

setup_logging()
logger = logging.getLogger(__name__)


def main() -> None:
    """
    Cancel PENDING bookings whose checkout hold has run out, releasing their dates.
    """
    logger.info("Expiring stale pending bookings")

    try:
        expired = expire_pending_bookings(engine)
        logger.info("Expired %s pending bookings", expired)
    except Exception:
        logger.exception("Expiring pending bookings failed")
        raise


if __name__ == "__main__":
    main()
