import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import logging

from rental_reservations.db.engine import engine
from rental_reservations.logging_config import setup_logging
from rental_reservations.services.email import ResendEmailSender
from rental_reservations.services.outbox import dispatch_outbox

setup_logging()
logger = logging.getLogger(__name__)


def main() -> None:
    """
    Drain pending outbox events (confirmation emails) in batches.

    Meant for cron: stops once a run claims nothing or only retries remain.
    """
    batch_size = int(sys.argv[1]) if len(sys.argv) > 1 else 50
    sender = ResendEmailSender()

    logger.info("Starting outbox dispatch batch_size=%s", batch_size)

    try:
        while True:
            stats = dispatch_outbox(engine, sender, batch_size=batch_size)
            if stats.claimed < batch_size or stats.sent == 0:
                break
        logger.info("Outbox dispatch finished")
    except Exception:
        logger.exception("Outbox dispatch failed")
        raise


if __name__ == "__main__":
    main()
