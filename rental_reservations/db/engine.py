"""
SQLAlchemy engine singleton with connection pooling.

Every booking write runs inside ``engine.begin()`` so the availability check,
the row lock and the insert share one transaction.
"""

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from rental_reservations.config import DATABASE_URL

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set.")

engine: Engine = create_engine(
    DATABASE_URL,
    future=True,
    pool_size=10,
    max_overflow=20,
    pool_pre_ping=True,  # detect connections dropped by the server
    pool_recycle=3600,
    echo=False,
)


def check_engine_health(db_engine: Engine | None = None) -> bool:
    """
    Check that the database is reachable.

    Used by the /ready endpoint before the service takes traffic.

    Args:
        db_engine: Engine to check, defaults to the module singleton

    Returns:
        bool: True if a trivial query succeeds, False otherwise
    """
    try:
        with (db_engine or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
