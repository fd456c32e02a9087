from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    All tables live in the ``rentals`` schema; models import SCHEMA from config
    and set it in ``__table_args__``.
    """

    pass
