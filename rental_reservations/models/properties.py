import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric
from sqlalchemy import String, Uuid
from sqlalchemy.sql import func

from rental_reservations.config import DEFAULT_CURRENCY, SCHEMA
from rental_reservations.models.base import Base


class Property(Base):
    """
    ORM model for a rentable property listing.

    Only the fields the reservation workflow reads are modelled: the owning
    host, nightly pricing, guest capacity and whether the listing is open for
    booking. The property row is also the lock target that serializes booking
    creation for the same property.
    """

    __tablename__ = "properties"
    __table_args__ = (
        CheckConstraint("base_price >= 0", name="ck_properties_base_price_non_negative"),
        CheckConstraint(
            "discount_percentage IS NULL OR "
            "(discount_percentage >= 0 AND discount_percentage <= 100)",
            name="ck_properties_discount_range",
        ),
        CheckConstraint("max_guests >= 1", name="ck_properties_max_guests_positive"),
        {"schema": SCHEMA},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    host_id = Column(
        Uuid,
        ForeignKey(f"{SCHEMA}.users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=True, unique=True)
    base_price = Column(Numeric(18, 6), nullable=False)
    discount_percentage = Column(Numeric(5, 2), nullable=True)
    currency = Column(String(3), nullable=False, default=DEFAULT_CURRENCY)
    max_guests = Column(Integer, nullable=False, default=1)
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
