"""
Nightly pricing for a stay.

All arithmetic is Decimal. Amounts keep full precision internally and are
only rounded to a currency's minor unit by ``format_amount`` when shown to a
person or handed to the payment provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from rental_reservations.domain.records import DateRange
from rental_reservations.errors import ValidationError

HUNDRED = Decimal("100")

# ISO 4217 currencies without a minor unit
ZERO_DECIMAL_CURRENCIES = frozenset(
    {"BIF", "CLP", "DJF", "GNF", "ISK", "JPY", "KMF", "KRW", "PYG", "RWF", "UGX", "VND", "VUV",
     "XAF", "XOF", "XPF"}
)


@dataclass(frozen=True)
class PricingQuote:
    """Price of a stay, derived from the nightly base price and an optional discount."""

    base_price: Decimal
    discount_percentage: Decimal | None
    check_in: date
    check_out: date
    total_nights: int
    price_per_night: Decimal
    total_price: Decimal

    def to_dict(self, currency: str = "USD") -> dict[str, object]:
        return {
            "base_price": str(self.base_price),
            "discount_percentage": (
                str(self.discount_percentage) if self.discount_percentage is not None else None
            ),
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "total_nights": self.total_nights,
            "price_per_night": str(self.price_per_night),
            "total_price": str(self.total_price),
            "currency": currency,
            "display_total": format_amount(self.total_price, currency),
        }


def to_decimal(value: Decimal | int | float | str, field: str) -> Decimal:
    """
    Convert a numeric input to Decimal without going through binary floats.

    Floats are converted through ``str`` so 0.1 becomes Decimal("0.1") rather
    than 0.1000000000000000055511151231257827.

    Raises:
        ValidationError: If the value is not a finite number
    """
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"{field} must be a number") from e
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def compute_quote(
    base_price: Decimal | int | float | str,
    discount_percentage: Decimal | int | float | str | None,
    check_in: date | datetime | str,
    check_out: date | datetime | str,
) -> PricingQuote:
    """
    Compute nights and total price for a stay.

    Args:
        base_price: Nightly price before discount (>= 0)
        discount_percentage: Optional discount in [0, 100]
        check_in: Arrival date (time component ignored)
        check_out: Departure date (time component ignored)

    Returns:
        PricingQuote with total_nights >= 1

    Raises:
        InvalidDateRange: If check_in is not before check_out
        ValidationError: If price or discount are out of range

    Example:
        >>> q = compute_quote(100, 10, "2024-06-01", "2024-06-04")
        >>> (q.total_nights, q.price_per_night, q.total_price)
        (3, Decimal('90.0'), Decimal('270.0'))
    """
    stay = DateRange(check_in, check_out)

    price = to_decimal(base_price, "base_price")
    if price < 0:
        raise ValidationError("base_price cannot be negative")

    discount: Decimal | None = None
    if discount_percentage is not None:
        discount = to_decimal(discount_percentage, "discount_percentage")
        if discount < 0 or discount > HUNDRED:
            raise ValidationError("discount_percentage must be between 0 and 100")

    if discount is not None and discount > 0:
        price_per_night = price * (1 - discount / HUNDRED)
    else:
        price_per_night = price

    # DateRange holds calendar dates, so the day difference is already whole nights
    total_nights = stay.nights

    return PricingQuote(
        base_price=price,
        discount_percentage=discount,
        check_in=stay.check_in,
        check_out=stay.check_out,
        total_nights=total_nights,
        price_per_night=price_per_night,
        total_price=price_per_night * total_nights,
    )


def minor_unit_exponent(currency: str) -> int:
    """Number of decimal places a currency is displayed and charged with."""
    return 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2


def round_to_currency(amount: Decimal, currency: str) -> Decimal:
    exponent = minor_unit_exponent(currency)
    return amount.quantize(Decimal(1).scaleb(-exponent), rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal, currency: str) -> int:
    """
    Convert an amount to the integer minor units payment providers expect.

    Example:
        >>> to_minor_units(Decimal("270.005"), "USD")
        27001
        >>> to_minor_units(Decimal("15000"), "UGX")
        15000
    """
    rounded = round_to_currency(amount, currency)
    return int(rounded.scaleb(minor_unit_exponent(currency)))


def format_amount(amount: Decimal, currency: str) -> str:
    """
    Render an amount for display, e.g. "270.00 USD" or "15,000 UGX".
    """
    rounded = round_to_currency(amount, currency)
    exponent = minor_unit_exponent(currency)
    return f"{rounded:,.{exponent}f} {currency.upper()}"
