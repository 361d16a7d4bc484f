"""
Booking price breakdown.

base = price * hours (2 decimals); service fee and tax are whole currency units,
rounded half away from zero; total = base + fee + tax.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from app.config import settings
from app.core.errors import ValidationError

CENTS = Decimal("0.01")
UNIT = Decimal("1")


@dataclass(frozen=True)
class PriceBreakdown:
    base: Decimal
    service_fee: Decimal
    tax: Decimal
    total: Decimal

    def as_dict(self) -> dict[str, str]:
        return {
            "base_amount": str(self.base),
            "service_fee": str(self.service_fee),
            "tax_amount": str(self.tax),
            "total_amount": str(self.total),
        }


def round_half_away(value: Decimal, quantum: Decimal = CENTS) -> Decimal:
    # ROUND_HALF_UP on Decimal rounds away from zero on ties, for both signs
    return value.quantize(quantum, rounding=ROUND_HALF_UP)


def to_price(value) -> Decimal:
    """Parse a price (str, int, float or Decimal) to a 2-decimal Decimal, or raise ValidationError."""
    if isinstance(value, bool) or value is None:
        raise ValidationError("price_per_hour is required and must be a number")
    try:
        # str() first so floats like 33.33 keep their displayed value
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"price_per_hour must be a number, got {value!r}") from None
    if not price.is_finite():
        raise ValidationError("price_per_hour must be finite")
    return round_half_away(price)


def compute_total(
    price_per_hour: Decimal,
    hours: int,
    *,
    fee_rate: Decimal | None = None,
    tax_rate: Decimal | None = None,
) -> PriceBreakdown:
    fee_rate = settings.service_fee_rate if fee_rate is None else fee_rate
    tax_rate = settings.tax_rate if tax_rate is None else tax_rate
    base = round_half_away(Decimal(price_per_hour) * hours)
    fee = round_half_away(base * fee_rate, UNIT)
    tax = round_half_away((base + fee) * tax_rate, UNIT)
    total = round_half_away(base + fee + tax)
    return PriceBreakdown(base=base, service_fee=round_half_away(fee), tax=round_half_away(tax), total=total)
