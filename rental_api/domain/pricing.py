"""
Decimal pricing arithmetic for estimates and PMG approval.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Tuple
from uuid import UUID

from rental_api.core.errors import ValidationError

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")
# Largest value a NUMERIC(10, 2) money column holds.
MAX_AMOUNT = Decimal("99999999.99")


def to_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a money/percent input; floats go through str() to avoid binary noise."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} is required", details={"field": field_name})
    try:
        result = Decimal(str(value)) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be numeric", details={"field": field_name, "value": str(value)})
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a finite number", details={"field": field_name})
    return result


def quantize(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def positive_amount(value: Any, field_name: str) -> Decimal:
    """Money input rounded to cents; must stay above zero after rounding and fit the column."""
    amount = to_decimal(value, field_name)
    if abs(amount) <= MAX_AMOUNT:
        amount = quantize(amount)
    if amount <= 0:
        raise ValidationError(f"{field_name} must be greater than 0", details={"field": field_name})
    return storable_amount(amount, field_name)


def storable_amount(amount: Decimal, field_name: str) -> Decimal:
    if amount > MAX_AMOUNT:
        raise ValidationError(
            f"{field_name} must not exceed {MAX_AMOUNT}", details={"field": field_name, "max": str(MAX_AMOUNT)}
        )
    return amount


def margin_percent(value: Any, field_name: str = "margin_percent") -> Decimal:
    pct = to_decimal(value, field_name)
    if pct < 0 or pct > HUNDRED:
        raise ValidationError(f"{field_name} must be between 0 and 100", details={"field": field_name})
    return quantize(pct)


# PUBLIC_INTERFACE
def apply_margin(base_price: Decimal, pct: Decimal) -> Tuple[Decimal, Decimal]:
    """Return (margin_amount, final_total) for a base price and a margin percent."""
    margin_amount = quantize(base_price * pct / HUNDRED)
    return margin_amount, quantize(base_price + margin_amount)


@dataclass(frozen=True)
class PricingEstimate:
    tier_found: bool
    pricing_tier_id: Optional[UUID]
    base_price: Optional[Decimal]
    margin_percent: Decimal
    margin_amount: Optional[Decimal]
    final_total_price: Optional[Decimal]


# PUBLIC_INTERFACE
def estimate(base_price: Optional[Decimal], pct: Decimal, tier_id: Optional[UUID] = None) -> PricingEstimate:
    """base + base * margin / 100, or an empty estimate when there is no base price."""
    pct = quantize(pct)
    if base_price is None:
        return PricingEstimate(False, None, None, pct, None, None)
    base = quantize(base_price)
    margin_amount, total = apply_margin(base, pct)
    return PricingEstimate(True, tier_id, base, pct, margin_amount, total)
