# backend/modules/promotions/utils/money_utils.py

from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from ..config.promotion_config import get_promotion_config

ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Convert a numeric value to a cent-quantized Decimal"""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(get_promotion_config().MONEY_PRECISION, rounding=ROUND_HALF_UP)


def non_negative(value: Any) -> Decimal:
    """Money amount floored at zero"""
    return max(to_money(value), ZERO)


def percent_of(amount: Decimal, percentage: Decimal) -> Decimal:
    """`percentage` percent of `amount`, rounded half-up to cents"""
    return to_money(Decimal(amount) * Decimal(percentage) / Decimal("100"))
