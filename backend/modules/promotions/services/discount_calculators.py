# backend/modules/promotions/services/discount_calculators.py

"""
Per-type discount calculators.

Each calculator is a pure function of the promotion, the cart and the amounts
still open to discount. None of them raise for unsupported input: they return
a zero result carrying a warning instead.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional
import logging

from ..models.promotion_models import DiscountScope, PromotionType
from ..schemas.promotion_schemas import (
    AppliedItem,
    CartItem,
    PromotionDefinitionBase,
)
from ..utils.money_utils import ZERO, non_negative, percent_of, to_money
from .eligibility_service import is_within_time_window
from .rule_matching import eligible_cart_items

logger = logging.getLogger(__name__)


@dataclass
class DiscountCalculation:
    """Raw discount produced by one promotion before aggregation"""

    discount_amount: Decimal = ZERO
    applied_to_items: List[AppliedItem] = field(default_factory=list)
    warning: Optional[str] = None


def line_total(item: CartItem) -> Decimal:
    return to_money(item.unit_price * max(item.quantity, 0))


def applicable_amount(
    promotion: PromotionDefinitionBase,
    cart_items: List[CartItem],
    remaining_subtotal: Decimal,
    remaining_delivery_fee: Decimal,
) -> Decimal:
    """Base a percentage or fixed discount is taken from, by scope"""
    scope = promotion.discount_scope

    if scope == DiscountScope.DELIVERY_FEE:
        return non_negative(remaining_delivery_fee)

    if scope in (DiscountScope.ORDER_TOTAL, DiscountScope.SUBTOTAL):
        return non_negative(remaining_subtotal)

    matched = eligible_cart_items(promotion.rules, cart_items)
    if not matched:
        return ZERO

    if scope == DiscountScope.FIRST_ITEM:
        base = to_money(matched[0].unit_price)
    elif scope == DiscountScope.CHEAPEST_ITEM:
        base = to_money(min(item.unit_price for item in matched))
    else:
        base = sum((line_total(item) for item in matched), ZERO)

    return min(non_negative(base), non_negative(remaining_subtotal))


def allocate_across_lines(
    lines: List[AppliedItem], total: Decimal
) -> List[AppliedItem]:
    """
    Scale per-line discounts down so they sum exactly to `total`.

    Lines are reduced in order; the last line absorbs the rounding remainder.
    """
    current = sum((line.discount_amount for line in lines), ZERO)
    if current <= total or current == ZERO:
        return lines

    allocated = []
    left = total
    for index, line in enumerate(lines):
        if index == len(lines) - 1:
            share = left
        else:
            share = min(to_money(line.discount_amount * total / current), left)
        left -= share
        allocated.append(line.model_copy(update={"discount_amount": share}))
    return allocated


def cap_discount(
    promotion: PromotionDefinitionBase, calculation: DiscountCalculation
) -> DiscountCalculation:
    """Apply max_discount_amount to any calculator's result; zero means uncapped"""
    cap = promotion.max_discount_amount
    if not cap or calculation.discount_amount <= cap:
        return calculation

    capped = to_money(cap)
    return DiscountCalculation(
        discount_amount=capped,
        applied_to_items=allocate_across_lines(calculation.applied_to_items, capped),
        warning=calculation.warning,
    )


def _scoped_items(
    promotion: PromotionDefinitionBase, cart_items: List[CartItem], discount: Decimal
) -> List[AppliedItem]:
    """Line attribution for a single-item scope"""
    if promotion.discount_scope not in (
        DiscountScope.FIRST_ITEM,
        DiscountScope.CHEAPEST_ITEM,
    ) or discount <= ZERO:
        return []

    matched = eligible_cart_items(promotion.rules, cart_items)
    if not matched:
        return []
    if promotion.discount_scope == DiscountScope.FIRST_ITEM:
        target = matched[0]
    else:
        target = min(matched, key=lambda item: item.unit_price)

    return [
        AppliedItem(
            item_id=target.menu_item_id,
            item_name=target.name,
            quantity=1,
            discount_amount=discount,
        )
    ]


def calculate_percentage(
    promotion: PromotionDefinitionBase,
    cart_items: List[CartItem],
    remaining_subtotal: Decimal,
    remaining_delivery_fee: Decimal,
    at: datetime,
) -> DiscountCalculation:
    if not promotion.discount_percentage:
        return DiscountCalculation()

    base = applicable_amount(
        promotion, cart_items, remaining_subtotal, remaining_delivery_fee
    )
    discount = min(percent_of(base, promotion.discount_percentage), base)
    return DiscountCalculation(
        discount_amount=discount,
        applied_to_items=_scoped_items(promotion, cart_items, discount),
    )


def calculate_fixed_amount(
    promotion: PromotionDefinitionBase,
    cart_items: List[CartItem],
    remaining_subtotal: Decimal,
    remaining_delivery_fee: Decimal,
    at: datetime,
) -> DiscountCalculation:
    if not promotion.discount_amount:
        return DiscountCalculation()

    base = applicable_amount(
        promotion, cart_items, remaining_subtotal, remaining_delivery_fee
    )
    discount = min(to_money(promotion.discount_amount), base)
    return DiscountCalculation(
        discount_amount=discount,
        applied_to_items=_scoped_items(promotion, cart_items, discount),
    )


def calculate_buy_x_get_y(
    promotion: PromotionDefinitionBase,
    cart_items: List[CartItem],
    remaining_subtotal: Decimal,
    remaining_delivery_fee: Decimal,
    at: datetime,
) -> DiscountCalculation:
    """Discount the cheapest matched units: floor(qty / buy) * get of them"""
    if not promotion.buy_quantity or not promotion.get_quantity:
        return DiscountCalculation()

    matched = sorted(
        eligible_cart_items(promotion.rules, cart_items),
        key=lambda item: item.unit_price,
    )
    total_quantity = sum(item.quantity for item in matched)
    free_units = (total_quantity // promotion.buy_quantity) * promotion.get_quantity

    discount_pct = promotion.get_discount_percentage or Decimal("100")
    lines = []
    for item in matched:
        if free_units <= 0:
            break
        units = min(free_units, item.quantity)
        item_discount = percent_of(item.unit_price * units, discount_pct)
        lines.append(
            AppliedItem(
                item_id=item.menu_item_id,
                item_name=item.name,
                quantity=units,
                discount_amount=item_discount,
            )
        )
        free_units -= units

    total = sum((line.discount_amount for line in lines), ZERO)
    return DiscountCalculation(discount_amount=total, applied_to_items=lines)


def calculate_free_delivery(
    promotion: PromotionDefinitionBase,
    cart_items: List[CartItem],
    remaining_subtotal: Decimal,
    remaining_delivery_fee: Decimal,
    at: datetime,
) -> DiscountCalculation:
    if promotion.discount_scope != DiscountScope.DELIVERY_FEE:
        return DiscountCalculation()

    fee = non_negative(remaining_delivery_fee)
    if promotion.discount_amount:
        return DiscountCalculation(discount_amount=min(fee, to_money(promotion.discount_amount)))
    return DiscountCalculation(discount_amount=fee)


def calculate_happy_hour(
    promotion: PromotionDefinitionBase,
    cart_items: List[CartItem],
    remaining_subtotal: Decimal,
    remaining_delivery_fee: Decimal,
    at: datetime,
) -> DiscountCalculation:
    if not is_within_time_window(promotion, at):
        return DiscountCalculation()
    return calculate_percentage(
        promotion, cart_items, remaining_subtotal, remaining_delivery_fee, at
    )


def calculate_category_discount(
    promotion: PromotionDefinitionBase,
    cart_items: List[CartItem],
    remaining_subtotal: Decimal,
    remaining_delivery_fee: Decimal,
    at: datetime,
) -> DiscountCalculation:
    if promotion.discount_percentage:
        return calculate_percentage(
            promotion, cart_items, remaining_subtotal, remaining_delivery_fee, at
        )
    return calculate_fixed_amount(
        promotion, cart_items, remaining_subtotal, remaining_delivery_fee, at
    )


Calculator = Callable[
    [PromotionDefinitionBase, List[CartItem], Decimal, Decimal, datetime],
    DiscountCalculation,
]

DISCOUNT_CALCULATORS: Dict[str, Calculator] = {
    PromotionType.PERCENTAGE.value: calculate_percentage,
    PromotionType.FIXED_AMOUNT.value: calculate_fixed_amount,
    PromotionType.BUY_X_GET_Y.value: calculate_buy_x_get_y,
    PromotionType.FREE_DELIVERY.value: calculate_free_delivery,
    PromotionType.HAPPY_HOUR.value: calculate_happy_hour,
    PromotionType.FIRST_TIME_CUSTOMER.value: calculate_percentage,
    PromotionType.CATEGORY_DISCOUNT.value: calculate_category_discount,
}


def calculate_discount(
    promotion: PromotionDefinitionBase,
    cart_items: List[CartItem],
    remaining_subtotal: Decimal,
    remaining_delivery_fee: Decimal,
    at: datetime,
) -> DiscountCalculation:
    """
    Compute the raw discount of a single promotion.

    Args:
        promotion: Validated per-type promotion definition
        cart_items: Cart lines of the order
        remaining_subtotal: Goods amount not yet discounted by earlier promotions
        remaining_delivery_fee: Delivery fee not yet discounted
        at: Calculation instant, used by time-bound types

    Returns:
        DiscountCalculation capped by the promotion's max_discount_amount
    """
    promotion_type = getattr(promotion, "promotion_type", None)
    calculator = DISCOUNT_CALCULATORS.get(promotion_type)
    if calculator is None:
        logger.warning(f"Unknown promotion type: {promotion_type}")
        return DiscountCalculation(
            warning=f"Promotion type '{promotion_type}' is not supported"
        )

    calculation = calculator(
        promotion,
        cart_items,
        non_negative(remaining_subtotal),
        non_negative(remaining_delivery_fee),
        at,
    )
    return cap_discount(promotion, calculation)
