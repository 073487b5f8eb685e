# backend/modules/promotions/services/pricing_service.py

from decimal import Decimal
from typing import Iterable
import logging

from ..models.promotion_models import DiscountScope
from ..schemas.promotion_schemas import DiscountApplication, OrderPricing
from ..utils.money_utils import ZERO, non_negative
from .discount_calculators import allocate_across_lines

logger = logging.getLogger(__name__)


class PricingAggregator:
    """
    Running order pricing while discounts are applied one by one.

    Goods and delivery discounts are tracked separately so that no discount can
    push its base below zero.
    """

    def __init__(self, subtotal, delivery_fee, tax_amount):
        self.subtotal = non_negative(subtotal)
        self.delivery_fee = non_negative(delivery_fee)
        self.tax_amount = non_negative(tax_amount)
        self.goods_discount = ZERO
        self.delivery_discount = ZERO

    @property
    def remaining_subtotal(self) -> Decimal:
        return self.subtotal - self.goods_discount

    @property
    def remaining_delivery_fee(self) -> Decimal:
        return self.delivery_fee - self.delivery_discount

    @property
    def total_discount(self) -> Decimal:
        return self.goods_discount + self.delivery_discount

    def apply(self, application: DiscountApplication) -> DiscountApplication:
        """Apply one discount and return it clamped to what was left"""
        amount = non_negative(application.discount_amount)

        if application.discount_scope == DiscountScope.DELIVERY_FEE:
            amount = min(amount, self.remaining_delivery_fee)
            self.delivery_discount += amount
        else:
            amount = min(amount, self.remaining_subtotal)
            self.goods_discount += amount

        if amount == application.discount_amount:
            return application

        logger.debug(
            f"Clamped discount of promotion {application.promotion_id} "
            f"from {application.discount_amount} to {amount}"
        )
        return application.model_copy(
            update={
                "discount_amount": amount,
                "applied_to_items": allocate_across_lines(
                    application.applied_to_items, amount
                ),
            }
        )

    def build_pricing(self) -> OrderPricing:
        total = (
            self.subtotal
            - self.goods_discount
            + self.delivery_fee
            - self.delivery_discount
            + self.tax_amount
        )
        return OrderPricing(
            subtotal=self.subtotal,
            discount_amount=self.goods_discount,
            delivery_fee=self.delivery_fee,
            delivery_discount=self.delivery_discount,
            tax_amount=self.tax_amount,
            total_amount=max(total, ZERO),
        )


def aggregate(
    subtotal, delivery_fee, tax_amount, discounts: Iterable[DiscountApplication]
) -> OrderPricing:
    """Combine discounts, in order, into the final order pricing"""
    aggregator = PricingAggregator(subtotal, delivery_fee, tax_amount)
    for application in discounts:
        aggregator.apply(application)
    return aggregator.build_pricing()


def pass_through_pricing(subtotal, delivery_fee, tax_amount) -> OrderPricing:
    """Pricing of an order with no discount at all"""
    return PricingAggregator(subtotal, delivery_fee, tax_amount).build_pricing()
