# backend/modules/promotions/services/eligibility_service.py

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, List
import logging

from ..config.promotion_config import get_promotion_config
from ..models.promotion_models import CustomerSegment, UsageFrequency
from ..schemas.promotion_schemas import (
    CartItem,
    OrderHistory,
    PromotionDefinitionBase,
    WEEKDAYS,
)
from ..utils.time_utils import as_utc_naive, to_local_time
from .promotion_lookup_service import PromotionLookupService

logger = logging.getLogger(__name__)

FREQUENCY_WINDOWS = {
    UsageFrequency.DAILY: timedelta(days=1),
    UsageFrequency.WEEKLY: timedelta(days=7),
    UsageFrequency.MONTHLY: timedelta(days=30),
}


@dataclass
class EligibilityContext:
    """What is known about the order when judging eligibility"""

    subtotal: Optional[Decimal]
    at: datetime
    item_count: Optional[int] = None
    user_id: Optional[str] = None
    order_history: Optional[OrderHistory] = None
    customer_segment: Optional[CustomerSegment] = None
    evaluate_segment: bool = True


def time_window_violation(
    promotion: PromotionDefinitionBase, at: datetime
) -> Optional[str]:
    """Reason the instant falls outside the promotion's windows, or None"""
    at = as_utc_naive(at)

    if promotion.valid_from and at < as_utc_naive(promotion.valid_from):
        return "Promotion has not started yet"
    if promotion.valid_until and at > as_utc_naive(promotion.valid_until):
        return "Promotion has expired"

    local = to_local_time(at, promotion.timezone)

    if promotion.valid_days:
        if WEEKDAYS[local.weekday()] not in promotion.valid_days:
            return "Promotion is not available today"

    current = local.strftime("%H:%M")
    if promotion.valid_hours_start and current < promotion.valid_hours_start:
        return "Promotion is not available at this time"
    if promotion.valid_hours_end and current > promotion.valid_hours_end:
        return "Promotion is not available at this time"

    return None


def is_within_time_window(promotion: PromotionDefinitionBase, at: datetime) -> bool:
    return time_window_violation(promotion, at) is None


def is_customer_in_segment(
    segment: CustomerSegment,
    order_history: Optional[OrderHistory],
    customer_segment: Optional[CustomerSegment] = None,
) -> bool:
    """Evaluate segment membership from order-history aggregates"""
    config = get_promotion_config()

    if segment == CustomerSegment.ALL_CUSTOMERS:
        return True
    if customer_segment is not None and customer_segment == segment:
        return True

    if segment == CustomerSegment.NEW_CUSTOMERS:
        return order_history is None or order_history.total_orders == 0
    if segment == CustomerSegment.RETURNING_CUSTOMERS:
        return order_history is not None and order_history.total_orders > 0
    if segment == CustomerSegment.VIP_CUSTOMERS:
        return (
            order_history is not None
            and order_history.total_spent > config.VIP_SPEND_THRESHOLD
        )
    if segment == CustomerSegment.INACTIVE_CUSTOMERS:
        return (
            order_history is not None
            and (order_history.days_since_last_order or 0)
            > config.INACTIVE_DAYS_THRESHOLD
        )

    # Birthday and hand-picked segments are not derivable from order history
    return True


def eligibility_violation(
    promotion: PromotionDefinitionBase, context: EligibilityContext
) -> Optional[str]:
    """Reason a promotion's preconditions fail for this order, or None"""
    if (
        promotion.min_order_amount
        and context.subtotal is not None
        and context.subtotal < promotion.min_order_amount
    ):
        return f"Minimum order amount of ${promotion.min_order_amount:.2f} required"

    if (
        promotion.min_items_quantity
        and context.item_count is not None
        and context.item_count < promotion.min_items_quantity
    ):
        return f"Minimum of {promotion.min_items_quantity} items required"

    reason = time_window_violation(promotion, context.at)
    if reason:
        return reason

    if context.evaluate_segment and not is_customer_in_segment(
        promotion.target_segment, context.order_history, context.customer_segment
    ):
        return "Promotion is not available for this customer"

    return None


class EligibilityService:
    """Selects the promotions whose preconditions an order satisfies"""

    def __init__(self, lookup: PromotionLookupService):
        self.lookup = lookup

    def get_eligible_promotions(
        self,
        tenant_id: str,
        cart_items: List[CartItem],
        context: EligibilityContext,
        warnings: Optional[List[str]] = None,
    ) -> List[PromotionDefinitionBase]:
        """
        Active promotions of the tenant that apply without a code and whose
        preconditions hold for this order

        Args:
            tenant_id: Restaurant owning the promotions
            cart_items: Cart lines, used for the item count
            context: Order amounts, instant and customer context
            warnings: Optional sink for promotions skipped as malformed

        Returns:
            Eligible promotions in storage order; empty when nothing qualifies
        """
        if context.item_count is None:
            context.item_count = sum(max(item.quantity, 0) for item in cart_items)

        candidates = self.lookup.get_auto_apply_promotions(tenant_id, warnings)

        eligible = []
        for promotion in candidates:
            reason = eligibility_violation(promotion, context)
            if reason is None:
                reason = self.usage_limit_violation(
                    promotion, context.user_id, context.at
                )
            if reason:
                logger.debug(f"Promotion {promotion.id} not eligible: {reason}")
                continue
            eligible.append(promotion)

        return eligible

    def usage_limit_violation(
        self,
        promotion: PromotionDefinitionBase,
        user_id: Optional[str],
        at: datetime,
    ) -> Optional[str]:
        """Reason the promotion's usage limits are exhausted, or None"""
        if (
            promotion.total_usage_limit is not None
            and promotion.total_uses >= promotion.total_usage_limit
        ):
            return "Promotion usage limit reached"

        if not user_id:
            return None

        if promotion.per_customer_limit is not None:
            used = self.lookup.count_usages(promotion.id, user_id=user_id)
            if used >= promotion.per_customer_limit:
                return "You have reached the usage limit for this promotion"

        if promotion.usage_frequency == UsageFrequency.ONCE_PER_CUSTOMER:
            if self.lookup.count_usages(promotion.id, user_id=user_id) > 0:
                return "You have already used this promotion"
        elif promotion.usage_frequency in FREQUENCY_WINDOWS:
            since = as_utc_naive(at) - FREQUENCY_WINDOWS[promotion.usage_frequency]
            if self.lookup.count_usages(promotion.id, user_id=user_id, since=since) > 0:
                return "You have already used this promotion recently"

        return None
