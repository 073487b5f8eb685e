# backend/modules/promotions/services/usage_service.py

from sqlalchemy.orm import Session
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, List
import logging

from ..exceptions import UsageLimitExceededError
from ..models.promotion_models import CustomerSegment, Promotion, UsageFrequency
from ..schemas.promotion_schemas import (
    AppliedItem,
    PromotionCalculationResult,
    PromotionUsageBatchResponse,
    PromotionUsageCreate,
)
from ..utils.money_utils import non_negative, to_money
from ..utils.time_utils import utc_now
from .eligibility_service import FREQUENCY_WINDOWS
from .promotion_lookup_service import PromotionLookupService

logger = logging.getLogger(__name__)


class PromotionUsageService:
    """Records applied promotions against confirmed orders"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock
        self.lookup = PromotionLookupService(db)

    def _reserve_customer_slot(self, promotion: Promotion, user_id: str, at: datetime) -> bool:
        limit = promotion.per_customer_limit
        used_since = None
        frequency = UsageFrequency(promotion.usage_frequency or UsageFrequency.UNLIMITED.value)
        if frequency == UsageFrequency.ONCE_PER_CUSTOMER:
            limit = 1 if limit is None else min(limit, 1)
        elif frequency in FREQUENCY_WINDOWS:
            used_since = at - FREQUENCY_WINDOWS[frequency]

        if limit is None and used_since is None:
            return True
        return self.lookup.reserve_customer_slot(
            promotion.id, user_id, limit=limit, used_since=used_since, at=at
        )

    def record_usage(
        self,
        promotion_id: int,
        order_id: str,
        discount_amount: Decimal,
        original_amount: Decimal,
        user_id: Optional[str] = None,
        promotion_code_id: Optional[int] = None,
        applied_items: Optional[List[AppliedItem]] = None,
        customer_segment: Optional[CustomerSegment] = None,
        tenant_id: Optional[str] = None,
    ) -> bool:
        """
        Record one promotion usage and bump its counters atomically.

        Usage slots of the promotion, the code and the customer are reserved
        with conditional updates so that concurrent confirmations can never
        push any of them past its limit. When tenant_id is given the promotion
        must belong to that tenant.

        Returns:
            True if the usage was recorded, False otherwise. Failures are
            logged and rolled back, never raised.
        """
        try:
            promotion = self.lookup.get_promotion(promotion_id)
            if promotion is None or (
                tenant_id is not None and promotion.tenant_id != tenant_id
            ):
                raise ValueError(f"Promotion {promotion_id} not found")

            at = self.clock()

            if not self.lookup.reserve_promotion_slot(promotion_id):
                raise UsageLimitExceededError(promotion_id)

            if promotion_code_id is not None and not self.lookup.reserve_code_slot(
                promotion_code_id, promotion_id
            ):
                raise UsageLimitExceededError(
                    promotion_id, promotion_code_id, "code unavailable or usage limit reached"
                )

            if user_id and not self._reserve_customer_slot(promotion, user_id, at):
                raise UsageLimitExceededError(
                    promotion_id, promotion_code_id, f"customer {user_id} usage limit reached"
                )

            discount = non_negative(discount_amount)
            original = non_negative(original_amount)

            self.lookup.add_usage(
                promotion_id=promotion_id,
                promotion_code_id=promotion_code_id,
                tenant_id=promotion.tenant_id,
                order_id=order_id,
                user_id=user_id,
                discount_amount=discount,
                original_order_amount=original,
                final_order_amount=max(to_money(original - discount), to_money(0)),
                applied_items=[
                    item.model_dump(mode="json") for item in (applied_items or [])
                ],
                customer_segment=customer_segment.value if customer_segment else None,
                created_at=at,
            )
            self.lookup.add_discount_given(promotion_id, discount)
            self.lookup.mark_exhausted(promotion_id, promotion_code_id)

            self.db.commit()

            logger.info(
                f"Recorded usage of promotion {promotion_id} for order {order_id}: "
                f"discount {discount}"
            )
            return True

        except Exception as e:
            self.db.rollback()
            logger.error(
                f"Error recording usage of promotion {promotion_id} "
                f"for order {order_id}: {e}"
            )
            return False

    def record_usages(
        self, usages: List[PromotionUsageCreate], tenant_id: Optional[str] = None
    ) -> PromotionUsageBatchResponse:
        """Record several usages independently; failures do not stop the rest"""
        recorded = 0
        failed = []
        for usage in usages:
            ok = self.record_usage(
                promotion_id=usage.promotion_id,
                order_id=usage.order_id,
                discount_amount=usage.discount_amount,
                original_amount=usage.original_amount,
                user_id=usage.user_id,
                promotion_code_id=usage.promotion_code_id,
                applied_items=usage.applied_items,
                customer_segment=usage.customer_segment,
                tenant_id=tenant_id,
            )
            if ok:
                recorded += 1
            else:
                failed.append(usage.promotion_id)
        return PromotionUsageBatchResponse(recorded=recorded, failed=failed)

    def record_calculation(
        self,
        result: PromotionCalculationResult,
        order_id: str,
        user_id: Optional[str] = None,
        customer_segment: Optional[CustomerSegment] = None,
        tenant_id: Optional[str] = None,
    ) -> PromotionUsageBatchResponse:
        """Record every discount of a calculation after the order is confirmed"""
        original = result.final_pricing.subtotal + result.final_pricing.delivery_fee
        usages = [
            PromotionUsageCreate(
                promotion_id=application.promotion_id,
                order_id=order_id,
                user_id=user_id,
                discount_amount=application.discount_amount,
                original_amount=original,
                promotion_code_id=application.promotion_code_id,
                applied_items=application.applied_to_items,
                customer_segment=customer_segment,
            )
            for application in result.discount_breakdown
            if application.promotion_id is not None
        ]
        return self.record_usages(usages, tenant_id=tenant_id)
