# backend/modules/promotions/services/code_validation_service.py

from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Tuple
import logging

from pydantic import ValidationError

from ..exceptions import PromotionLookupError, PromotionValidationError
from ..models.promotion_models import CustomerSegment, PromotionStatus
from ..schemas.promotion_schemas import (
    CartItem,
    OrderHistory,
    PromotionDefinitionBase,
    PromotionValidationResult,
)
from ..utils.money_utils import ZERO, non_negative
from ..utils.time_utils import as_utc_naive
from .discount_calculators import calculate_discount
from .eligibility_service import (
    EligibilityContext,
    EligibilityService,
    eligibility_violation,
    time_window_violation,
)
from .promotion_lookup_service import PromotionLookupService, promotion_to_spec

logger = logging.getLogger(__name__)


def _invalid(message: str) -> PromotionValidationResult:
    return PromotionValidationResult(is_valid=False, error_message=message)


class CodeValidationService:
    """Validates promotion codes entered by a customer"""

    def __init__(self, lookup: PromotionLookupService, eligibility: EligibilityService):
        self.lookup = lookup
        self.eligibility = eligibility

    def resolve_code(
        self,
        tenant_id: str,
        code: str,
        at: datetime,
        user_id: Optional[str] = None,
        order_amount: Optional[Decimal] = None,
        order_history: Optional[OrderHistory] = None,
        customer_segment: Optional[CustomerSegment] = None,
        cart_items: Optional[List[CartItem]] = None,
        evaluate_segment: Optional[bool] = None,
    ) -> Tuple[PromotionValidationResult, Optional[PromotionDefinitionBase]]:
        """
        Run every code check in order and stop at the first failure.

        Args:
            tenant_id: Restaurant the code must belong to
            code: Code as typed by the customer, any case
            at: Instant the code is used at
            user_id: Customer, enables per-customer and frequency limits
            order_amount: Amount the preview and minimum order are judged on;
                None skips the minimum order check
            order_history: Customer history for segment targeting
            customer_segment: Segment asserted by the caller
            cart_items: Cart lines; None skips the item count check
            evaluate_segment: Force segment evaluation on or off; by default it
                runs only when history or a segment is supplied

        Returns:
            Tuple of the validation result and, when valid, the promotion
            definition carrying the code

        Raises:
            PromotionValidationError: If the promotion data could not be read
        """
        try:
            return self._resolve(
                tenant_id,
                code,
                at,
                user_id,
                order_amount,
                order_history,
                customer_segment,
                cart_items,
                evaluate_segment,
            )
        except PromotionLookupError as e:
            raise PromotionValidationError(code, e.message) from e

    def _resolve(
        self,
        tenant_id,
        code,
        at,
        user_id,
        order_amount,
        order_history,
        customer_segment,
        cart_items,
        evaluate_segment,
    ):
        at = as_utc_naive(at)

        code_row = self.lookup.get_code(tenant_id, code)
        if code_row is None or not code_row.is_active:
            return _invalid("Invalid promotion code"), None

        if code_row.valid_from and at < code_row.valid_from:
            return _invalid("Promotion code is not yet valid"), None
        if code_row.valid_until and at > code_row.valid_until:
            return _invalid("Promotion code has expired"), None

        limit = code_row.effective_usage_limit
        if limit is not None and (code_row.current_usage or 0) >= limit:
            return _invalid("Promotion code usage limit reached"), None

        promotion_row = self.lookup.get_promotion(code_row.promotion_id)
        if promotion_row is None or promotion_row.status != PromotionStatus.ACTIVE.value:
            return _invalid("Promotion is not currently active"), None

        rules = self.lookup.get_rules([promotion_row.id]).get(promotion_row.id)
        try:
            promotion = promotion_to_spec(promotion_row, rules, code_row)
        except ValidationError as e:
            logger.warning(f"Code {code_row.code} points at misconfigured promotion {promotion_row.id}: {e}")
            return _invalid("Promotion is not currently active"), None

        reason = time_window_violation(promotion, at)
        if reason:
            return _invalid(reason), None

        reason = self.eligibility.usage_limit_violation(promotion, user_id, at)
        if reason:
            return _invalid(reason), None

        if evaluate_segment is None:
            evaluate_segment = order_history is not None or customer_segment is not None

        context = EligibilityContext(
            subtotal=order_amount,
            at=at,
            item_count=(
                sum(max(item.quantity, 0) for item in cart_items)
                if cart_items is not None
                else None
            ),
            user_id=user_id,
            order_history=order_history,
            customer_segment=customer_segment,
            evaluate_segment=evaluate_segment,
        )
        reason = eligibility_violation(promotion, context)
        if reason:
            return _invalid(reason), None

        preview = ZERO
        if order_amount and order_amount > ZERO:
            preview = calculate_discount(
                promotion, cart_items or [], non_negative(order_amount), ZERO, at
            ).discount_amount

        result = PromotionValidationResult(
            is_valid=True,
            promotion_id=promotion.id,
            promotion_code_id=code_row.id,
            discount_preview=preview,
        )
        return result, promotion

    def validate_code(
        self,
        tenant_id: str,
        code: str,
        at: datetime,
        user_id: Optional[str] = None,
        order_amount: Decimal = ZERO,
        order_history: Optional[OrderHistory] = None,
    ) -> PromotionValidationResult:
        """Standalone validation with a discount preview against order_amount"""
        amount = non_negative(order_amount)
        result, _ = self.resolve_code(
            tenant_id,
            code,
            at,
            user_id=user_id,
            order_amount=amount if amount > ZERO else None,
            order_history=order_history,
        )
        return result
