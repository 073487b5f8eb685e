# backend/modules/promotions/services/promotion_calculator.py

from sqlalchemy.orm import Session
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, List
import logging

from ..config.promotion_config import PromotionEngineConfig, get_promotion_config
from ..exceptions import PromotionValidationError
from ..schemas.promotion_schemas import (
    AppliedPromotion,
    DiscountApplication,
    OrderHistory,
    PromotionCalculationRequest,
    PromotionCalculationResult,
    PromotionDefinitionBase,
    PromotionValidationResult,
)
from ..utils.money_utils import ZERO, non_negative
from ..utils.time_utils import as_utc_naive, utc_now
from .code_validation_service import CodeValidationService
from .discount_calculators import calculate_discount
from .eligibility_service import EligibilityContext, EligibilityService
from .pricing_service import PricingAggregator, pass_through_pricing
from .promotion_lookup_service import PromotionLookupService
from .stacking_service import (
    StackingResolver,
    sort_promotions_by_priority,
    stacking_conflict_warning,
)

logger = logging.getLogger(__name__)


class PromotionCalculator:
    """
    Applies every eligible promotion and entered code to a cart.

    A calculation never raises: when promotion data cannot be read the order is
    priced at full price and the result is flagged invalid.
    """

    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utc_now,
        config: Optional[PromotionEngineConfig] = None,
    ):
        self.db = db
        self.clock = clock
        self.config = config or get_promotion_config()
        self.lookup = PromotionLookupService(db)
        self.eligibility = EligibilityService(self.lookup)
        self.codes = CodeValidationService(self.lookup, self.eligibility)

    def calculate_promotions(
        self, request: PromotionCalculationRequest
    ) -> PromotionCalculationResult:
        try:
            return self._calculate(request)
        except Exception as e:
            logger.error(f"Promotion calculation failed for tenant {request.tenant_id}: {e}")
            return PromotionCalculationResult(
                is_valid=False,
                total_discount=ZERO,
                final_pricing=pass_through_pricing(
                    request.subtotal, request.delivery_fee, request.tax_amount
                ),
                errors=[self.config.CALCULATION_FAILED_MESSAGE],
            )

    def _calculate(self, request: PromotionCalculationRequest) -> PromotionCalculationResult:
        at = as_utc_naive(request.order_time) or self.clock()
        subtotal = non_negative(request.subtotal)
        errors: List[str] = []
        warnings: List[str] = []

        context = EligibilityContext(
            subtotal=subtotal,
            at=at,
            user_id=request.user_id,
            order_history=request.order_history,
            customer_segment=request.customer_segment,
        )
        candidates = self.eligibility.get_eligible_promotions(
            request.tenant_id, request.cart_items, context, warnings
        )

        code_promotions = self._resolve_codes(request, subtotal, at, errors)
        if code_promotions:
            code_ids = {promotion.id for promotion in code_promotions}
            candidates = [p for p in candidates if p.id not in code_ids] + code_promotions

        aggregator = PricingAggregator(
            request.subtotal, request.delivery_fee, request.tax_amount
        )
        resolver = StackingResolver()
        breakdown: List[DiscountApplication] = []

        for promotion in sort_promotions_by_priority(candidates):
            if not resolver.can_accept(promotion):
                warnings.append(stacking_conflict_warning(promotion))
                continue

            calculation = calculate_discount(
                promotion,
                request.cart_items,
                aggregator.remaining_subtotal,
                aggregator.remaining_delivery_fee,
                at,
            )
            if calculation.warning:
                warnings.append(calculation.warning)
            if calculation.discount_amount <= ZERO:
                continue

            application = aggregator.apply(
                DiscountApplication(
                    promotion_id=promotion.id,
                    promotion_name=promotion.name,
                    promotion_type=promotion.promotion_type,
                    discount_scope=promotion.discount_scope,
                    discount_amount=calculation.discount_amount,
                    applied_to_items=calculation.applied_to_items,
                    code_used=promotion.code_used,
                    promotion_code_id=promotion.promotion_code_id,
                )
            )
            if application.discount_amount <= ZERO:
                continue

            resolver.accept(promotion)
            breakdown.append(application)

        return PromotionCalculationResult(
            is_valid=True,
            total_discount=aggregator.total_discount,
            discount_breakdown=breakdown,
            final_pricing=aggregator.build_pricing(),
            applied_promotions=[
                AppliedPromotion(
                    promotion_id=application.promotion_id,
                    promotion_name=application.promotion_name,
                    discount_amount=application.discount_amount,
                    promotion_type=application.promotion_type,
                    code_used=application.code_used,
                )
                for application in breakdown
            ],
            errors=errors,
            warnings=warnings,
        )

    def _resolve_codes(
        self,
        request: PromotionCalculationRequest,
        subtotal: Decimal,
        at: datetime,
        errors: List[str],
    ) -> List[PromotionDefinitionBase]:
        """Validate entered codes; invalid ones are reported, not raised"""
        promotions: List[PromotionDefinitionBase] = []
        seen = set()
        for raw_code in request.promo_codes:
            code = raw_code.strip().upper()
            if not code or code in seen:
                continue
            seen.add(code)

            result, promotion = self.codes.resolve_code(
                request.tenant_id,
                code,
                at,
                user_id=request.user_id,
                order_amount=subtotal,
                order_history=request.order_history,
                customer_segment=request.customer_segment,
                cart_items=request.cart_items,
                evaluate_segment=True,
            )
            if not result.is_valid:
                errors.append(result.error_message)
                continue
            if any(p.id == promotion.id for p in promotions):
                continue
            promotions.append(promotion)
        return promotions

    def validate_promotion_code(
        self,
        tenant_id: str,
        code: str,
        user_id: Optional[str] = None,
        order_amount: Decimal = ZERO,
        order_history: Optional[OrderHistory] = None,
    ) -> PromotionValidationResult:
        """Validate a single code outside of a calculation"""
        try:
            return self.codes.validate_code(
                tenant_id,
                code,
                self.clock(),
                user_id=user_id,
                order_amount=order_amount,
                order_history=order_history,
            )
        except PromotionValidationError as e:
            logger.error(f"Error validating promotion code {code}: {e.message}")
            return PromotionValidationResult(
                is_valid=False, error_message="Validation failed"
            )
