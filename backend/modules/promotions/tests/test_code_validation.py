# backend/modules/promotions/tests/test_code_validation.py

from datetime import timedelta
from decimal import Decimal

from modules.promotions.exceptions import PromotionLookupError
from modules.promotions.models.promotion_models import PromotionStatus
from modules.promotions.schemas.promotion_schemas import OrderHistory
from modules.promotions.tests.factories import (
    FIXED_NOW,
    TENANT_ID,
    PromotionCodeFactory,
    PromotionFactory,
    PromotionUsageFactory,
)


class TestPromotionCodeValidation:
    """Standalone promotion code validation"""

    def _validate(self, calculator, code, **kwargs):
        kwargs.setdefault("order_amount", Decimal("50.00"))
        return calculator.validate_promotion_code(TENANT_ID, code, **kwargs)

    def test_valid_code_with_preview(self, calculator):
        promo_code = PromotionCodeFactory(code="SAVE10")

        result = self._validate(calculator, "SAVE10")

        assert result.is_valid
        assert result.promotion_id == promo_code.promotion_id
        assert result.promotion_code_id == promo_code.id
        assert result.error_message is None
        assert result.discount_preview == Decimal("5.00")

    def test_code_lookup_ignores_case(self, calculator):
        PromotionCodeFactory(code="SAVE10")
        assert self._validate(calculator, "  save10 ").is_valid

    def test_zero_order_amount_gives_zero_preview(self, calculator):
        PromotionCodeFactory(code="SAVE10")

        result = self._validate(calculator, "SAVE10", order_amount=Decimal("0"))

        assert result.is_valid
        assert result.discount_preview == Decimal("0.00")

    def test_unknown_code(self, calculator):
        result = self._validate(calculator, "NOPE")

        assert not result.is_valid
        assert result.error_message == "Invalid promotion code"
        assert result.discount_preview == Decimal("0.00")

    def test_code_of_other_tenant(self, calculator):
        PromotionCodeFactory(code="THEIRS", promotion__tenant_id="other-tenant")
        assert self._validate(calculator, "THEIRS").error_message == "Invalid promotion code"

    def test_inactive_code(self, calculator):
        PromotionCodeFactory(code="OFF", is_active=False)
        assert self._validate(calculator, "OFF").error_message == "Invalid promotion code"

    def test_expired_code(self, calculator):
        PromotionCodeFactory(code="OLD", valid_until=FIXED_NOW - timedelta(days=1))

        result = self._validate(calculator, "OLD")

        assert not result.is_valid
        assert result.error_message == "Promotion code has expired"
        assert result.discount_preview == Decimal("0.00")

    def test_code_usage_limit(self, calculator):
        PromotionCodeFactory(code="LIMITED", usage_limit=5, current_usage=5)
        assert self._validate(calculator, "LIMITED").error_message == (
            "Promotion code usage limit reached"
        )

    def test_used_single_use_code(self, calculator):
        PromotionCodeFactory(code="ONCE", is_single_use=True, current_usage=1)
        assert not self._validate(calculator, "ONCE").is_valid

    def test_inactive_promotion(self, calculator):
        PromotionCodeFactory(code="PAUSED", promotion__status=PromotionStatus.PAUSED.value)
        assert self._validate(calculator, "PAUSED").error_message == (
            "Promotion is not currently active"
        )

    def test_expired_promotion(self, calculator):
        PromotionCodeFactory(
            code="GONE",
            promotion__valid_from=FIXED_NOW - timedelta(days=30),
            promotion__valid_until=FIXED_NOW - timedelta(days=1),
        )
        assert self._validate(calculator, "GONE").error_message == "Promotion has expired"

    def test_promotion_not_started(self, calculator):
        PromotionCodeFactory(code="SOON", promotion__valid_from=FIXED_NOW + timedelta(days=1))
        assert self._validate(calculator, "SOON").error_message == (
            "Promotion has not started yet"
        )

    def test_promotion_usage_limit(self, calculator):
        PromotionCodeFactory(
            code="FULL", promotion__total_usage_limit=10, promotion__total_uses=10
        )
        assert self._validate(calculator, "FULL").error_message == (
            "Promotion usage limit reached"
        )

    def test_customer_usage_limit(self, calculator):
        promo_code = PromotionCodeFactory(code="MINE", promotion__per_customer_limit=1)
        PromotionUsageFactory(promotion=promo_code.promotion, user_id="user-1")

        result = self._validate(calculator, "MINE", user_id="user-1")
        assert result.error_message == "You have reached the usage limit for this promotion"

        assert self._validate(calculator, "MINE", user_id="user-2").is_valid

    def test_minimum_order_amount(self, calculator):
        PromotionCodeFactory(code="BIG", promotion__min_order_amount=Decimal("100"))

        result = self._validate(calculator, "BIG")

        assert not result.is_valid
        assert result.error_message == "Minimum order amount of $100.00 required"

    def test_segment_checked_when_history_given(self, calculator):
        PromotionCodeFactory(code="WELCOME", promotion__target_segment="new_customers")

        assert self._validate(calculator, "WELCOME").is_valid
        result = self._validate(
            calculator, "WELCOME", order_history=OrderHistory(total_orders=4)
        )
        assert result.error_message == "Promotion is not available for this customer"

    def test_lookup_failure_reports_validation_failed(self, calculator, monkeypatch):
        def broken_lookup(*args, **kwargs):
            raise PromotionLookupError("get_code", "connection refused")

        monkeypatch.setattr(calculator.lookup, "get_code", broken_lookup)

        result = self._validate(calculator, "SAVE10")

        assert not result.is_valid
        assert result.error_message == "Validation failed"
        assert result.discount_preview == Decimal("0.00")
