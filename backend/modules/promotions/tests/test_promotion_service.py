# backend/modules/promotions/tests/test_promotion_service.py

import pytest
from datetime import timedelta
from decimal import Decimal

from modules.promotions.exceptions import InvalidStatusTransitionError
from modules.promotions.models.promotion_models import (
    PromotionStatus,
    PromotionType,
    RuleType,
)
from modules.promotions.schemas.promotion_schemas import (
    PromotionCodeCreate,
    PromotionCreate,
    PromotionRuleCreate,
)
from modules.promotions.tests.factories import (
    FIXED_NOW,
    TENANT_ID,
    PromotionFactory,
    PromotionUsageFactory,
)


class TestPromotionAdministration:
    """Creating promotions, codes and rules"""

    def test_create_promotion_is_draft(self, promotion_service):
        promotion = promotion_service.create_promotion(
            TENANT_ID,
            PromotionCreate(
                name="Summer sale",
                promotion_type=PromotionType.PERCENTAGE,
                discount_percentage=Decimal("15"),
                auto_apply=True,
            ),
        )

        assert promotion.id is not None
        assert promotion.tenant_id == TENANT_ID
        assert promotion.status == PromotionStatus.DRAFT.value
        assert promotion.promotion_type == "percentage"
        assert promotion.discount_percentage == Decimal("15")
        assert promotion.get_discount_percentage == Decimal("100")

    def test_create_free_delivery_defaults_scope(self, promotion_service):
        promotion = promotion_service.create_promotion(
            TENANT_ID,
            PromotionCreate(name="Free delivery", promotion_type=PromotionType.FREE_DELIVERY),
        )
        assert promotion.discount_scope == "delivery_fee"

    def test_create_rejects_inconsistent_type(self, promotion_service):
        """A percentage promotion needs a percentage"""
        with pytest.raises(ValueError):
            promotion_service.create_promotion(
                TENANT_ID,
                PromotionCreate(name="Broken", promotion_type=PromotionType.PERCENTAGE),
            )

    def test_create_code_is_upper_case(self, promotion_service):
        promotion = PromotionFactory()

        code = promotion_service.create_promotion_code(
            PromotionCodeCreate(promotion_id=promotion.id, code=" summer15 ")
        )

        assert code.code == "SUMMER15"
        assert code.current_usage == 0

    def test_duplicate_code_rejected(self, promotion_service):
        promotion = PromotionFactory()
        promotion_service.create_promotion_code(
            PromotionCodeCreate(promotion_id=promotion.id, code="SUMMER15")
        )

        with pytest.raises(ValueError, match="already exists"):
            promotion_service.create_promotion_code(
                PromotionCodeCreate(promotion_id=promotion.id, code="summer15")
            )

    def test_same_code_in_two_tenants(self, promotion_service):
        """Code uniqueness is scoped to the tenant"""
        ours = PromotionFactory()
        theirs = PromotionFactory(tenant_id="other-tenant")

        first = promotion_service.create_promotion_code(
            PromotionCodeCreate(promotion_id=ours.id, code="WELCOME10")
        )
        second = promotion_service.create_promotion_code(
            PromotionCodeCreate(promotion_id=theirs.id, code="welcome10")
        )

        assert first.tenant_id == TENANT_ID
        assert second.tenant_id == "other-tenant"
        assert second.code == "WELCOME10"

    def test_first_time_customer_stored_for_new_customers(self, promotion_service):
        promotion = promotion_service.create_promotion(
            TENANT_ID,
            PromotionCreate(
                name="Welcome",
                promotion_type=PromotionType.FIRST_TIME_CUSTOMER,
                discount_percentage=Decimal("20"),
            ),
        )
        assert promotion.target_segment == "new_customers"

    def test_code_for_missing_promotion(self, promotion_service):
        with pytest.raises(ValueError, match="not found"):
            promotion_service.create_promotion_code(
                PromotionCodeCreate(promotion_id=404, code="NOPE")
            )

    def test_add_rule(self, promotion_service):
        promotion = PromotionFactory()

        rule = promotion_service.add_rule(
            PromotionRuleCreate(
                promotion_id=promotion.id,
                rule_type=RuleType.CATEGORY_INCLUDE,
                ids=["mains", "7"],
            )
        )

        assert rule.rule_type == "category_include"
        assert rule.rule_value == {"ids": ["mains", "7"]}


class TestPromotionLifecycle:
    """Status transitions and automatic expiry"""

    def test_activate_pause_resume(self, promotion_service):
        promotion = PromotionFactory(status=PromotionStatus.DRAFT.value)

        promotion_service.update_status(promotion.id, PromotionStatus.ACTIVE)
        promotion_service.update_status(promotion.id, PromotionStatus.PAUSED)
        updated = promotion_service.update_status(promotion.id, PromotionStatus.ACTIVE)

        assert updated.status == PromotionStatus.ACTIVE.value

    def test_draft_cannot_be_paused(self, promotion_service):
        promotion = PromotionFactory(status=PromotionStatus.DRAFT.value)

        with pytest.raises(InvalidStatusTransitionError):
            promotion_service.update_status(promotion.id, PromotionStatus.PAUSED)

    def test_cancelled_is_terminal(self, promotion_service):
        promotion = PromotionFactory()
        promotion_service.update_status(promotion.id, PromotionStatus.CANCELLED)

        with pytest.raises(InvalidStatusTransitionError):
            promotion_service.update_status(promotion.id, PromotionStatus.ACTIVE)

    def test_status_of_other_tenant_not_found(self, promotion_service):
        promotion = PromotionFactory(tenant_id="other-tenant")

        with pytest.raises(ValueError):
            promotion_service.update_status(
                promotion.id, PromotionStatus.PAUSED, tenant_id=TENANT_ID
            )

    def test_refresh_status(self, db_session, promotion_service):
        expired = PromotionFactory(valid_until=FIXED_NOW - timedelta(days=1))
        exhausted = PromotionFactory(total_usage_limit=3, total_uses=3)
        running = PromotionFactory(valid_until=FIXED_NOW + timedelta(days=1))

        counts = promotion_service.refresh_status(now=FIXED_NOW)

        assert counts == {"expired": 1, "exhausted": 1}
        for promotion in (expired, exhausted, running):
            db_session.refresh(promotion)
        assert expired.status == PromotionStatus.EXPIRED.value
        assert exhausted.status == PromotionStatus.EXHAUSTED.value
        assert running.status == PromotionStatus.ACTIVE.value

    def test_delete_unused_promotion(self, promotion_service):
        promotion = PromotionFactory()

        assert promotion_service.delete_promotion(promotion.id) is True
        assert promotion_service.get_promotion(promotion.id) is None

    def test_delete_used_promotion_refused(self, promotion_service):
        promotion = PromotionFactory()
        PromotionUsageFactory(promotion=promotion)

        with pytest.raises(ValueError, match="recorded usage"):
            promotion_service.delete_promotion(promotion.id)
