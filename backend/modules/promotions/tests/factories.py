# backend/modules/promotions/tests/factories.py

import factory
from factory.alchemy import SQLAlchemyModelFactory
from datetime import datetime
from decimal import Decimal

from modules.promotions.models.promotion_models import (
    Promotion,
    PromotionCode,
    PromotionRule,
    PromotionUsage,
    PromotionStatus,
    PromotionType,
    DiscountScope,
    RuleType,
)
from modules.promotions.schemas.promotion_schemas import build_promotion_spec

TENANT_ID = "tenant-1"

# Wednesday, noon UTC
FIXED_NOW = datetime(2025, 6, 4, 12, 0, 0)


class BaseFactory(SQLAlchemyModelFactory):
    """Base factory; the session is bound by the db_session fixture."""

    class Meta:
        abstract = True
        sqlalchemy_session_persistence = "commit"


class PromotionFactory(BaseFactory):
    """Active auto-applied 10% order discount"""

    class Meta:
        model = Promotion

    tenant_id = TENANT_ID
    name = factory.Sequence(lambda n: f"Promotion {n}")
    promotion_type = PromotionType.PERCENTAGE.value
    status = PromotionStatus.ACTIVE.value
    discount_scope = DiscountScope.ORDER_TOTAL.value
    discount_percentage = Decimal("10")
    min_order_amount = Decimal("0")
    min_items_quantity = 0
    can_stack_with_others = False
    stack_priority = 0
    auto_apply = True
    requires_code = False
    total_uses = 0
    total_discount_given = Decimal("0")

    class Params:
        fixed = factory.Trait(
            promotion_type=PromotionType.FIXED_AMOUNT.value,
            discount_percentage=None,
            discount_amount=Decimal("5.00"),
        )
        free_delivery = factory.Trait(
            promotion_type=PromotionType.FREE_DELIVERY.value,
            discount_scope=DiscountScope.DELIVERY_FEE.value,
            discount_percentage=None,
        )
        buy_x_get_y = factory.Trait(
            promotion_type=PromotionType.BUY_X_GET_Y.value,
            discount_percentage=None,
            buy_quantity=2,
            get_quantity=1,
            get_discount_percentage=Decimal("100"),
        )
        code_only = factory.Trait(auto_apply=False, requires_code=True)


class PromotionCodeFactory(BaseFactory):
    class Meta:
        model = PromotionCode

    promotion = factory.SubFactory(PromotionFactory, code_only=True)
    tenant_id = factory.SelfAttribute("promotion.tenant_id")
    code =factory.Sequence(lambda n: f"CODE{n}")
    current_usage = 0
    is_active = True
    is_single_use = False


class PromotionRuleFactory(BaseFactory):
    class Meta:
        model = PromotionRule

    promotion = factory.SubFactory(PromotionFactory)
    rule_type = RuleType.CATEGORY_INCLUDE.value
    rule_value = factory.LazyFunction(lambda: {"ids": []})
    is_active = True


class PromotionUsageFactory(BaseFactory):
    class Meta:
        model = PromotionUsage

    promotion = factory.SubFactory(PromotionFactory)
    tenant_id = factory.SelfAttribute("promotion.tenant_id")
    order_id = factory.Sequence(lambda n: f"order-{n}")
    user_id = "user-1"
    discount_amount = Decimal("5.00")
    original_order_amount = Decimal("50.00")
    final_order_amount = Decimal("45.00")


ALL_FACTORIES = [
    PromotionFactory,
    PromotionCodeFactory,
    PromotionRuleFactory,
    PromotionUsageFactory,
]


def promotion_spec(**overrides):
    """Validated promotion definition for tests that need no database"""
    data = {
        "id": 1,
        "tenant_id": TENANT_ID,
        "name": "Promotion",
        "promotion_type": PromotionType.PERCENTAGE.value,
        "status": PromotionStatus.ACTIVE.value,
        "discount_percentage": Decimal("10"),
    }
    data.update(overrides)
    return build_promotion_spec(data)
