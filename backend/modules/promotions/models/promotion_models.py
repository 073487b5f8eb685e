# backend/modules/promotions/models/promotion_models.py

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Boolean,
    DateTime,
    Text,
    ForeignKey,
    JSON,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from enum import Enum

from core.database import Base
from core.mixins import TimestampMixin, TenantMixin


class PromotionType(str, Enum):
    """Types of promotions"""
    PERCENTAGE = "percentage"                     # 10% off
    FIXED_AMOUNT = "fixed_amount"                 # $5 off
    BUY_X_GET_Y = "buy_x_get_y"                   # Buy X get Y free/discounted
    FREE_DELIVERY = "free_delivery"               # Delivery fee waived
    HAPPY_HOUR = "happy_hour"                     # Time-window percentage
    FIRST_TIME_CUSTOMER = "first_time_customer"   # New customer discount
    CATEGORY_DISCOUNT = "category_discount"       # Specific category discount
    LOYALTY_REWARD = "loyalty_reward"             # Repeat customer reward
    BUNDLE_DEAL = "bundle_deal"                   # Package deals


class PromotionStatus(str, Enum):
    """Promotion status states"""
    DRAFT = "draft"                               # Created but not active
    ACTIVE = "active"                             # Currently running
    PAUSED = "paused"                             # Temporarily disabled
    EXPIRED = "expired"                           # Past valid_until
    EXHAUSTED = "exhausted"                       # Usage limit reached
    CANCELLED = "cancelled"                       # Manually cancelled


class DiscountScope(str, Enum):
    """What the discount applies to"""
    ORDER_TOTAL = "order_total"
    SUBTOTAL = "subtotal"
    DELIVERY_FEE = "delivery_fee"
    CATEGORY = "category"
    ITEM = "item"
    FIRST_ITEM = "first_item"
    CHEAPEST_ITEM = "cheapest_item"


class CustomerSegment(str, Enum):
    """Customer segment targeting"""
    ALL_CUSTOMERS = "all_customers"
    NEW_CUSTOMERS = "new_customers"
    RETURNING_CUSTOMERS = "returning_customers"
    VIP_CUSTOMERS = "vip_customers"
    INACTIVE_CUSTOMERS = "inactive_customers"
    BIRTHDAY_CUSTOMERS = "birthday_customers"
    SPECIFIC_CUSTOMERS = "specific_customers"


class UsageFrequency(str, Enum):
    """How often one customer may use a promotion"""
    ONCE_PER_CUSTOMER = "once_per_customer"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    UNLIMITED = "unlimited"


class RuleType(str, Enum):
    """Category/item targeting rules"""
    CATEGORY_INCLUDE = "category_include"
    CATEGORY_EXCLUDE = "category_exclude"
    ITEM_INCLUDE = "item_include"
    ITEM_EXCLUDE = "item_exclude"


class Promotion(Base, TenantMixin, TimestampMixin):
    """A discount rule owned by one restaurant"""
    __tablename__ = "promotions"

    id = Column(Integer, primary_key=True, index=True)

    # Basic information
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text)
    promotion_type = Column(String(50), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=PromotionStatus.DRAFT.value, index=True)

    # Discount configuration
    discount_scope = Column(String(30), nullable=False, default=DiscountScope.ORDER_TOTAL.value)
    discount_percentage = Column(Numeric(5, 2))
    discount_amount = Column(Numeric(10, 2))
    max_discount_amount = Column(Numeric(10, 2))  # Cap for any discount

    # Buy X Get Y configuration
    buy_quantity = Column(Integer)
    get_quantity = Column(Integer)
    get_discount_percentage = Column(Numeric(5, 2), default=100)  # 100 = free

    # Minimum requirements
    min_order_amount = Column(Numeric(10, 2), default=0)
    min_items_quantity = Column(Integer, default=0)

    # Usage limits
    total_usage_limit = Column(Integer)
    per_customer_limit = Column(Integer)
    usage_frequency = Column(String(30), nullable=False, default=UsageFrequency.UNLIMITED.value)

    # Timing
    valid_from = Column(DateTime, index=True)
    valid_until = Column(DateTime, index=True)
    valid_days = Column(JSON)                     # ["monday", "tuesday", ...]
    valid_hours_start = Column(String(5))         # "17:00"
    valid_hours_end = Column(String(5))           # "19:00"
    timezone = Column(String(50), default="UTC")

    # Targeting
    target_segment = Column(String(30), nullable=False, default=CustomerSegment.ALL_CUSTOMERS.value)

    # Stacking rules
    can_stack_with_others = Column(Boolean, nullable=False, default=False)
    stack_priority = Column(Integer, nullable=False, default=0, index=True)

    # Application settings
    auto_apply = Column(Boolean, nullable=False, default=False)
    requires_code = Column(Boolean, nullable=False, default=True)

    # Analytics counters
    total_uses = Column(Integer, nullable=False, default=0)
    total_discount_given = Column(Numeric(12, 2), nullable=False, default=0)

    # Relationships
    codes = relationship("PromotionCode", back_populates="promotion")
    rules = relationship("PromotionRule", back_populates="promotion")
    usages = relationship("PromotionUsage", back_populates="promotion")

    __table_args__ = (
        Index("ix_promotions_tenant_status", "tenant_id", "status"),
        Index("ix_promotions_valid_dates", "valid_from", "valid_until"),
    )

    def __repr__(self):
        return f"<Promotion {self.id} {self.name!r} {self.promotion_type} {self.status}>"


class PromotionCode(Base, TimestampMixin):
    """Redeemable code bound to one promotion"""
    __tablename__ = "promotion_codes"

    id = Column(Integer, primary_key=True, index=True)
    promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=False, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)

    code = Column(String(50), nullable=False, index=True)
    description = Column(Text)

    # Individual code limits
    usage_limit = Column(Integer)                 # None for unlimited
    current_usage = Column(Integer, nullable=False, default=0)

    # Individual code validity
    valid_from = Column(DateTime)
    valid_until = Column(DateTime)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    is_single_use = Column(Boolean, nullable=False, default=False)

    # Bulk generation tracking
    batch_id = Column(String(100), index=True)

    promotion = relationship("Promotion", back_populates="codes")

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_promotion_codes_tenant_code"),
        Index("ix_promotion_codes_code_active", "code", "is_active"),
    )

    @property
    def effective_usage_limit(self):
        """Single-use codes behave as a usage limit of one"""
        if self.is_single_use:
            return 1 if self.usage_limit is None else min(self.usage_limit, 1)
        return self.usage_limit


class PromotionRule(Base, TimestampMixin):
    """Category/item include and exclude rules"""
    __tablename__ = "promotion_rules"

    id = Column(Integer, primary_key=True, index=True)
    promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=False, index=True)

    rule_type = Column(String(50), nullable=False, index=True)
    rule_value = Column(JSON, nullable=False)     # {"ids": [...]}
    is_active = Column(Boolean, nullable=False, default=True)

    promotion = relationship("Promotion", back_populates="rules")


class PromotionUsage(Base):
    """Audit record of a promotion applied to a confirmed order"""
    __tablename__ = "promotion_usages"

    id = Column(Integer, primary_key=True, index=True)
    promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=False, index=True)
    promotion_code_id = Column(Integer, ForeignKey("promotion_codes.id"), nullable=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    order_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)

    # Usage details
    discount_amount = Column(Numeric(10, 2), nullable=False)
    original_order_amount = Column(Numeric(10, 2), nullable=False)
    final_order_amount = Column(Numeric(10, 2), nullable=False)
    applied_items = Column(JSON)
    customer_segment = Column(String(30))

    created_at = Column(DateTime, default=func.now(), nullable=False)

    promotion = relationship("Promotion", back_populates="usages")

    __table_args__ = (
        Index("ix_promotion_usages_promo_user", "promotion_id", "user_id"),
        Index("ix_promotion_usages_date", "created_at"),
    )


class PromotionCustomerUsage(Base):
    """Per-customer usage counter, reserved with conditional updates"""
    __tablename__ = "promotion_customer_usages"

    id = Column(Integer, primary_key=True, index=True)
    promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)

    usage_count = Column(Integer, nullable=False, default=0)
    last_used_at = Column(DateTime)

    __table_args__ = (
        UniqueConstraint(
            "promotion_id", "user_id", name="uq_promotion_customer_usages_promo_user"
        ),
    )
