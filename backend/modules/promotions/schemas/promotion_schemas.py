# backend/modules/promotions/schemas/promotion_schemas.py

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    TypeAdapter,
    field_validator,
    model_validator,
)
from typing import Annotated, Optional, List, Dict, Any, Union, Literal
from datetime import datetime
from decimal import Decimal

from ..models.promotion_models import (
    PromotionType,
    PromotionStatus,
    DiscountScope,
    CustomerSegment,
    UsageFrequency,
    RuleType,
)

# Money travels as Decimal internally and as a JSON number over the wire
Money = Annotated[
    Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")
]

HOURS_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


# Cart and customer context
class CartItem(BaseModel):
    """A cart line as received from checkout; read-only for the engine"""

    menu_item_id: str
    name: str = ""
    unit_price: Money = Decimal("0")
    quantity: int = 1
    category_id: Optional[str] = None
    modifiers: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class OrderHistory(BaseModel):
    """Order-history aggregates used for segment targeting"""

    total_orders: int = 0
    total_spent: Money = Decimal("0")
    days_since_last_order: Optional[int] = None


# Promotion definitions: one model per promotion_type
class PromotionRuleSpec(BaseModel):
    """Category/item include or exclude rule"""

    rule_type: RuleType
    ids: List[str] = Field(default_factory=list)

    @field_validator("ids", mode="before")
    @classmethod
    def stringify_ids(cls, v):
        return [str(i) for i in (v or [])]


class PromotionDefinitionBase(BaseModel):
    """Fields shared by every promotion type"""

    id: Optional[int] = None
    tenant_id: str
    name: str = Field(..., max_length=255)
    description: Optional[str] = None
    status: PromotionStatus = PromotionStatus.DRAFT
    discount_scope: DiscountScope = DiscountScope.ORDER_TOTAL

    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)

    buy_quantity: Optional[int] = Field(None, ge=1)
    get_quantity: Optional[int] = Field(None, ge=1)
    get_discount_percentage: Decimal = Field(Decimal("100"), ge=0, le=100)

    min_order_amount: Decimal = Field(Decimal("0"), ge=0)
    min_items_quantity: int = Field(0, ge=0)

    total_usage_limit: Optional[int] = Field(None, ge=1)
    per_customer_limit: Optional[int] = Field(None, ge=1)
    usage_frequency: UsageFrequency = UsageFrequency.UNLIMITED
    total_uses: int = 0

    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    valid_days: Optional[List[str]] = None
    valid_hours_start: Optional[str] = Field(None, pattern=HOURS_PATTERN)
    valid_hours_end: Optional[str] = Field(None, pattern=HOURS_PATTERN)
    timezone: str = "UTC"

    target_segment: CustomerSegment = CustomerSegment.ALL_CUSTOMERS
    can_stack_with_others: bool = False
    stack_priority: int = 0
    auto_apply: bool = False
    requires_code: bool = True

    rules: List[PromotionRuleSpec] = Field(default_factory=list)

    # Set when the promotion was reached through a code
    code_used: Optional[str] = None
    promotion_code_id: Optional[int] = None

    @field_validator("valid_days")
    @classmethod
    def normalize_valid_days(cls, v):
        if v is None:
            return v
        days = [day.lower() for day in v]
        unknown = [day for day in days if day not in WEEKDAYS]
        if unknown:
            raise ValueError(f"Unknown weekday(s): {', '.join(unknown)}")
        return days

    @model_validator(mode="after")
    def check_windows(self):
        if self.valid_from and self.valid_until and self.valid_from >= self.valid_until:
            raise ValueError("valid_from must be before valid_until")
        if (
            self.valid_hours_start
            and self.valid_hours_end
            and self.valid_hours_start >= self.valid_hours_end
        ):
            raise ValueError("valid_hours_start must be before valid_hours_end")
        return self

    @property
    def is_delivery_scoped(self) -> bool:
        return self.discount_scope == DiscountScope.DELIVERY_FEE


class PercentagePromotion(PromotionDefinitionBase):
    promotion_type: Literal["percentage"] = "percentage"

    @model_validator(mode="after")
    def require_percentage(self):
        if not self.discount_percentage:
            raise ValueError(f"{self.promotion_type} promotion requires discount_percentage")
        return self


class HappyHourPromotion(PercentagePromotion):
    promotion_type: Literal["happy_hour"] = "happy_hour"


class FirstTimeCustomerPromotion(PercentagePromotion):
    promotion_type: Literal["first_time_customer"] = "first_time_customer"
    target_segment: CustomerSegment = CustomerSegment.NEW_CUSTOMERS

    @field_validator("target_segment")
    @classmethod
    def only_new_customers(cls, v):
        if v == CustomerSegment.ALL_CUSTOMERS:
            return CustomerSegment.NEW_CUSTOMERS
        if v != CustomerSegment.NEW_CUSTOMERS:
            raise ValueError("first_time_customer promotion can only target new_customers")
        return v


class FixedAmountPromotion(PromotionDefinitionBase):
    promotion_type: Literal["fixed_amount"] = "fixed_amount"

    @model_validator(mode="after")
    def require_amount(self):
        if not self.discount_amount:
            raise ValueError("fixed_amount promotion requires discount_amount")
        return self


class BuyXGetYPromotion(PromotionDefinitionBase):
    promotion_type: Literal["buy_x_get_y"] = "buy_x_get_y"

    @model_validator(mode="after")
    def require_quantities(self):
        if not self.buy_quantity or not self.get_quantity:
            raise ValueError("buy_x_get_y promotion requires buy_quantity and get_quantity")
        return self


class FreeDeliveryPromotion(PromotionDefinitionBase):
    promotion_type: Literal["free_delivery"] = "free_delivery"
    discount_scope: DiscountScope = DiscountScope.DELIVERY_FEE

    @model_validator(mode="after")
    def require_delivery_scope(self):
        if self.discount_scope != DiscountScope.DELIVERY_FEE:
            raise ValueError("free_delivery promotion must use the delivery_fee scope")
        return self


class CategoryDiscountPromotion(PromotionDefinitionBase):
    promotion_type: Literal["category_discount"] = "category_discount"
    discount_scope: DiscountScope = DiscountScope.CATEGORY

    @model_validator(mode="after")
    def require_magnitude(self):
        if not self.discount_percentage and not self.discount_amount:
            raise ValueError(
                "category_discount promotion requires discount_percentage or discount_amount"
            )
        return self


class UncalculatedPromotion(PromotionDefinitionBase):
    """Declared types that have no discount calculator yet"""

    promotion_type: Literal["loyalty_reward", "bundle_deal"]


PromotionSpec = Annotated[
    Union[
        PercentagePromotion,
        HappyHourPromotion,
        FirstTimeCustomerPromotion,
        FixedAmountPromotion,
        BuyXGetYPromotion,
        FreeDeliveryPromotion,
        CategoryDiscountPromotion,
        UncalculatedPromotion,
    ],
    Field(discriminator="promotion_type"),
]

promotion_spec_adapter = TypeAdapter(PromotionSpec)


def build_promotion_spec(data: Dict[str, Any]) -> PromotionDefinitionBase:
    """Validate a loosely typed promotion record into its per-type model"""
    cleaned = {key: value for key, value in data.items() if value is not None}
    return promotion_spec_adapter.validate_python(cleaned)


# Administration schemas
class PromotionCreate(BaseModel):
    """Schema for creating a promotion; stored as draft"""

    name: str = Field(..., max_length=255)
    description: Optional[str] = None
    promotion_type: PromotionType
    discount_scope: Optional[DiscountScope] = None
    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    buy_quantity: Optional[int] = Field(None, ge=1)
    get_quantity: Optional[int] = Field(None, ge=1)
    get_discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    min_order_amount: Decimal = Field(Decimal("0"), ge=0)
    min_items_quantity: int = Field(0, ge=0)
    total_usage_limit: Optional[int] = Field(None, ge=1)
    per_customer_limit: Optional[int] = Field(None, ge=1)
    usage_frequency: UsageFrequency = UsageFrequency.UNLIMITED
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    valid_days: Optional[List[str]] = None
    valid_hours_start: Optional[str] = Field(None, pattern=HOURS_PATTERN)
    valid_hours_end: Optional[str] = Field(None, pattern=HOURS_PATTERN)
    timezone: str = "UTC"
    target_segment: CustomerSegment = CustomerSegment.ALL_CUSTOMERS
    can_stack_with_others: bool = False
    stack_priority: int = 0
    auto_apply: bool = False
    requires_code: bool = True


class PromotionCodeCreate(BaseModel):
    """Schema for creating a promotion code"""

    promotion_id: int
    code: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_single_use: bool = False
    batch_id: Optional[str] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v):
        return v.strip().upper()


class PromotionRuleCreate(BaseModel):
    """Schema for attaching a category/item rule"""

    promotion_id: int
    rule_type: RuleType
    ids: List[str] = Field(..., min_length=1)


class PromotionStatusUpdate(BaseModel):
    """Schema for a status transition"""

    status: PromotionStatus


# Calculation schemas
class PromotionCalculationRequest(BaseModel):
    """Input to a full cart promotion calculation"""

    tenant_id: str
    user_id: Optional[str] = None
    cart_items: List[CartItem] = Field(default_factory=list)
    subtotal: Money = Decimal("0")
    delivery_fee: Money = Decimal("0")
    tax_amount: Money = Decimal("0")
    promo_codes: List[str] = Field(default_factory=list)
    customer_segment: Optional[CustomerSegment] = None
    order_history: Optional[OrderHistory] = None
    order_time: Optional[datetime] = None


class AppliedItem(BaseModel):
    """Per-line share of an item-scoped discount"""

    item_id: str
    item_name: str = ""
    quantity: int
    discount_amount: Money


class DiscountApplication(BaseModel):
    """Discount produced by one accepted promotion"""

    promotion_id: Optional[int]
    promotion_name: str
    promotion_type: str
    discount_scope: DiscountScope
    discount_amount: Money
    applied_to_items: List[AppliedItem] = Field(default_factory=list)
    code_used: Optional[str] = None
    promotion_code_id: Optional[int] = None


class OrderPricing(BaseModel):
    """Final order pricing breakdown"""

    subtotal: Money
    discount_amount: Money = Decimal("0.00")
    delivery_fee: Money
    delivery_discount: Money = Decimal("0.00")
    tax_amount: Money
    total_amount: Money


class AppliedPromotion(BaseModel):
    """Summary line for an applied promotion"""

    promotion_id: Optional[int]
    promotion_name: str
    discount_amount: Money
    promotion_type: str
    code_used: Optional[str] = None


class PromotionCalculationResult(BaseModel):
    """Outcome of a cart promotion calculation"""

    is_valid: bool = True
    total_discount: Money = Decimal("0.00")
    discount_breakdown: List[DiscountApplication] = Field(default_factory=list)
    final_pricing: OrderPricing
    applied_promotions: List[AppliedPromotion] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class PromotionValidationRequest(BaseModel):
    """Request body for standalone code validation"""

    tenant_id: str
    code: str = Field(..., min_length=1, max_length=50)
    user_id: Optional[str] = None
    order_amount: Money = Field(Decimal("0"), ge=0)
    order_history: Optional[OrderHistory] = None


class PromotionValidationResult(BaseModel):
    """Outcome of validating a promotion code"""

    is_valid: bool
    promotion_id: Optional[int] = None
    promotion_code_id: Optional[int] = None
    error_message: Optional[str] = None
    discount_preview: Money = Decimal("0.00")


# Usage schemas
class PromotionUsageCreate(BaseModel):
    """One accepted promotion to be recorded against a confirmed order"""

    promotion_id: int
    order_id: str
    user_id: Optional[str] = None
    discount_amount: Money = Field(..., ge=0)
    original_amount: Money = Field(..., ge=0)
    promotion_code_id: Optional[int] = None
    applied_items: List[AppliedItem] = Field(default_factory=list)
    customer_segment: Optional[CustomerSegment] = None


class PromotionUsageBatch(BaseModel):
    """Usages for every promotion applied to one order"""

    tenant_id: str
    usages: List[PromotionUsageCreate]


class PromotionUsageBatchResponse(BaseModel):
    recorded: int
    failed: List[int] = Field(default_factory=list)


# Administration responses
class PromotionResponse(BaseModel):
    id: int
    tenant_id: str
    name: str
    description: Optional[str] = None
    promotion_type: str
    status: str
    discount_scope: str
    discount_percentage: Optional[Money] = None
    discount_amount: Optional[Money] = None
    max_discount_amount: Optional[Money] = None
    buy_quantity: Optional[int] = None
    get_quantity: Optional[int] = None
    min_order_amount: Optional[Money] = None
    total_usage_limit: Optional[int] = None
    per_customer_limit: Optional[int] = None
    usage_frequency: str
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    target_segment: str
    can_stack_with_others: bool
    stack_priority: int
    auto_apply: bool
    requires_code: bool
    total_uses: int
    total_discount_given: Money

    model_config = ConfigDict(from_attributes=True)


class PromotionCodeResponse(BaseModel):
    id: int
    promotion_id: int
    code: str
    usage_limit: Optional[int] = None
    current_usage: int
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool
    is_single_use: bool

    model_config = ConfigDict(from_attributes=True)


class PromotionRuleResponse(BaseModel):
    id: int
    promotion_id: int
    rule_type: str
    rule_value: Dict[str, Any]
    is_active: bool

    model_config = ConfigDict(from_attributes=True)
