# backend/modules/promotions/tests/test_discount_calculators.py

from decimal import Decimal

from modules.promotions.schemas.promotion_schemas import CartItem
from modules.promotions.services.discount_calculators import calculate_discount
from modules.promotions.tests.factories import FIXED_NOW, promotion_spec


def _calculate(promotion, cart_items, subtotal="50.00", delivery_fee="5.00"):
    return calculate_discount(
        promotion, cart_items, Decimal(subtotal), Decimal(delivery_fee), FIXED_NOW
    )


def _rules(rule_type, *ids):
    return [{"rule_type": rule_type, "ids": list(ids)}]


class TestPercentageDiscount:
    """Percentage based calculators"""

    def test_percentage_of_subtotal(self, cart_items):
        result = _calculate(promotion_spec(discount_percentage=Decimal("10")), cart_items)
        assert result.discount_amount == Decimal("5.00")
        assert result.applied_to_items == []

    def test_max_discount_cap(self, cart_items):
        promotion = promotion_spec(
            discount_percentage=Decimal("50"), max_discount_amount=Decimal("10")
        )
        assert _calculate(promotion, cart_items).discount_amount == Decimal("10.00")

    def test_zero_cap_is_uncapped(self, cart_items):
        promotion = promotion_spec(
            discount_percentage=Decimal("10"), max_discount_amount=Decimal("0")
        )
        assert _calculate(promotion, cart_items).discount_amount == Decimal("5.00")

    def test_rounds_half_up(self):
        items = [CartItem(menu_item_id="x", unit_price=Decimal("0.25"), quantity=1)]
        promotion = promotion_spec(discount_percentage=Decimal("10"))
        # 10% of 0.25 is 0.025
        assert _calculate(promotion, items, subtotal="0.25").discount_amount == Decimal("0.03")

    def test_category_scope_uses_matched_lines(self, cart_items):
        promotion = promotion_spec(
            discount_scope="category",
            discount_percentage=Decimal("20"),
            rules=_rules("category_include", "mains"),
        )
        assert _calculate(promotion, cart_items).discount_amount == Decimal("8.00")

    def test_scoped_base_never_exceeds_remaining_subtotal(self, cart_items):
        promotion = promotion_spec(
            discount_scope="item",
            discount_percentage=Decimal("100"),
            rules=_rules("item_include", "burger"),
        )
        result = _calculate(promotion, cart_items, subtotal="30.00")
        assert result.discount_amount == Decimal("30.00")

    def test_cheapest_item_scope(self, cart_items):
        promotion = promotion_spec(
            discount_scope="cheapest_item", discount_percentage=Decimal("50")
        )
        result = _calculate(promotion, cart_items)

        assert result.discount_amount == Decimal("5.00")
        assert [line.item_id for line in result.applied_to_items] == ["soda"]

    def test_first_item_scope(self, cart_items):
        promotion = promotion_spec(
            discount_scope="first_item", discount_percentage=Decimal("50")
        )
        result = _calculate(promotion, cart_items)

        assert result.discount_amount == Decimal("10.00")
        assert result.applied_to_items[0].item_id == "burger"
        assert result.applied_to_items[0].quantity == 1

    def test_happy_hour_outside_window(self, cart_items):
        promotion = promotion_spec(
            promotion_type="happy_hour",
            valid_hours_start="17:00",
            valid_hours_end="19:00",
        )
        assert _calculate(promotion, cart_items).discount_amount == Decimal("0")

    def test_happy_hour_inside_window(self, cart_items):
        promotion = promotion_spec(
            promotion_type="happy_hour",
            valid_hours_start="11:00",
            valid_hours_end="13:00",
        )
        assert _calculate(promotion, cart_items).discount_amount == Decimal("5.00")


class TestFixedAmountDiscount:
    def test_fixed_amount(self, cart_items):
        promotion = promotion_spec(
            promotion_type="fixed_amount",
            discount_percentage=None,
            discount_amount=Decimal("7.50"),
        )
        assert _calculate(promotion, cart_items).discount_amount == Decimal("7.50")

    def test_fixed_amount_limited_to_base(self, cart_items):
        promotion = promotion_spec(
            promotion_type="fixed_amount",
            discount_percentage=None,
            discount_amount=Decimal("60"),
        )
        assert _calculate(promotion, cart_items).discount_amount == Decimal("50.00")

    def test_category_discount_with_amount(self, cart_items):
        promotion = promotion_spec(
            promotion_type="category_discount",
            discount_percentage=None,
            discount_amount=Decimal("15"),
            rules=_rules("category_include", "drinks"),
        )
        assert _calculate(promotion, cart_items).discount_amount == Decimal("10.00")


class TestBuyXGetYDiscount:
    """Buy X get Y discounts the cheapest eligible units"""

    def _cart(self):
        return [
            CartItem(menu_item_id="A", name="Pizza", unit_price=Decimal("10.00"), quantity=3),
            CartItem(menu_item_id="B", name="Garlic bread", unit_price=Decimal("5.00"), quantity=1),
        ]

    def _promotion(self, **overrides):
        data = {
            "promotion_type": "buy_x_get_y",
            "discount_percentage": None,
            "buy_quantity": 2,
            "get_quantity": 1,
        }
        data.update(overrides)
        return promotion_spec(**data)

    def test_buy_two_get_one(self):
        """Four units give two free units: B and one A"""
        result = _calculate(self._promotion(), self._cart())

        assert result.discount_amount == Decimal("15.00")
        assert [(line.item_id, line.quantity, line.discount_amount) for line in result.applied_to_items] == [
            ("B", 1, Decimal("5.00")),
            ("A", 1, Decimal("10.00")),
        ]

    def test_partial_discount_on_free_units(self):
        result = _calculate(self._promotion(get_discount_percentage=Decimal("50")), self._cart())
        assert result.discount_amount == Decimal("7.50")

    def test_not_enough_units(self):
        items = [CartItem(menu_item_id="A", unit_price=Decimal("10.00"), quantity=1)]
        result = _calculate(self._promotion(), items)

        assert result.discount_amount == Decimal("0")
        assert result.applied_to_items == []

    def test_cap_is_spread_over_lines(self):
        result = _calculate(self._promotion(max_discount_amount=Decimal("12")), self._cart())

        assert result.discount_amount == Decimal("12.00")
        assert sum(line.discount_amount for line in result.applied_to_items) == Decimal("12.00")

    def test_rules_limit_eligible_units(self):
        items = self._cart()
        promotion = self._promotion(rules=_rules("item_exclude", "B"))
        result = _calculate(promotion, items)

        # Three A units give one free A unit
        assert result.discount_amount == Decimal("10.00")


class TestFreeDeliveryDiscount:
    def test_waives_delivery_fee(self, cart_items):
        promotion = promotion_spec(promotion_type="free_delivery", discount_percentage=None)
        assert _calculate(promotion, cart_items).discount_amount == Decimal("5.00")

    def test_declared_amount_limits_waiver(self, cart_items):
        promotion = promotion_spec(
            promotion_type="free_delivery",
            discount_percentage=None,
            discount_amount=Decimal("3"),
        )
        assert _calculate(promotion, cart_items).discount_amount == Decimal("3.00")

    def test_never_negative(self, cart_items):
        promotion = promotion_spec(promotion_type="free_delivery", discount_percentage=None)
        result = _calculate(promotion, cart_items, delivery_fee="-2.00")
        assert result.discount_amount == Decimal("0")


class TestUnsupportedTypes:
    def test_loyalty_reward_yields_zero_with_warning(self, cart_items):
        promotion = promotion_spec(promotion_type="loyalty_reward")
        result = _calculate(promotion, cart_items)

        assert result.discount_amount == Decimal("0")
        assert result.warning == "Promotion type 'loyalty_reward' is not supported"
