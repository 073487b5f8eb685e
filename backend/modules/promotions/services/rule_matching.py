# backend/modules/promotions/services/rule_matching.py

from typing import Iterable, List

from ..models.promotion_models import RuleType
from ..schemas.promotion_schemas import CartItem, PromotionRuleSpec


def _ids_for(rules: Iterable[PromotionRuleSpec], rule_type: RuleType) -> set:
    ids = set()
    for rule in rules:
        if rule.rule_type == rule_type:
            ids.update(rule.ids)
    return ids


def item_matches_rules(rules: List[PromotionRuleSpec], item: CartItem) -> bool:
    """
    Decide whether a cart line is covered by a promotion's targeting rules.

    With no include rules every line is included; otherwise the line must match
    at least one include rule (by category or by menu item). A matching exclude
    rule always wins.
    """
    category_id = str(item.category_id) if item.category_id is not None else None
    item_id = str(item.menu_item_id)

    if category_id in _ids_for(rules, RuleType.CATEGORY_EXCLUDE):
        return False
    if item_id in _ids_for(rules, RuleType.ITEM_EXCLUDE):
        return False

    included_categories = _ids_for(rules, RuleType.CATEGORY_INCLUDE)
    included_items = _ids_for(rules, RuleType.ITEM_INCLUDE)
    if not included_categories and not included_items:
        return True

    return category_id in included_categories or item_id in included_items


def eligible_cart_items(
    rules: List[PromotionRuleSpec], cart_items: List[CartItem]
) -> List[CartItem]:
    """Cart lines a scoped promotion may discount, in cart order"""
    return [
        item
        for item in cart_items
        if item.quantity > 0 and item_matches_rules(rules, item)
    ]
