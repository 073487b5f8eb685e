# backend/modules/promotions/services/stacking_service.py

from decimal import Decimal
from typing import List, Sequence, Tuple

from ..schemas.promotion_schemas import PromotionDefinitionBase


def static_rank_value(promotion: PromotionDefinitionBase) -> Decimal:
    """Declared discount magnitude used to break priority ties"""
    if promotion.discount_amount:
        return Decimal(promotion.discount_amount)
    return Decimal(promotion.discount_percentage or 0)


def sort_promotions_by_priority(
    promotions: Sequence[PromotionDefinitionBase],
) -> List[PromotionDefinitionBase]:
    """Highest stack_priority first, then larger declared discount; stable otherwise"""
    return sorted(
        promotions,
        key=lambda promotion: (-promotion.stack_priority, -static_rank_value(promotion)),
    )


class StackingResolver:
    """
    Tracks accepted promotions and decides whether another may join them.

    The first promotion is always accepted. After that a candidate is accepted
    only if it and every accepted promotion allow stacking.
    """

    def __init__(self):
        self.accepted: List[PromotionDefinitionBase] = []

    def can_accept(self, promotion: PromotionDefinitionBase) -> bool:
        if not self.accepted:
            return True
        if not promotion.can_stack_with_others:
            return False
        return all(applied.can_stack_with_others for applied in self.accepted)

    def accept(self, promotion: PromotionDefinitionBase) -> None:
        self.accepted.append(promotion)


def stacking_conflict_warning(promotion: PromotionDefinitionBase) -> str:
    return f"{promotion.name} cannot be stacked with other applied promotions"


def sort_and_resolve(
    promotions: Sequence[PromotionDefinitionBase],
) -> Tuple[List[PromotionDefinitionBase], List[str]]:
    """
    Order promotions and drop the ones that cannot stack.

    Every accepted promotion is assumed to produce a discount; the calculation
    engine uses StackingResolver directly so that zero-discount promotions do
    not block later ones.
    """
    resolver = StackingResolver()
    warnings = []
    for promotion in sort_promotions_by_priority(promotions):
        if resolver.can_accept(promotion):
            resolver.accept(promotion)
        else:
            warnings.append(stacking_conflict_warning(promotion))
    return resolver.accepted, warnings
