# backend/modules/promotions/__init__.py

from .routers import router as promotions_router
from .services.promotion_service import PromotionService
from .services.promotion_calculator import PromotionCalculator
from .services.usage_service import PromotionUsageService

__all__ = [
    "promotions_router",
    "PromotionService",
    "PromotionCalculator",
    "PromotionUsageService",
]
