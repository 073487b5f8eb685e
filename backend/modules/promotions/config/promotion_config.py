# backend/modules/promotions/config/promotion_config.py

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class PromotionEngineConfig(BaseSettings):
    """
    Configuration for promotion eligibility and pricing.

    These settings control customer segment thresholds and how monetary
    amounts are rounded during discount calculation.
    """

    model_config = SettingsConfigDict(env_prefix="PROMOTION_", case_sensitive=False)

    # Lifetime spend above which a customer counts as VIP
    VIP_SPEND_THRESHOLD: Decimal = Decimal("1000")

    # Days without an order after which a customer counts as inactive
    INACTIVE_DAYS_THRESHOLD: int = 30

    # Quantum every money amount is rounded to
    MONEY_PRECISION: Decimal = Decimal("0.01")

    # Timezone used when a promotion does not declare one
    DEFAULT_TIMEZONE: str = "UTC"

    # Error surfaced to the caller when the whole calculation fails open
    CALCULATION_FAILED_MESSAGE: str = "Failed to calculate promotions"


# Global instance
promotion_config = PromotionEngineConfig()


def get_promotion_config() -> PromotionEngineConfig:
    """Get the promotion engine configuration."""
    return promotion_config
