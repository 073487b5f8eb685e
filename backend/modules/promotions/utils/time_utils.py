# backend/modules/promotions/utils/time_utils.py

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from ..config.promotion_config import get_promotion_config

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Current instant as a naive UTC datetime, matching stored columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize aware datetimes to naive UTC; naive values are taken as UTC"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_local_time(at: datetime, tz_name: Optional[str]) -> datetime:
    """Convert a UTC instant to the wall-clock time of the given zone"""
    name = tz_name or get_promotion_config().DEFAULT_TIMEZONE
    try:
        zone = ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', falling back to UTC")
        zone = timezone.utc
    return as_utc_naive(at).replace(tzinfo=timezone.utc).astimezone(zone)
