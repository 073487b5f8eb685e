# backend/modules/promotions/exceptions.py

"""
Custom exceptions for the promotions module.

Plain invalid or expired codes are not exceptions; they are reported as
structured validation results. These types cover infrastructure failures and
broken invariants only.
"""

from typing import Optional, Dict, Any


class PromotionBaseException(Exception):
    """Base exception for all promotion errors"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class PromotionLookupError(PromotionBaseException):
    """Raised when the promotion data store cannot be read"""

    def __init__(self, operation: str, reason: str):
        message = f"Promotion lookup '{operation}' failed: {reason}"
        details = {"operation": operation, "reason": reason}
        super().__init__(message, "PROMOTION_LOOKUP_ERROR", details)


class PromotionValidationError(PromotionBaseException):
    """Raised when a code could not be validated at all (as opposed to being invalid)"""

    def __init__(self, code: str, reason: str):
        message = f"Validation failed for code '{code}': {reason}"
        details = {"code": code, "reason": reason}
        super().__init__(message, "PROMOTION_VALIDATION_FAILED", details)


class UsageLimitExceededError(PromotionBaseException):
    """Raised when a usage slot could not be reserved"""

    def __init__(
        self,
        promotion_id: int,
        promotion_code_id: Optional[int] = None,
        reason: str = "usage limit reached",
    ):
        message = f"Cannot reserve usage for promotion {promotion_id}: {reason}"
        details = {
            "promotion_id": promotion_id,
            "promotion_code_id": promotion_code_id,
            "reason": reason,
        }
        super().__init__(message, "USAGE_LIMIT_EXCEEDED", details)


class InvalidStatusTransitionError(PromotionBaseException):
    """Raised when a promotion status change is not allowed"""

    def __init__(self, promotion_id: int, current_status: str, new_status: str):
        message = (
            f"Cannot move promotion {promotion_id} from "
            f"'{current_status}' to '{new_status}'"
        )
        details = {
            "promotion_id": promotion_id,
            "current_status": current_status,
            "new_status": new_status,
        }
        super().__init__(message, "INVALID_STATUS_TRANSITION", details)
