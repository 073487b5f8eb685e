# backend/modules/promotions/services/promotion_service.py

from sqlalchemy.orm import Session
from sqlalchemy import and_, func
from typing import Optional, List, Dict
from datetime import datetime
from enum import Enum
import logging

from ..exceptions import InvalidStatusTransitionError
from ..models.promotion_models import (
    Promotion,
    PromotionCode,
    PromotionRule,
    PromotionUsage,
    PromotionStatus,
)
from ..schemas.promotion_schemas import (
    PromotionCreate,
    PromotionCodeCreate,
    PromotionRuleCreate,
    build_promotion_spec,
)
from ..utils.time_utils import as_utc_naive, utc_now

logger = logging.getLogger(__name__)

# Status changes an operator may request; expired and exhausted are set by refresh_status
ALLOWED_TRANSITIONS = {
    PromotionStatus.DRAFT: {PromotionStatus.ACTIVE, PromotionStatus.CANCELLED},
    PromotionStatus.ACTIVE: {PromotionStatus.PAUSED, PromotionStatus.CANCELLED},
    PromotionStatus.PAUSED: {PromotionStatus.ACTIVE, PromotionStatus.CANCELLED},
}

# Columns filled from the validated definition rather than by the database
NON_COLUMN_FIELDS = {"id", "rules", "code_used", "promotion_code_id", "total_uses", "status"}


def _column_value(value):
    return value.value if isinstance(value, Enum) else value


class PromotionService:
    """Service for managing promotions, their codes and rules"""

    def __init__(self, db: Session):
        self.db = db

    def create_promotion(self, tenant_id: str, promotion_data: PromotionCreate) -> Promotion:
        """Create a new promotion in draft status"""
        # Raises ValueError when the fields do not fit the promotion type
        spec = build_promotion_spec(
            {
                **promotion_data.model_dump(),
                "promotion_type": promotion_data.promotion_type.value,
                "tenant_id": tenant_id,
            }
        )

        try:
            values = {
                key: _column_value(value)
                for key, value in spec.model_dump(exclude=NON_COLUMN_FIELDS).items()
            }
            promotion = Promotion(**values, status=PromotionStatus.DRAFT.value)

            self.db.add(promotion)
            self.db.commit()
            self.db.refresh(promotion)

            logger.info(f"Created promotion: {promotion.name} (ID: {promotion.id})")
            return promotion

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating promotion: {str(e)}")
            raise

    def get_promotion(self, promotion_id: int, tenant_id: Optional[str] = None) -> Optional[Promotion]:
        """Get a promotion by ID"""
        query = self.db.query(Promotion).filter(Promotion.id == promotion_id)
        if tenant_id is not None:
            query = query.filter(Promotion.tenant_id == tenant_id)
        return query.first()

    def list_promotions(
        self, tenant_id: str, status: Optional[PromotionStatus] = None
    ) -> List[Promotion]:
        query = self.db.query(Promotion).filter(Promotion.tenant_id == tenant_id)
        if status is not None:
            query = query.filter(Promotion.status == status.value)
        return query.order_by(Promotion.id).all()

    def _require_promotion(self, promotion_id: int, tenant_id: Optional[str]) -> Promotion:
        promotion = self.get_promotion(promotion_id, tenant_id)
        if not promotion:
            raise ValueError(f"Promotion {promotion_id} not found")
        return promotion

    def create_promotion_code(
        self, code_data: PromotionCodeCreate, tenant_id: Optional[str] = None
    ) -> PromotionCode:
        """Create a code for a promotion; codes are stored upper-case and unique per tenant"""
        try:
            promotion = self._require_promotion(code_data.promotion_id, tenant_id)

            existing = (
                self.db.query(PromotionCode)
                .filter(
                    PromotionCode.tenant_id == promotion.tenant_id,
                    func.upper(PromotionCode.code) == code_data.code,
                )
                .first()
            )
            if existing:
                raise ValueError(f"Promotion code {code_data.code} already exists")

            code = PromotionCode(tenant_id=promotion.tenant_id, **code_data.model_dump())
            self.db.add(code)
            self.db.commit()
            self.db.refresh(code)

            logger.info(f"Created promotion code {code.code} for promotion {code.promotion_id}")
            return code

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating promotion code: {str(e)}")
            raise

    def add_rule(
        self, rule_data: PromotionRuleCreate, tenant_id: Optional[str] = None
    ) -> PromotionRule:
        """Attach a category/item include or exclude rule"""
        try:
            self._require_promotion(rule_data.promotion_id, tenant_id)

            rule = PromotionRule(
                promotion_id=rule_data.promotion_id,
                rule_type=rule_data.rule_type.value,
                rule_value={"ids": [str(i) for i in rule_data.ids]},
            )
            self.db.add(rule)
            self.db.commit()
            self.db.refresh(rule)

            logger.info(f"Added {rule.rule_type} rule to promotion {rule.promotion_id}")
            return rule

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error adding rule to promotion {rule_data.promotion_id}: {str(e)}")
            raise

    def update_status(
        self,
        promotion_id: int,
        new_status: PromotionStatus,
        tenant_id: Optional[str] = None,
    ) -> Promotion:
        """Move a promotion to a new status if the transition is allowed"""
        try:
            promotion = self._require_promotion(promotion_id, tenant_id)
            current = PromotionStatus(promotion.status)

            if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
                raise InvalidStatusTransitionError(
                    promotion_id, current.value, new_status.value
                )

            promotion.status = new_status.value
            self.db.commit()
            self.db.refresh(promotion)

            logger.info(f"Promotion {promotion_id} status changed: {current.value} -> {new_status.value}")
            return promotion

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating status of promotion {promotion_id}: {str(e)}")
            raise

    def refresh_status(
        self, now: Optional[datetime] = None, tenant_id: Optional[str] = None
    ) -> Dict[str, int]:
        """Mark running promotions expired past valid_until and exhausted at their limit"""
        now = as_utc_naive(now) or utc_now()
        try:
            expired_query = self.db.query(Promotion).filter(
                Promotion.status.in_(
                    [PromotionStatus.ACTIVE.value, PromotionStatus.PAUSED.value]
                ),
                Promotion.valid_until.isnot(None),
                Promotion.valid_until < now,
            )
            exhausted_query = self.db.query(Promotion).filter(
                Promotion.status == PromotionStatus.ACTIVE.value,
                and_(
                    Promotion.total_usage_limit.isnot(None),
                    Promotion.total_uses >= Promotion.total_usage_limit,
                ),
            )
            if tenant_id is not None:
                expired_query = expired_query.filter(Promotion.tenant_id == tenant_id)
                exhausted_query = exhausted_query.filter(Promotion.tenant_id == tenant_id)

            expired = expired_query.update(
                {Promotion.status: PromotionStatus.EXPIRED.value},
                synchronize_session=False,
            )
            exhausted = exhausted_query.update(
                {Promotion.status: PromotionStatus.EXHAUSTED.value},
                synchronize_session=False,
            )
            self.db.commit()

            if expired or exhausted:
                logger.info(f"Promotion status refresh: {expired} expired, {exhausted} exhausted")
            return {"expired": expired, "exhausted": exhausted}

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error refreshing promotion statuses: {str(e)}")
            raise

    def delete_promotion(self, promotion_id: int, tenant_id: Optional[str] = None) -> bool:
        """Delete a promotion that has never been used"""
        try:
            promotion = self._require_promotion(promotion_id, tenant_id)

            used = (
                self.db.query(func.count(PromotionUsage.id))
                .filter(PromotionUsage.promotion_id == promotion_id)
                .scalar()
            )
            if used:
                raise ValueError(
                    f"Cannot delete promotion {promotion_id} with recorded usage; cancel it instead"
                )

            self.db.query(PromotionRule).filter(
                PromotionRule.promotion_id == promotion_id
            ).delete(synchronize_session=False)
            self.db.query(PromotionCode).filter(
                PromotionCode.promotion_id == promotion_id
            ).delete(synchronize_session=False)
            self.db.delete(promotion)
            self.db.commit()

            logger.info(f"Deleted promotion {promotion_id}")
            return True

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error deleting promotion {promotion_id}: {str(e)}")
            raise
