# backend/modules/promotions/services/promotion_lookup_service.py

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from pydantic import ValidationError
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
import logging

from ..exceptions import PromotionLookupError
from ..models.promotion_models import (
    Promotion,
    PromotionCode,
    PromotionCustomerUsage,
    PromotionRule,
    PromotionUsage,
    PromotionStatus,
)
from ..schemas.promotion_schemas import PromotionDefinitionBase, build_promotion_spec

logger = logging.getLogger(__name__)

PROMOTION_FIELDS = [column.name for column in Promotion.__table__.columns]


def promotion_to_spec(
    promotion: Promotion,
    rules: Optional[List[PromotionRule]] = None,
    code: Optional[PromotionCode] = None,
) -> PromotionDefinitionBase:
    """
    Convert a stored promotion row into its validated per-type definition.

    Raises pydantic.ValidationError when the row is inconsistent with its type.
    """
    data: Dict[str, Any] = {name: getattr(promotion, name) for name in PROMOTION_FIELDS}
    data["rules"] = [
        {"rule_type": rule.rule_type, "ids": (rule.rule_value or {}).get("ids", [])}
        for rule in (rules or [])
    ]
    if code is not None:
        data["code_used"] = code.code
        data["promotion_code_id"] = code.id
    return build_promotion_spec(data)


class PromotionLookupService:
    """Database access for promotion calculation and usage tracking"""

    def __init__(self, db: Session):
        self.db = db

    def _lookup_failed(self, operation: str, error: Exception) -> PromotionLookupError:
        logger.error(f"Promotion lookup '{operation}' failed: {error}")
        return PromotionLookupError(operation, str(error))

    def get_auto_apply_promotions(
        self, tenant_id: str, warnings: Optional[List[str]] = None
    ) -> List[PromotionDefinitionBase]:
        """Active promotions of a tenant that apply without a code, in id order"""
        try:
            rows = (
                self.db.query(Promotion)
                .filter(
                    Promotion.tenant_id == tenant_id,
                    Promotion.status == PromotionStatus.ACTIVE.value,
                    or_(Promotion.auto_apply.is_(True), Promotion.requires_code.is_(False)),
                )
                .order_by(Promotion.id)
                .all()
            )
            rules = self.get_rules([row.id for row in rows])
        except SQLAlchemyError as e:
            raise self._lookup_failed("get_auto_apply_promotions", e) from e

        promotions = []
        for row in rows:
            try:
                promotions.append(promotion_to_spec(row, rules.get(row.id)))
            except ValidationError as e:
                logger.warning(f"Skipping misconfigured promotion {row.id}: {e}")
                if warnings is not None:
                    warnings.append(f"Promotion {row.name} is misconfigured and was skipped")
        return promotions

    def get_promotion(self, promotion_id: int) -> Optional[Promotion]:
        try:
            return self.db.query(Promotion).filter(Promotion.id == promotion_id).first()
        except SQLAlchemyError as e:
            raise self._lookup_failed("get_promotion", e) from e

    def get_code(self, tenant_id: str, code: str) -> Optional[PromotionCode]:
        """Find a code of the tenant, ignoring case"""
        try:
            return (
                self.db.query(PromotionCode)
                .join(Promotion, Promotion.id == PromotionCode.promotion_id)
                .filter(
                    Promotion.tenant_id == tenant_id,
                    func.upper(PromotionCode.code) == code.strip().upper(),
                )
                .first()
            )
        except SQLAlchemyError as e:
            raise self._lookup_failed("get_code", e) from e

    def get_rules(self, promotion_ids: List[int]) -> Dict[int, List[PromotionRule]]:
        """Active rules grouped by promotion id"""
        if not promotion_ids:
            return {}
        try:
            rows = (
                self.db.query(PromotionRule)
                .filter(
                    PromotionRule.promotion_id.in_(promotion_ids),
                    PromotionRule.is_active.is_(True),
                )
                .order_by(PromotionRule.id)
                .all()
            )
        except SQLAlchemyError as e:
            raise self._lookup_failed("get_rules", e) from e

        grouped: Dict[int, List[PromotionRule]] = {}
        for rule in rows:
            grouped.setdefault(rule.promotion_id, []).append(rule)
        return grouped

    def count_usages(
        self,
        promotion_id: int,
        user_id: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> int:
        try:
            query = self.db.query(func.count(PromotionUsage.id)).filter(
                PromotionUsage.promotion_id == promotion_id
            )
            if user_id is not None:
                query = query.filter(PromotionUsage.user_id == user_id)
            if since is not None:
                query = query.filter(PromotionUsage.created_at >= since)
            return query.scalar() or 0
        except SQLAlchemyError as e:
            raise self._lookup_failed("count_usages", e) from e

    # Writes. These run inside the caller's transaction and leave commit and
    # rollback to it.

    def reserve_promotion_slot(self, promotion_id: int) -> bool:
        """Increment total_uses only while it is below total_usage_limit"""
        updated = (
            self.db.query(Promotion)
            .filter(
                Promotion.id == promotion_id,
                or_(
                    Promotion.total_usage_limit.is_(None),
                    Promotion.total_uses < Promotion.total_usage_limit,
                ),
            )
            .update(
                {Promotion.total_uses: Promotion.total_uses + 1},
                synchronize_session=False,
            )
        )
        return updated == 1

    def reserve_code_slot(self, promotion_code_id: int, promotion_id: int) -> bool:
        """Increment current_usage only while the code of this promotion has capacity left"""
        has_capacity = or_(
            and_(
                PromotionCode.is_single_use.is_(True),
                PromotionCode.current_usage < 1,
            ),
            and_(
                PromotionCode.is_single_use.is_(False),
                or_(
                    PromotionCode.usage_limit.is_(None),
                    PromotionCode.current_usage < PromotionCode.usage_limit,
                ),
            ),
        )
        updated = (
            self.db.query(PromotionCode)
            .filter(
                PromotionCode.id == promotion_code_id,
                PromotionCode.promotion_id == promotion_id,
                PromotionCode.is_active.is_(True),
                has_capacity,
            )
            .update(
                {PromotionCode.current_usage: PromotionCode.current_usage + 1},
                synchronize_session=False,
            )
        )
        return updated == 1

    def _customer_counter(self, promotion_id: int, user_id: str) -> PromotionCustomerUsage:
        """The customer's usage counter, seeded from recorded usages when missing"""
        counter = (
            self.db.query(PromotionCustomerUsage)
            .filter(
                PromotionCustomerUsage.promotion_id == promotion_id,
                PromotionCustomerUsage.user_id == user_id,
            )
            .first()
        )
        if counter is not None:
            return counter

        usage_count, last_used_at = (
            self.db.query(func.count(PromotionUsage.id), func.max(PromotionUsage.created_at))
            .filter(
                PromotionUsage.promotion_id == promotion_id,
                PromotionUsage.user_id == user_id,
            )
            .one()
        )
        # A concurrent insert of the same counter fails on the unique constraint
        counter = PromotionCustomerUsage(
            promotion_id=promotion_id,
            user_id=user_id,
            usage_count=usage_count or 0,
            last_used_at=last_used_at,
        )
        self.db.add(counter)
        self.db.flush()
        return counter

    def reserve_customer_slot(
        self,
        promotion_id: int,
        user_id: str,
        limit: Optional[int],
        used_since: Optional[datetime],
        at: datetime,
    ) -> bool:
        """
        Increment the customer's usage counter only while it is below limit
        and the customer has not used the promotion since used_since.
        """
        counter = self._customer_counter(promotion_id, user_id)

        conditions = [PromotionCustomerUsage.id == counter.id]
        if limit is not None:
            conditions.append(PromotionCustomerUsage.usage_count < limit)
        if used_since is not None:
            conditions.append(
                or_(
                    PromotionCustomerUsage.last_used_at.is_(None),
                    PromotionCustomerUsage.last_used_at < used_since,
                )
            )

        updated = (
            self.db.query(PromotionCustomerUsage)
            .filter(*conditions)
            .update(
                {
                    PromotionCustomerUsage.usage_count: PromotionCustomerUsage.usage_count + 1,
                    PromotionCustomerUsage.last_used_at: at,
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def add_usage(self, **fields) -> PromotionUsage:
        usage = PromotionUsage(**fields)
        self.db.add(usage)
        self.db.flush()
        return usage

    def add_discount_given(self, promotion_id: int, amount: Decimal) -> None:
        self.db.query(Promotion).filter(Promotion.id == promotion_id).update(
            {Promotion.total_discount_given: Promotion.total_discount_given + amount},
            synchronize_session=False,
        )

    def mark_exhausted(self, promotion_id: int, promotion_code_id: Optional[int] = None) -> None:
        """Close out a promotion and a code whose limits have been reached"""
        self.db.query(Promotion).filter(
            Promotion.id == promotion_id,
            Promotion.status == PromotionStatus.ACTIVE.value,
            Promotion.total_usage_limit.isnot(None),
            Promotion.total_uses >= Promotion.total_usage_limit,
        ).update(
            {Promotion.status: PromotionStatus.EXHAUSTED.value},
            synchronize_session=False,
        )

        if promotion_code_id is None:
            return

        self.db.query(PromotionCode).filter(
            PromotionCode.id == promotion_code_id,
            or_(
                PromotionCode.is_single_use.is_(True),
                and_(
                    PromotionCode.usage_limit.isnot(None),
                    PromotionCode.current_usage >= PromotionCode.usage_limit,
                ),
            ),
        ).update({PromotionCode.is_active: False}, synchronize_session=False)
