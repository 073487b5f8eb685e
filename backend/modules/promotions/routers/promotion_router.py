# backend/modules/promotions/routers/promotion_router.py

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session
from typing import Optional, List
import logging

from core.database import get_db

from ..exceptions import InvalidStatusTransitionError
from ..models.promotion_models import PromotionStatus
from ..schemas.promotion_schemas import (
    PromotionCalculationRequest,
    PromotionCalculationResult,
    PromotionValidationRequest,
    PromotionValidationResult,
    PromotionUsageBatch,
    PromotionUsageBatchResponse,
    PromotionCreate,
    PromotionCodeCreate,
    PromotionRuleCreate,
    PromotionStatusUpdate,
    PromotionResponse,
    PromotionCodeResponse,
    PromotionRuleResponse,
)
from ..services.promotion_calculator import PromotionCalculator
from ..services.promotion_service import PromotionService
from ..services.usage_service import PromotionUsageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/promotions", tags=["promotions"])


@router.post("/validate", response_model=PromotionValidationResult)
def validate_promotion_code(
    request: PromotionValidationRequest,
    db: Session = Depends(get_db),
):
    """Validate a promotion code and preview its discount"""
    calculator = PromotionCalculator(db)
    return calculator.validate_promotion_code(
        tenant_id=request.tenant_id,
        code=request.code,
        user_id=request.user_id,
        order_amount=request.order_amount,
        order_history=request.order_history,
    )


@router.post("/calculate", response_model=PromotionCalculationResult)
def calculate_promotions(
    request: PromotionCalculationRequest,
    db: Session = Depends(get_db),
):
    """Apply eligible promotions and entered codes to a cart"""
    calculator = PromotionCalculator(db)
    return calculator.calculate_promotions(request)


@router.post("/usage", response_model=PromotionUsageBatchResponse)
def record_promotion_usage(
    batch: PromotionUsageBatch,
    db: Session = Depends(get_db),
):
    """Record the promotions applied to a confirmed order"""
    service = PromotionUsageService(db)
    response = service.record_usages(batch.usages, tenant_id=batch.tenant_id)
    if response.failed:
        logger.warning(
            f"Tenant {batch.tenant_id}: usage not recorded for promotions {response.failed}"
        )
    return response


# Administration


@router.post("/", response_model=PromotionResponse)
def create_promotion(
    promotion_data: PromotionCreate,
    x_tenant_id: str = Header(...),
    db: Session = Depends(get_db),
):
    """Create a promotion in draft status"""
    try:
        service = PromotionService(db)
        return service.create_promotion(x_tenant_id, promotion_data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/", response_model=List[PromotionResponse])
def list_promotions(
    status: Optional[PromotionStatus] = None,
    x_tenant_id: str = Header(...),
    db: Session = Depends(get_db),
):
    """List the tenant's promotions"""
    service = PromotionService(db)
    return service.list_promotions(x_tenant_id, status)


@router.get("/{promotion_id}", response_model=PromotionResponse)
def get_promotion(
    promotion_id: int,
    x_tenant_id: str = Header(...),
    db: Session = Depends(get_db),
):
    service = PromotionService(db)
    promotion = service.get_promotion(promotion_id, x_tenant_id)
    if not promotion:
        raise HTTPException(status_code=404, detail="Promotion not found")
    return promotion


@router.post("/codes", response_model=PromotionCodeResponse)
def create_promotion_code(
    code_data: PromotionCodeCreate,
    x_tenant_id: str = Header(...),
    db: Session = Depends(get_db),
):
    """Create a redeemable code for a promotion"""
    try:
        service = PromotionService(db)
        return service.create_promotion_code(code_data, x_tenant_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/rules", response_model=PromotionRuleResponse)
def add_promotion_rule(
    rule_data: PromotionRuleCreate,
    x_tenant_id: str = Header(...),
    db: Session = Depends(get_db),
):
    """Attach a category or item rule to a promotion"""
    try:
        service = PromotionService(db)
        return service.add_rule(rule_data, x_tenant_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/{promotion_id}/status", response_model=PromotionResponse)
def update_promotion_status(
    promotion_id: int,
    status_update: PromotionStatusUpdate,
    x_tenant_id: str = Header(...),
    db: Session = Depends(get_db),
):
    """Change a promotion's status"""
    try:
        service = PromotionService(db)
        return service.update_status(promotion_id, status_update.status, x_tenant_id)
    except InvalidStatusTransitionError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/{promotion_id}")
def delete_promotion(
    promotion_id: int,
    x_tenant_id: str = Header(...),
    db: Session = Depends(get_db),
):
    """Delete a promotion that has never been used"""
    try:
        service = PromotionService(db)
        service.delete_promotion(promotion_id, x_tenant_id)
        return {"message": "Promotion deleted successfully"}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
