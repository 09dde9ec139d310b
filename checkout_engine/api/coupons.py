"""
优惠券接口
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from checkout_engine.api.dependencies import get_coupon_service
from checkout_engine.models.context import RuleContext
from checkout_engine.models.coupon import CouponCreate, RedemptionResult
from checkout_engine.models.discount import AutoApplySelection, ValidationOutcome
from checkout_engine.services.coupon_service import CouponService

router = APIRouter(prefix="/coupons", tags=["优惠券"])


class ValidateCouponRequest(BaseModel):
    code: str = Field(..., description="优惠码")
    context: RuleContext
    user_id: Optional[str] = None


class ApplyCouponRequest(BaseModel):
    code: str = Field(..., description="优惠码")
    user_id: str = Field(..., description="核销用户")
    order_amount: Any = Field(..., description="订单金额")
    order_ref: Optional[str] = None
    context: Optional[RuleContext] = None


class AutoApplyRequest(BaseModel):
    context: RuleContext
    user_id: Optional[str] = None


@router.post("/validate", response_model=ValidationOutcome)
async def validate_coupon(
    request: ValidateCouponRequest,
    service: CouponService = Depends(get_coupon_service)
):
    """校验优惠码并试算折扣"""
    return await service.validate(request.code, request.context, user_id=request.user_id)


@router.post("/apply", response_model=RedemptionResult)
async def apply_coupon(
    request: ApplyCouponRequest,
    service: CouponService = Depends(get_coupon_service)
):
    """核销优惠码"""
    return await service.apply_and_record(
        request.code,
        request.user_id,
        request.order_amount,
        order_ref=request.order_ref,
        context=request.context
    )


@router.post("/auto-apply", response_model=AutoApplySelection)
async def auto_apply(
    request: AutoApplyRequest,
    service: CouponService = Depends(get_coupon_service)
):
    """为购物车挑选自动应用的优惠"""
    return await service.get_auto_apply(request.context, user_id=request.user_id)


@router.post("/refresh-status")
async def refresh_status(service: CouponService = Depends(get_coupon_service)) -> Dict[str, Any]:
    """刷新优惠券缓存状态"""
    updated = await service.refresh_statuses()
    return {"updated": updated, "total": sum(updated.values())}


@router.get("/{code}/analytics")
async def coupon_analytics(code: str, service: CouponService = Depends(get_coupon_service)) -> Dict[str, Any]:
    """优惠券统计"""
    return await service.get_coupon_analytics(code)


@router.post("", status_code=201)
async def create_coupon(
    coupon_data: CouponCreate,
    service: CouponService = Depends(get_coupon_service)
) -> Dict[str, Any]:
    """创建优惠券"""
    coupon = await service.create_coupon(coupon_data)
    return coupon.model_dump(mode="json")
