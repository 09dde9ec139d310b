"""
订单接口
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from checkout_engine.api.dependencies import get_order_service
from checkout_engine.models.context import RuleContext
from checkout_engine.models.order import (
    OrderLineInput,
    PlacedOrder,
    RevenueAllocation,
    TenantCommercialModel,
)
from checkout_engine.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["订单"])


class AllocateRevenueRequest(BaseModel):
    line_items: List[OrderLineInput] = Field(..., min_length=1)
    tenant_models: Optional[List[TenantCommercialModel]] = Field(None, description="不传则读取商户配置")
    currency: Optional[str] = None


class CheckoutRequest(BaseModel):
    order_ref: str = Field(..., min_length=1)
    context: RuleContext
    line_items: List[OrderLineInput] = Field(..., min_length=1)
    coupon_code: Optional[str] = None
    auto_apply: bool = False


@router.post("/allocate-revenue", response_model=RevenueAllocation)
async def allocate_revenue(
    request: AllocateRevenueRequest,
    service: OrderService = Depends(get_order_service)
):
    """计算订单分账"""
    tenant_models = None
    if request.tenant_models is not None:
        tenant_models = {model.tenant_id: model for model in request.tenant_models}
    return await service.allocate_revenue(request.line_items, tenant_models, currency=request.currency)


@router.post("/checkout", response_model=PlacedOrder, status_code=201)
async def checkout(
    request: CheckoutRequest,
    service: OrderService = Depends(get_order_service)
):
    """结算下单"""
    return await service.place_order(
        request.order_ref,
        request.context,
        request.line_items,
        coupon_code=request.coupon_code,
        auto_apply=request.auto_apply
    )
