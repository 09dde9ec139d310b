"""
订单与分账相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum

from checkout_engine.models.discount import AppliedDiscount


PLATFORM_BUCKET = "platform"


class RevenueModel(str, Enum):
    """商户分账模式"""
    MARKUP = "markup"  # 商户默认模式，按平台加价率拆分
    PLATFORM_MARKUP = "platform_markup"  # 售价已含平台加价
    COMMISSION = "commission"  # 平台按售价抽佣
    PLATFORM_OWNED = "platform_owned"  # 平台自营，全部归平台


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PAID = "paid"
    CANCELLED = "cancelled"


class TenantCommercialModel(BaseModel):
    """商户分账模式快照"""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    revenue_model: RevenueModel
    rate: Decimal = Field(..., ge=0, le=500, description="加价率或佣金率（百分比）")

    @field_validator("revenue_model")
    @classmethod
    def validate_model(cls, v: RevenueModel) -> RevenueModel:
        if v == RevenueModel.PLATFORM_OWNED:
            raise ValueError("平台自营不是商户分账模式")
        return v


class OrderLineInput(BaseModel):
    """待分账的订单行"""

    model_config = ConfigDict(frozen=True)

    item_id: str = Field(..., description="订单行ID")
    product_id: str = Field(..., description="商品ID")
    variant_id: Optional[str] = None
    size_id: Optional[str] = None
    tenant_id: Optional[str] = Field(None, description="商户ID，平台自营为空")
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0, description="顾客支付单价")
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0, description="行折扣")

    @property
    def item_subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


class OrderLineItem(BaseModel):
    """订单行快照（下单后不可修改）"""

    model_config = ConfigDict(frozen=True)

    item_id: str
    product_id: str
    variant_id: Optional[str] = None
    size_id: Optional[str] = None
    tenant_id: Optional[str] = None
    quantity: int
    price_at_purchase: Decimal
    item_subtotal: Decimal
    discount_amount: Decimal
    tenant_revenue_share: Decimal
    platform_commission: Decimal
    revenue_model: RevenueModel
    rate: Decimal

    @property
    def reconstructs_subtotal(self) -> bool:
        """分账金额加折扣是否精确等于行小计"""
        return self.tenant_revenue_share + self.platform_commission + self.discount_amount == self.item_subtotal


class TenantRevenueBreakdown(BaseModel):
    """单个商户的结算汇总"""

    tenant_id: Optional[str] = None
    item_count: int = 0
    customer_total: Decimal = Decimal("0")
    discount_total: Decimal = Decimal("0")
    tenant_earnings: Decimal = Decimal("0")
    platform_commission: Decimal = Decimal("0")


class RevenueAllocation(BaseModel):
    """订单分账结果"""

    currency: str
    line_items: List[OrderLineItem]
    order_commission_total: Decimal
    per_tenant_breakdown: Dict[str, TenantRevenueBreakdown]
    subtotal: Decimal
    discount_total: Decimal
    tenant_revenue_total: Decimal


class PlacedOrder(BaseModel):
    """结算完成的订单"""

    order_ref: str
    user_id: Optional[str] = None
    currency: str
    subtotal: Decimal
    discount_total: Decimal
    shipping_fee: Decimal = Decimal("0")
    shipping_discount: Decimal = Decimal("0")
    total_amount: Decimal
    applied_discounts: List[AppliedDiscount] = Field(default_factory=list)
    allocation: RevenueAllocation
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.now)
