"""
规则上下文模型
结算前由购物车服务构建的只读快照
"""

from decimal import Decimal
from datetime import datetime
from typing import Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator

from checkout_engine.models.discount import UserRole


class CartItem(BaseModel):
    """购物车商品快照"""

    model_config = ConfigDict(frozen=True)

    item_id: str = Field(..., description="购物车行ID")
    product_id: str = Field(..., description="商品ID")
    variant_id: Optional[str] = Field(None, description="商户子商品ID")
    size_id: Optional[str] = Field(None, description="规格ID")
    category_id: Optional[str] = Field(None, description="分类ID")
    brand_id: Optional[str] = Field(None, description="品牌ID")
    tenant_id: Optional[str] = Field(None, description="商户ID，平台自营为空")
    quantity: int = Field(..., ge=1, description="数量")
    unit_price: Decimal = Field(..., ge=0, description="顾客支付单价")
    on_sale: bool = Field(default=False, description="是否处于特价活动")

    @property
    def line_total(self) -> Decimal:
        """行小计"""
        return self.unit_price * self.quantity


class UserSnapshot(BaseModel):
    """下单用户快照"""

    model_config = ConfigDict(frozen=True)

    user_id: str
    role: UserRole = UserRole.CUSTOMER
    account_created_at: Optional[datetime] = None
    completed_order_count: int = Field(default=0, ge=0)

    def account_age_days(self, now: datetime) -> Optional[int]:
        """账户注册天数"""
        if self.account_created_at is None:
            return None
        return (now - self.account_created_at).days


class RuleContext(BaseModel):
    """规则上下文"""

    model_config = ConfigDict(frozen=True)

    subtotal: Decimal = Field(..., ge=0, description="购物车小计")
    currency: str = Field(default="NGN", description="结算币种")
    shipping_fee: Decimal = Field(default=Decimal("0"), ge=0, description="报价运费")
    items: Tuple[CartItem, ...] = Field(default=(), description="购物车商品")
    tenant_id: Optional[str] = Field(None, description="目标商户")
    user: Optional[UserSnapshot] = Field(None, description="下单用户")
    evaluated_at: Optional[datetime] = Field(None, description="评估时间，默认当前时间")

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def user_id(self) -> Optional[str]:
        return self.user.user_id if self.user else None

    @property
    def item_count(self) -> int:
        """购物车行数"""
        return len(self.items)

    @classmethod
    def for_amount(cls, amount: Decimal, currency: str = "NGN", **kwargs) -> "RuleContext":
        """只有订单金额时构建的最小上下文"""
        return cls(subtotal=amount, currency=currency, **kwargs)
