"""
优惠券相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from enum import Enum

from checkout_engine.core.exceptions import UnsupportedDiscountError
from checkout_engine.models.discount import (
    ApplicableTo,
    Currency,
    DiscountKind,
    DiscountRule,
    DiscountSource,
    UserRole,
)


class CouponStatus(str, Enum):
    """优惠券状态枚举（派生值，仅用于展示）"""
    ACTIVE = "active"  # 有效
    INACTIVE = "inactive"  # 已停用
    EXPIRED = "expired"  # 已过期
    DEPLETED = "depleted"  # 已用完
    SCHEDULED = "scheduled"  # 未开始


def derive_status(
    is_active: bool,
    starts_at: Optional[datetime],
    ends_at: Optional[datetime],
    usage_limit: Optional[int],
    times_used: int,
    now: datetime,
) -> CouponStatus:
    """根据停用标记、有效期和使用次数推导状态"""
    if not is_active:
        return CouponStatus.INACTIVE
    if ends_at is not None and now > ends_at:
        return CouponStatus.EXPIRED
    if usage_limit and times_used >= usage_limit:
        return CouponStatus.DEPLETED
    if starts_at is not None and now < starts_at:
        return CouponStatus.SCHEDULED
    return CouponStatus.ACTIVE


def normalize_code(code: Optional[str]) -> str:
    """优惠码统一去空格转大写"""
    return (code or "").strip().upper()


class CouponUsage(BaseModel):
    """优惠券使用记录（只追加）"""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., description="使用用户ID")
    used_at: datetime = Field(default_factory=datetime.now, description="使用时间")
    order_amount: Decimal = Field(..., ge=0, description="订单金额")
    discount_applied: Decimal = Field(..., ge=0, description="折扣金额")
    order_ref: Optional[str] = Field(None, description="关联订单号")


class Coupon(BaseModel):
    """优惠券基础模型"""

    coupon_id: str = Field(..., description="优惠券ID")
    code: str = Field(..., min_length=3, max_length=50, description="优惠券代码")
    name: str = Field(..., max_length=100, description="优惠券名称")
    description: Optional[str] = Field(None, max_length=500, description="优惠券描述")
    discount_kind: DiscountKind = Field(..., description="折扣类型")
    discount_value: Decimal = Field(default=Decimal("0"), ge=0, description="折扣值")
    max_discount_amount: Optional[Decimal] = Field(None, ge=0, description="最大折扣金额")
    buy_quantity: Optional[int] = Field(None, ge=1, description="买X数量")
    get_quantity: Optional[int] = Field(None, ge=1, description="送Y数量")
    currency: Currency = Field(default=Currency.NGN, description="币种")
    minimum_purchase_amount: Decimal = Field(default=Decimal("0"), ge=0, description="最低消费")
    maximum_purchase_amount: Optional[Decimal] = Field(None, ge=0, description="最高消费")
    minimum_items: int = Field(default=0, ge=0, description="最少件数")
    maximum_items: Optional[int] = Field(None, ge=0, description="最多件数")
    starts_at: datetime = Field(..., description="有效开始时间")
    ends_at: datetime = Field(..., description="有效结束时间")
    is_active: bool = Field(default=True, description="是否启用")
    status: CouponStatus = Field(default=CouponStatus.ACTIVE, description="缓存状态，仅供展示")
    usage_limit: Optional[int] = Field(None, ge=1, description="总使用次数限制")
    usage_limit_per_user: Optional[int] = Field(default=1, ge=1, description="单用户使用次数限制")

    applicable_to: ApplicableTo = Field(default=ApplicableTo.ALL)
    included_products: List[str] = Field(default_factory=list)
    excluded_products: List[str] = Field(default_factory=list)
    included_categories: List[str] = Field(default_factory=list)
    excluded_categories: List[str] = Field(default_factory=list)
    included_brands: List[str] = Field(default_factory=list)
    excluded_brands: List[str] = Field(default_factory=list)
    allowed_tenants: List[str] = Field(default_factory=list)

    tenant_id: Optional[str] = Field(None, description="所属商户")
    is_global: bool = Field(default=False, description="是否全平台通用")

    allowed_users: List[str] = Field(default_factory=list)
    excluded_users: List[str] = Field(default_factory=list)
    allowed_roles: List[UserRole] = Field(default_factory=list)
    first_purchase_only: bool = False
    minimum_account_age_days: Optional[int] = Field(None, ge=0)

    can_combine_with_other_coupons: bool = False
    can_combine_with_sales: bool = True
    priority: int = Field(default=0, ge=0)
    auto_apply: bool = False

    usage_log: List[CouponUsage] = Field(default_factory=list, description="使用记录")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        return normalize_code(v)

    # 统计字段全部由使用记录折算，不单独存储

    @property
    def times_used(self) -> int:
        return len(self.usage_log)

    @property
    def total_discount_given(self) -> Decimal:
        return sum((entry.discount_applied for entry in self.usage_log), Decimal("0"))

    @property
    def total_revenue(self) -> Decimal:
        return sum((entry.order_amount for entry in self.usage_log), Decimal("0"))

    @property
    def average_order_value(self) -> Decimal:
        if not self.usage_log:
            return Decimal("0")
        return self.total_revenue / self.times_used

    @property
    def usage_by_user(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for entry in self.usage_log:
            counts[entry.user_id] = counts.get(entry.user_id, 0) + 1
        return counts

    @property
    def remaining_uses(self) -> Optional[int]:
        """剩余次数，None表示不限"""
        if not self.usage_limit:
            return None
        return max(0, self.usage_limit - self.times_used)

    @property
    def usage_percentage(self) -> float:
        if not self.usage_limit:
            return 0.0
        return min(100.0, self.times_used / self.usage_limit * 100)

    def days_until_expiration(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now()
        seconds = (self.ends_at - now).total_seconds()
        if seconds <= 0:
            return 0
        return int(-(-seconds // 86400))

    def derived_status(self, now: Optional[datetime] = None) -> CouponStatus:
        """重新推导状态，不信任缓存的status字段"""
        return derive_status(
            self.is_active,
            self.starts_at,
            self.ends_at,
            self.usage_limit,
            self.times_used,
            now or datetime.now(),
        )

    def with_usage(self, entry: CouponUsage) -> "Coupon":
        """追加一条使用记录，返回新对象"""
        coupon = self.model_copy(update={"usage_log": [*self.usage_log, entry], "updated_at": entry.used_at})
        return coupon.model_copy(update={"status": coupon.derived_status(entry.used_at)})

    def to_rule(self) -> DiscountRule:
        """转换为统一折扣规则"""
        return DiscountRule(
            source=DiscountSource.COUPON,
            rule_id=self.coupon_id,
            code=self.code,
            kind=self.discount_kind,
            value=self.discount_value,
            max_discount_amount=self.max_discount_amount,
            currency=self.currency.value,
            min_purchase_amount=self.minimum_purchase_amount,
            max_purchase_amount=self.maximum_purchase_amount,
            min_items=self.minimum_items,
            max_items=self.maximum_items,
            starts_at=self.starts_at,
            ends_at=self.ends_at,
            is_active=self.is_active,
            usage_limit=self.usage_limit,
            usage_limit_per_user=self.usage_limit_per_user,
            times_used=self.times_used,
            usage_by_user=self.usage_by_user,
            applicable_to=self.applicable_to,
            included_products=tuple(self.included_products),
            excluded_products=tuple(self.excluded_products),
            included_categories=tuple(self.included_categories),
            excluded_categories=tuple(self.excluded_categories),
            included_brands=tuple(self.included_brands),
            excluded_brands=tuple(self.excluded_brands),
            allowed_tenants=tuple(self.allowed_tenants),
            tenant_id=self.tenant_id,
            is_global=self.is_global,
            allowed_users=tuple(self.allowed_users),
            excluded_users=tuple(self.excluded_users),
            allowed_roles=tuple(self.allowed_roles),
            first_purchase_only=self.first_purchase_only,
            minimum_account_age_days=self.minimum_account_age_days,
            can_combine_with_others=self.can_combine_with_other_coupons,
            can_combine_with_sales=self.can_combine_with_sales,
            priority=self.priority,
            auto_apply=self.auto_apply,
        )


class CouponCreate(BaseModel):
    """创建优惠券模型"""

    code: str = Field(..., min_length=3, max_length=50)
    name: str = Field(..., max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    discount_kind: DiscountKind = Field(...)
    discount_value: Decimal = Field(default=Decimal("0"), ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    currency: Currency = Currency.NGN
    minimum_purchase_amount: Decimal = Field(default=Decimal("0"), ge=0)
    maximum_purchase_amount: Optional[Decimal] = Field(None, ge=0)
    minimum_items: int = Field(default=0, ge=0)
    maximum_items: Optional[int] = Field(None, ge=0)
    starts_at: datetime = Field(...)
    ends_at: datetime = Field(...)
    is_active: bool = True
    usage_limit: Optional[int] = Field(None, ge=1)
    usage_limit_per_user: Optional[int] = Field(default=1, ge=1)
    applicable_to: ApplicableTo = ApplicableTo.ALL
    included_products: List[str] = Field(default_factory=list)
    excluded_products: List[str] = Field(default_factory=list)
    included_categories: List[str] = Field(default_factory=list)
    excluded_categories: List[str] = Field(default_factory=list)
    included_brands: List[str] = Field(default_factory=list)
    excluded_brands: List[str] = Field(default_factory=list)
    allowed_tenants: List[str] = Field(default_factory=list)
    tenant_id: Optional[str] = None
    is_global: bool = False
    allowed_users: List[str] = Field(default_factory=list)
    excluded_users: List[str] = Field(default_factory=list)
    allowed_roles: List[UserRole] = Field(default_factory=list)
    first_purchase_only: bool = False
    minimum_account_age_days: Optional[int] = Field(None, ge=0)
    can_combine_with_other_coupons: bool = False
    can_combine_with_sales: bool = True
    priority: int = Field(default=0, ge=0)
    auto_apply: bool = False

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        return normalize_code(v)

    @model_validator(mode="after")
    def validate_definition(self) -> "CouponCreate":
        """校验有效期和折扣值"""
        if self.ends_at <= self.starts_at:
            raise ValueError("结束时间必须晚于开始时间")
        if self.discount_kind == DiscountKind.PERCENTAGE and self.discount_value > Decimal("100"):
            raise ValueError("百分比折扣不能超过100")
        if self.discount_kind == DiscountKind.FIXED_AMOUNT and self.discount_value <= 0:
            raise ValueError("固定金额折扣值必须大于0")
        if (
            self.maximum_purchase_amount is not None
            and self.maximum_purchase_amount < self.minimum_purchase_amount
        ):
            raise ValueError("最高消费不能低于最低消费")
        return self

    def ensure_supported(self) -> None:
        """买X送Y的赠品规则尚未确定，创建时直接拒绝"""
        if self.discount_kind == DiscountKind.BUY_X_GET_Y:
            raise UnsupportedDiscountError(
                "暂不支持买X送Y类型优惠券",
                details={"discount_kind": self.discount_kind.value},
            )


class UsageSnapshot(BaseModel):
    """核销后的使用统计快照"""

    code: str
    source: DiscountSource
    rule_id: str
    times_used: int
    usage_limit: Optional[int] = None
    remaining_uses: Optional[int] = None
    user_times_used: int
    total_discount_given: Decimal
    total_revenue: Decimal
    average_order_value: Decimal
    status: CouponStatus


class LedgerState(BaseModel):
    """核销前读取的计数快照，作为条件更新的比较基准"""

    model_config = ConfigDict(frozen=True)

    source: DiscountSource
    rule_id: str
    code: str
    currency: str = "NGN"
    is_active: bool = True
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    status: CouponStatus = CouponStatus.ACTIVE
    usage_limit: Optional[int] = None
    usage_limit_per_user: Optional[int] = None
    times_used: int = 0
    total_discount_given: Decimal = Decimal("0")
    total_revenue: Decimal = Decimal("0")

    def derived_status(self, now: datetime, times_used: Optional[int] = None) -> CouponStatus:
        return derive_status(
            self.is_active,
            self.starts_at,
            self.ends_at,
            self.usage_limit,
            self.times_used if times_used is None else times_used,
            now,
        )


class RedemptionResult(BaseModel):
    """apply_and_record接口返回"""

    code: str
    discount_applied: Decimal
    applies_to_shipping: bool = False
    usage_snapshot: UsageSnapshot
