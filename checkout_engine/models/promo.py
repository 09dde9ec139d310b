"""
促销码数据模型
促销码是比优惠券更简单的折扣记录，持久化结构独立，
校验和计算通过 to_rule() 复用优惠券的同一套逻辑
"""

from decimal import Decimal
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator
from enum import Enum

from checkout_engine.models.coupon import CouponStatus, CouponUsage, derive_status, normalize_code
from checkout_engine.models.discount import (
    ApplicableTo,
    DiscountKind,
    DiscountRule,
    DiscountSource,
    UserRole,
)


class PromoType(str, Enum):
    """促销类型"""
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    BOGO = "bogo"
    FREE_SHIPPING = "free_shipping"
    BUNDLE = "bundle"


class PromoUserType(str, Enum):
    """适用用户类型"""
    ALL = "all"
    NEW_CUSTOMERS = "new_customers"
    RETURNING_CUSTOMERS = "returning_customers"
    VIP = "vip"


PROMO_KIND_MAP = {
    PromoType.PERCENTAGE: DiscountKind.PERCENTAGE,
    PromoType.FIXED: DiscountKind.FIXED_AMOUNT,
    PromoType.FREE_SHIPPING: DiscountKind.FREE_SHIPPING,
    # bogo/bundle 赠品规则与买X送Y相同，暂不支持
    PromoType.BOGO: DiscountKind.BUY_X_GET_Y,
    PromoType.BUNDLE: DiscountKind.BUY_X_GET_Y,
}


class Promo(BaseModel):
    """促销码模型"""

    promo_id: str = Field(..., description="促销ID")
    code: str = Field(..., min_length=3, max_length=20, description="促销码")
    name: str = Field(..., max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    promo_type: PromoType = Field(..., description="促销类型")
    discount_value: Decimal = Field(default=Decimal("0"), ge=0)
    maximum_discount: Optional[Decimal] = Field(None, ge=0)
    minimum_order_value: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = Field(default="NGN")
    usage_limit: Optional[int] = Field(None, ge=1)
    usage_limit_per_customer: Optional[int] = Field(default=1, ge=1)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    is_active: bool = True
    status: CouponStatus = CouponStatus.ACTIVE
    applicable_products: List[str] = Field(default_factory=list)
    applicable_categories: List[str] = Field(default_factory=list)
    applicable_brands: List[str] = Field(default_factory=list)
    excluded_products: List[str] = Field(default_factory=list)
    applicable_user_types: PromoUserType = PromoUserType.ALL
    priority: int = 0
    tenant_id: Optional[str] = None
    is_global: bool = False
    auto_apply: bool = False
    usage_log: List[CouponUsage] = Field(default_factory=list)

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        return normalize_code(v)

    @property
    def used_count(self) -> int:
        return len(self.usage_log)

    @property
    def usage_by_user(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for entry in self.usage_log:
            counts[entry.user_id] = counts.get(entry.user_id, 0) + 1
        return counts

    def derived_status(self, now: Optional[datetime] = None) -> CouponStatus:
        return derive_status(
            self.is_active, self.starts_at, self.ends_at, self.usage_limit, self.used_count, now or datetime.now()
        )

    def _applicable_to(self) -> ApplicableTo:
        if self.applicable_products:
            return ApplicableTo.SPECIFIC_PRODUCTS
        if self.applicable_categories:
            return ApplicableTo.SPECIFIC_CATEGORIES
        if self.applicable_brands:
            return ApplicableTo.SPECIFIC_BRANDS
        return ApplicableTo.ALL

    def to_rule(self) -> DiscountRule:
        """转换为统一折扣规则"""
        return DiscountRule(
            source=DiscountSource.PROMO,
            rule_id=self.promo_id,
            code=self.code,
            kind=PROMO_KIND_MAP[self.promo_type],
            value=self.discount_value,
            max_discount_amount=self.maximum_discount,
            currency=self.currency,
            min_purchase_amount=self.minimum_order_value,
            starts_at=self.starts_at,
            ends_at=self.ends_at,
            is_active=self.is_active,
            usage_limit=self.usage_limit,
            usage_limit_per_user=self.usage_limit_per_customer,
            times_used=self.used_count,
            usage_by_user=self.usage_by_user,
            applicable_to=self._applicable_to(),
            included_products=tuple(self.applicable_products),
            included_categories=tuple(self.applicable_categories),
            included_brands=tuple(self.applicable_brands),
            excluded_products=tuple(self.excluded_products),
            tenant_id=self.tenant_id,
            is_global=self.is_global,
            allowed_roles=(UserRole.VIP,) if self.applicable_user_types == PromoUserType.VIP else (),
            first_purchase_only=self.applicable_user_types == PromoUserType.NEW_CUSTOMERS,
            returning_customers_only=self.applicable_user_types == PromoUserType.RETURNING_CUSTOMERS,
            priority=self.priority,
            auto_apply=self.auto_apply,
        )
