"""
数据模型包初始化文件
"""

from .discount import (
    ApplicableTo,
    AppliedDiscount,
    AutoApplySelection,
    Currency,
    DiscountKind,
    DiscountQuote,
    DiscountRule,
    DiscountSource,
    EligibilityReason,
    EligibilityResult,
    UserRole,
    ValidationOutcome,
)
from .context import CartItem, RuleContext, UserSnapshot
from .coupon import (
    Coupon,
    CouponCreate,
    CouponStatus,
    CouponUsage,
    LedgerState,
    RedemptionResult,
    UsageSnapshot,
)
from .promo import Promo, PromoType, PromoUserType
from .order import (
    OrderLineInput,
    OrderLineItem,
    PlacedOrder,
    RevenueAllocation,
    RevenueModel,
    TenantCommercialModel,
    TenantRevenueBreakdown,
)

__all__ = [
    "ApplicableTo",
    "AppliedDiscount",
    "AutoApplySelection",
    "Currency",
    "DiscountKind",
    "DiscountQuote",
    "DiscountRule",
    "DiscountSource",
    "EligibilityReason",
    "EligibilityResult",
    "UserRole",
    "ValidationOutcome",
    "CartItem",
    "RuleContext",
    "UserSnapshot",
    "Coupon",
    "CouponCreate",
    "CouponStatus",
    "CouponUsage",
    "LedgerState",
    "RedemptionResult",
    "UsageSnapshot",
    "Promo",
    "PromoType",
    "PromoUserType",
    "OrderLineInput",
    "OrderLineItem",
    "PlacedOrder",
    "RevenueAllocation",
    "RevenueModel",
    "TenantCommercialModel",
    "TenantRevenueBreakdown",
]
