"""
折扣规则统一模型
优惠券（Coupon）和促销码（Promo）都转换为同一个DiscountRule，
由同一套资格校验和折扣计算逻辑处理
"""

from decimal import Decimal
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


class DiscountSource(str, Enum):
    """折扣来源"""
    COUPON = "coupon"
    PROMO = "promo"


class DiscountKind(str, Enum):
    """折扣类型枚举"""
    PERCENTAGE = "percentage"  # 百分比折扣
    FIXED_AMOUNT = "fixed_amount"  # 固定金额折扣
    FREE_SHIPPING = "free_shipping"  # 免运费
    BUY_X_GET_Y = "buy_x_get_y"  # 买X送Y（暂不支持）


class ApplicableTo(str, Enum):
    """适用范围"""
    ALL = "all"
    SPECIFIC_PRODUCTS = "specific_products"
    SPECIFIC_CATEGORIES = "specific_categories"
    SPECIFIC_BRANDS = "specific_brands"
    SPECIFIC_TENANTS = "specific_tenants"


class UserRole(str, Enum):
    """用户角色"""
    CUSTOMER = "customer"
    TENANT_ADMIN = "tenant_admin"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"
    VIP = "vip"


class Currency(str, Enum):
    """支持的结算币种"""
    NGN = "NGN"
    USD = "USD"
    GBP = "GBP"
    EUR = "EUR"
    ZAR = "ZAR"


class EligibilityReason(str, Enum):
    """不可用原因，按校验顺序排列"""
    NOT_YET_STARTED = "not-yet-started"
    EXPIRED = "expired"
    INACTIVE = "inactive"
    USAGE_LIMIT_REACHED = "usage-limit-reached"
    PER_USER_LIMIT_REACHED = "per-user-limit-reached"
    USER_NOT_ALLOWED = "user-not-allowed"
    USER_EXCLUDED = "user-excluded"
    FIRST_PURCHASE_VIOLATION = "first-purchase-violation"
    ACCOUNT_TOO_NEW = "account-too-new"
    TENANT_MISMATCH = "tenant-mismatch"
    CURRENCY_MISMATCH = "currency-mismatch"
    BELOW_MINIMUM_PURCHASE = "below-minimum-purchase"
    ABOVE_MAXIMUM_PURCHASE = "above-maximum-purchase"
    BELOW_MINIMUM_ITEMS = "below-minimum-items"
    ABOVE_MAXIMUM_ITEMS = "above-maximum-items"
    NO_APPLICABLE_ITEMS = "no-applicable-items"
    NOT_FOUND = "not-found"


class DiscountRule(BaseModel):
    """统一折扣规则（只读快照）"""

    model_config = ConfigDict(frozen=True)

    source: DiscountSource
    rule_id: str
    code: str
    kind: DiscountKind
    value: Decimal = Decimal("0")
    max_discount_amount: Optional[Decimal] = None
    currency: str = "NGN"

    # 金额与件数限制
    min_purchase_amount: Decimal = Decimal("0")
    max_purchase_amount: Optional[Decimal] = None
    min_items: int = 0
    max_items: Optional[int] = None

    # 有效期与状态
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    is_active: bool = True

    # 使用次数
    usage_limit: Optional[int] = None
    usage_limit_per_user: Optional[int] = None
    times_used: int = 0
    usage_by_user: Dict[str, int] = Field(default_factory=dict)

    # 适用商品范围
    applicable_to: ApplicableTo = ApplicableTo.ALL
    included_products: Tuple[str, ...] = ()
    excluded_products: Tuple[str, ...] = ()
    included_categories: Tuple[str, ...] = ()
    excluded_categories: Tuple[str, ...] = ()
    included_brands: Tuple[str, ...] = ()
    excluded_brands: Tuple[str, ...] = ()
    allowed_tenants: Tuple[str, ...] = ()

    # 商户范围
    tenant_id: Optional[str] = None
    is_global: bool = False

    # 用户范围
    allowed_users: Tuple[str, ...] = ()
    excluded_users: Tuple[str, ...] = ()
    allowed_roles: Tuple[UserRole, ...] = ()
    first_purchase_only: bool = False
    returning_customers_only: bool = False
    minimum_account_age_days: Optional[int] = None

    # 叠加与自动应用
    can_combine_with_others: bool = False
    can_combine_with_sales: bool = True
    priority: int = 0
    auto_apply: bool = False

    def user_usage_count(self, user_id: Optional[str]) -> int:
        """用户已使用次数"""
        if not user_id:
            return 0
        return self.usage_by_user.get(str(user_id), 0)

    @property
    def is_personalized(self) -> bool:
        """是否需要识别用户身份"""
        return bool(
            self.allowed_users
            or self.allowed_roles
            or self.first_purchase_only
            or self.returning_customers_only
            or self.minimum_account_age_days
        )


class EligibilityResult(BaseModel):
    """资格校验结果"""

    model_config = ConfigDict(frozen=True)

    usable: bool
    reason: Optional[EligibilityReason] = None

    @classmethod
    def ok(cls) -> "EligibilityResult":
        return cls(usable=True)

    @classmethod
    def reject(cls, reason: EligibilityReason) -> "EligibilityResult":
        return cls(usable=False, reason=reason)


class DiscountQuote(BaseModel):
    """折扣计算结果"""

    model_config = ConfigDict(frozen=True)

    amount: Decimal
    base_amount: Decimal
    currency: str
    applies_to_shipping: bool = False


class ValidationOutcome(BaseModel):
    """validate接口返回"""

    code: str
    valid: bool
    discount: Decimal = Decimal("0")
    reason: Optional[EligibilityReason] = None
    source: Optional[DiscountSource] = None
    applies_to_shipping: bool = False


class AppliedDiscount(BaseModel):
    """自动应用选中的单个优惠"""

    code: str
    source: DiscountSource
    amount: Decimal
    priority: int
    can_combine_with_others: bool
    applies_to_shipping: bool = False


class AutoApplySelection(BaseModel):
    """自动应用选择结果"""

    applied: List[AppliedDiscount] = Field(default_factory=list)
    total_discount: Decimal = Decimal("0")

    @property
    def codes(self) -> List[str]:
        return [item.code for item in self.applied]
