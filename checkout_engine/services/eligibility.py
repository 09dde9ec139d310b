"""
优惠资格校验
纯函数，无副作用，可在自动应用时对每个候选券重复调用。
按固定顺序返回第一个不满足的规则，便于向用户展示具体原因
"""

from datetime import datetime
from typing import List, Optional

from checkout_engine.core.exceptions import EligibilityError
from checkout_engine.models.context import CartItem, RuleContext
from checkout_engine.models.discount import (
    ApplicableTo,
    DiscountRule,
    EligibilityReason,
    EligibilityResult,
)


def _matches_include_lists(rule: DiscountRule, item: CartItem) -> bool:
    if item.product_id in rule.included_products:
        return True
    if item.category_id is not None and item.category_id in rule.included_categories:
        return True
    if item.brand_id is not None and item.brand_id in rule.included_brands:
        return True
    if rule.applicable_to == ApplicableTo.SPECIFIC_TENANTS and item.tenant_id in rule.allowed_tenants:
        return True
    return False


def _matches_exclude_lists(rule: DiscountRule, item: CartItem) -> bool:
    if item.product_id in rule.excluded_products:
        return True
    if item.category_id is not None and item.category_id in rule.excluded_categories:
        return True
    if item.brand_id is not None and item.brand_id in rule.excluded_brands:
        return True
    return False


def applicable_items(rule: DiscountRule, context: RuleContext) -> List[CartItem]:
    """
    计算适用商品集合

    指定范围时先与包含列表取交集，再减去排除列表；
    不可与特价叠加的规则还要去掉特价商品
    """
    items = list(context.items)
    if rule.applicable_to != ApplicableTo.ALL:
        items = [item for item in items if _matches_include_lists(rule, item)]
        items = [item for item in items if not _matches_exclude_lists(rule, item)]
    if not rule.can_combine_with_sales:
        items = [item for item in items if not item.on_sale]
    return items


def _needs_applicability_check(rule: DiscountRule) -> bool:
    return rule.applicable_to != ApplicableTo.ALL or not rule.can_combine_with_sales


def _check_user(rule: DiscountRule, context: RuleContext, user_id: Optional[str], now: datetime) -> Optional[EligibilityReason]:
    """用户范围校验：黑白名单、角色、首单、账户年龄"""
    if not user_id:
        # 匿名结算只能使用非定向优惠
        if rule.is_personalized:
            return EligibilityReason.USER_NOT_ALLOWED
        return None

    if rule.allowed_users and user_id not in rule.allowed_users:
        return EligibilityReason.USER_NOT_ALLOWED
    if user_id in rule.excluded_users:
        return EligibilityReason.USER_EXCLUDED

    user = context.user if context.user and context.user.user_id == user_id else None
    if rule.allowed_roles and (user is None or user.role not in rule.allowed_roles):
        return EligibilityReason.USER_NOT_ALLOWED
    if rule.returning_customers_only and (user is None or user.completed_order_count == 0):
        return EligibilityReason.USER_NOT_ALLOWED

    if rule.first_purchase_only and (user is None or user.completed_order_count > 0):
        return EligibilityReason.FIRST_PURCHASE_VIOLATION
    if rule.minimum_account_age_days:
        age = user.account_age_days(now) if user else None
        if age is None or age < rule.minimum_account_age_days:
            return EligibilityReason.ACCOUNT_TOO_NEW
    return None


def evaluate_eligibility(
    rule: DiscountRule,
    context: RuleContext,
    user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> EligibilityResult:
    """校验折扣规则在当前上下文中是否可用"""
    now = now or context.evaluated_at or datetime.now()
    user_id = user_id or context.user_id

    # 有效期
    if rule.starts_at is not None and now < rule.starts_at:
        return EligibilityResult.reject(EligibilityReason.NOT_YET_STARTED)
    if rule.ends_at is not None and now > rule.ends_at:
        return EligibilityResult.reject(EligibilityReason.EXPIRED)

    if not rule.is_active:
        return EligibilityResult.reject(EligibilityReason.INACTIVE)

    # 使用次数
    if rule.usage_limit and rule.times_used >= rule.usage_limit:
        return EligibilityResult.reject(EligibilityReason.USAGE_LIMIT_REACHED)
    if user_id and rule.usage_limit_per_user and rule.user_usage_count(user_id) >= rule.usage_limit_per_user:
        return EligibilityResult.reject(EligibilityReason.PER_USER_LIMIT_REACHED)

    user_reason = _check_user(rule, context, user_id, now)
    if user_reason is not None:
        return EligibilityResult.reject(user_reason)

    # 商户范围：绑定商户的券只能在该商户购物车使用，全局券除外
    if rule.tenant_id and not rule.is_global and context.tenant_id != rule.tenant_id:
        return EligibilityResult.reject(EligibilityReason.TENANT_MISMATCH)

    if rule.currency.upper() != context.currency:
        return EligibilityResult.reject(EligibilityReason.CURRENCY_MISMATCH)

    # 金额限制
    if rule.min_purchase_amount and context.subtotal < rule.min_purchase_amount:
        return EligibilityResult.reject(EligibilityReason.BELOW_MINIMUM_PURCHASE)
    if rule.max_purchase_amount and context.subtotal > rule.max_purchase_amount:
        return EligibilityResult.reject(EligibilityReason.ABOVE_MAXIMUM_PURCHASE)

    # 件数限制
    if rule.min_items and context.item_count < rule.min_items:
        return EligibilityResult.reject(EligibilityReason.BELOW_MINIMUM_ITEMS)
    if rule.max_items and context.item_count > rule.max_items:
        return EligibilityResult.reject(EligibilityReason.ABOVE_MAXIMUM_ITEMS)

    if _needs_applicability_check(rule) and not applicable_items(rule, context):
        return EligibilityResult.reject(EligibilityReason.NO_APPLICABLE_ITEMS)

    return EligibilityResult.ok()


def evaluate_or_raise(
    rule: DiscountRule,
    context: RuleContext,
    user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> None:
    """校验失败时抛出 EligibilityError"""
    result = evaluate_eligibility(rule, context, user_id=user_id, now=now)
    if not result.usable:
        raise EligibilityError(result.reason, details={"code": rule.code})
