"""
优惠券业务服务层
对外提供校验、核销、自动应用、创建和统计接口；
优惠码先按优惠券查找，找不到再按促销码查找
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union
from decimal import Decimal
from datetime import datetime

from checkout_engine.core.config import settings
from checkout_engine.core.exceptions import (
    CouponNotFound,
    EligibilityError,
    InputValidationError,
    PerUserLimitExceeded,
    UsageLimitExceeded,
)
from checkout_engine.core.money import quantize_money, to_money
from checkout_engine.models.context import RuleContext
from checkout_engine.models.coupon import (
    Coupon,
    CouponCreate,
    CouponUsage,
    RedemptionResult,
    derive_status,
    normalize_code,
)
from checkout_engine.models.discount import (
    AutoApplySelection,
    DiscountQuote,
    DiscountRule,
    DiscountSource,
    EligibilityReason,
    ValidationOutcome,
)
from checkout_engine.models.promo import Promo
from checkout_engine.repositories.coupon_repository import CouponRepository
from checkout_engine.repositories.promo_repository import PromoRepository
from checkout_engine.services.auto_apply import select_auto_apply
from checkout_engine.services.common_cache import SimpleCache, coupon_cache
from checkout_engine.services.discount_calculator import calculate_discount
from checkout_engine.services.eligibility import evaluate_eligibility
from checkout_engine.services.usage_ledger import UsageLedger

logger = logging.getLogger(__name__)


class CouponService:
    """优惠券业务服务"""

    def __init__(
        self,
        coupon_repo: CouponRepository,
        promo_repo: Optional[PromoRepository] = None,
        ledger: Optional[UsageLedger] = None,
        cache: Optional[SimpleCache] = None
    ):
        self.coupon_repo = coupon_repo
        self.promo_repo = promo_repo
        self.ledger = ledger or UsageLedger(coupon_repo, promo_repo)
        self.cache = cache or coupon_cache
        self.cache_prefix = "coupon"

    async def load_discount(self, code: str) -> Optional[Union[Coupon, Promo]]:
        """读取最新记录，不经过缓存"""
        coupon = await self.coupon_repo.get_model_by_code(code)
        if coupon is not None:
            return coupon
        if self.promo_repo is not None:
            return await self.promo_repo.get_model_by_code(code)
        return None

    async def load_rule(self, code: str) -> Optional[DiscountRule]:
        record = await self.load_discount(code)
        return record.to_rule() if record is not None else None

    async def validate(
        self,
        code: str,
        context: RuleContext,
        user_id: Optional[str] = None
    ) -> ValidationOutcome:
        """
        校验优惠码并试算折扣

        资格不满足时返回 valid=False 和具体原因，不抛异常；
        同样的输入在没有新核销的情况下结果不变
        """
        normalized = normalize_code(code)
        if not normalized:
            raise InputValidationError("优惠码不能为空", details={"field": "code"})

        rule = await self.load_rule(normalized)
        if rule is None:
            return ValidationOutcome(code=normalized, valid=False, reason=EligibilityReason.NOT_FOUND)

        result = evaluate_eligibility(rule, context, user_id=user_id)
        if not result.usable:
            return ValidationOutcome(code=normalized, valid=False, reason=result.reason, source=rule.source)

        quote = calculate_discount(rule, context)
        return ValidationOutcome(
            code=normalized,
            valid=True,
            discount=quote.amount,
            source=rule.source,
            applies_to_shipping=quote.applies_to_shipping
        )

    async def quote_for_redemption(
        self,
        code: str,
        context: RuleContext,
        user_id: Optional[str] = None
    ) -> Tuple[DiscountRule, DiscountQuote]:
        """
        读取最新记录重新校验并计算折扣

        次数类原因转换为台账的上限错误，其余原因抛出 EligibilityError
        """
        normalized = normalize_code(code)
        if not normalized:
            raise InputValidationError("优惠码不能为空", details={"field": "code"})

        rule = await self.load_rule(normalized)
        if rule is None:
            raise CouponNotFound(normalized)

        result = evaluate_eligibility(rule, context, user_id=user_id)
        if not result.usable:
            if result.reason == EligibilityReason.USAGE_LIMIT_REACHED:
                raise UsageLimitExceeded(
                    f"优惠码 {normalized} 使用次数已达上限",
                    details={"code": normalized, "usage_limit": rule.usage_limit}
                )
            if result.reason == EligibilityReason.PER_USER_LIMIT_REACHED:
                raise PerUserLimitExceeded(
                    f"用户已达到优惠码 {normalized} 的使用上限",
                    details={"code": normalized, "usage_limit_per_user": rule.usage_limit_per_user}
                )
            raise EligibilityError(result.reason, details={"code": normalized})

        return rule, calculate_discount(rule, context)

    async def record_redemption(
        self,
        rule: DiscountRule,
        user_id: str,
        order_amount: Decimal,
        discount_applied: Decimal,
        order_ref: Optional[str] = None,
        applies_to_shipping: bool = False
    ) -> RedemptionResult:
        """写入台账并清除缓存"""
        snapshot = await self.ledger.record_usage(
            rule.code,
            user_id,
            order_amount,
            discount_applied,
            order_ref=order_ref,
            source=rule.source
        )
        await self._clear_coupon_caches(rule.code)
        return RedemptionResult(
            code=rule.code,
            discount_applied=discount_applied,
            applies_to_shipping=applies_to_shipping,
            usage_snapshot=snapshot
        )

    async def apply_and_record(
        self,
        code: str,
        user_id: str,
        order_amount: Any,
        order_ref: Optional[str] = None,
        context: Optional[RuleContext] = None
    ) -> RedemptionResult:
        """
        重新校验后核销

        未提供购物车上下文时按订单金额构建最小上下文；
        真正的并发保护由台账的条件更新完成
        """
        if not normalize_code(code):
            raise InputValidationError("优惠码不能为空", details={"field": "code"})
        if not user_id:
            raise InputValidationError("核销必须指定用户", details={"field": "user_id"})
        amount = to_money(order_amount, "order_amount")

        if context is None:
            rule = await self.load_rule(code)
            if rule is None:
                raise CouponNotFound(normalize_code(code))
            context = RuleContext.for_amount(amount, currency=rule.currency)

        rule, quote = await self.quote_for_redemption(code, context, user_id=user_id)
        return await self.record_redemption(
            rule,
            user_id,
            amount,
            quote.amount,
            order_ref=order_ref,
            applies_to_shipping=quote.applies_to_shipping
        )

    async def get_auto_apply_candidates(self, tenant_id: Optional[str] = None, use_cache: bool = True) -> List[DiscountRule]:
        """自动应用候选（缓存仅用于推荐，核销时会重新校验）"""
        cache_key = f"{self.cache_prefix}:auto_apply:{tenant_id or 'global'}"

        if use_cache:
            cached = await self.cache.get_models(cache_key, DiscountRule)
            if cached:
                return cached

        rules = [coupon.to_rule() for coupon in await self.coupon_repo.get_auto_apply_candidates(tenant_id)]
        if self.promo_repo is not None:
            rules.extend(promo.to_rule() for promo in await self.promo_repo.get_auto_apply_candidates(tenant_id))

        if use_cache and rules:
            await self.cache.set_models(cache_key, rules, ttl=settings.auto_apply_cache_ttl)
        return rules

    async def get_auto_apply(
        self,
        context: RuleContext,
        user_id: Optional[str] = None,
        use_cache: bool = True
    ) -> AutoApplySelection:
        """为购物车挑选自动应用的优惠"""
        candidates = await self.get_auto_apply_candidates(context.tenant_id, use_cache=use_cache)
        return select_auto_apply(candidates, context, user_id=user_id)

    async def create_coupon(self, coupon_data: CouponCreate) -> Coupon:
        """创建优惠券，买X送Y类型直接拒绝"""
        coupon_data.ensure_supported()

        if await self.coupon_repo.get_by_code(coupon_data.code) is not None:
            raise InputValidationError(
                f"优惠码已存在: {coupon_data.code}",
                details={"field": "code", "code": coupon_data.code}
            )

        await self.coupon_repo.create(coupon_data)
        coupon = await self.coupon_repo.get_model_by_code(coupon_data.code)
        await self.cache.delete_pattern(f"{self.cache_prefix}:auto_apply:*")
        logger.info(f"优惠券创建成功: {coupon.code}")
        return coupon

    async def get_coupon_analytics(self, code: str, use_cache: bool = True) -> Dict[str, Any]:
        """优惠券统计：使用情况、金额、有效期"""
        normalized = normalize_code(code)
        cache_key = f"{self.cache_prefix}:analytics:{normalized}"

        if use_cache:
            cached = await self.cache.get(cache_key)
            if cached:
                return cached

        record = await self.load_discount(normalized)
        if record is None:
            raise CouponNotFound(normalized)

        analytics = self._build_analytics(record)
        if use_cache:
            await self.cache.set(cache_key, analytics, ttl=settings.analytics_cache_ttl)
        return analytics

    async def refresh_statuses(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """刷新缓存状态"""
        updated = await self.ledger.refresh_statuses(now)
        if updated:
            await self.cache.delete_pattern(f"{self.cache_prefix}:*")
        return updated

    def _build_analytics(self, record: Union[Coupon, Promo]) -> Dict[str, Any]:
        now = datetime.now()
        usage_log: List[CouponUsage] = record.usage_log
        times_used = len(usage_log)
        total_discount = sum((entry.discount_applied for entry in usage_log), Decimal("0"))
        total_revenue = sum((entry.order_amount for entry in usage_log), Decimal("0"))
        usage_limit = record.usage_limit

        if isinstance(record, Coupon):
            source, name, currency = DiscountSource.COUPON, record.name, record.currency.value
        else:
            source, name, currency = DiscountSource.PROMO, record.name, record.currency

        days_until_expiration = None
        if record.ends_at is not None:
            seconds = (record.ends_at - now).total_seconds()
            days_until_expiration = int(-(-seconds // 86400)) if seconds > 0 else 0

        return {
            "code": record.code,
            "name": name,
            "source": source.value,
            "usage": {
                "times_used": times_used,
                "usage_limit": usage_limit,
                "remaining_uses": max(0, usage_limit - times_used) if usage_limit else None,
                "usage_percentage": round(min(100.0, times_used / usage_limit * 100), 2) if usage_limit else 0.0,
                "unique_users": len({entry.user_id for entry in usage_log}),
            },
            "financial": {
                "total_discount_given": str(total_discount),
                "total_revenue": str(total_revenue),
                "average_order_value": str(quantize_money(total_revenue / times_used, currency)) if times_used else "0",
                "currency": currency,
            },
            "validity": {
                "status": derive_status(
                    record.is_active, record.starts_at, record.ends_at, usage_limit, times_used, now
                ).value,
                "is_active": record.is_active,
                "starts_at": record.starts_at.isoformat() if record.starts_at else None,
                "ends_at": record.ends_at.isoformat() if record.ends_at else None,
                "days_until_expiration": days_until_expiration,
            },
        }

    async def _clear_coupon_caches(self, code: str):
        """清除优惠券相关缓存"""
        await self.cache.delete(f"{self.cache_prefix}:analytics:{code}")
        await self.cache.delete_pattern(f"{self.cache_prefix}:auto_apply:*")
