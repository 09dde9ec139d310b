"""
优惠使用台账
核销是唯一的共享可变操作：按读取时的使用次数做条件更新，
冲突时重新读取重试，保证并发核销不会突破总次数和单用户次数上限
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Protocol, Tuple

import structlog

from checkout_engine.core.config import settings
from checkout_engine.core.exceptions import (
    ConflictError,
    ConsistencyError,
    CouponNotFound,
    InputValidationError,
    PerUserLimitExceeded,
    UsageLimitExceeded,
)
from checkout_engine.core.money import quantize_money, to_money
from checkout_engine.models.coupon import (
    CouponStatus,
    CouponUsage,
    LedgerState,
    UsageSnapshot,
    normalize_code,
)
from checkout_engine.models.discount import DiscountSource

logger = structlog.get_logger()


class LedgerStore(Protocol):
    """台账存储需要提供的原子条件更新接口"""

    source: DiscountSource

    async def get_ledger_state(self, code: str) -> Optional[LedgerState]: ...

    async def list_ledger_states(self) -> List[LedgerState]: ...

    async def count_user_usage(self, rule_id: str, user_id: str) -> int: ...

    async def try_record_usage(self, state: LedgerState, entry: CouponUsage, new_status: CouponStatus) -> bool: ...

    async def usage_totals(self, rule_id: str) -> Tuple[int, Decimal, Decimal]: ...

    async def update_status(self, rule_id: str, status: CouponStatus) -> bool: ...


class UsageLedger:
    """优惠券/促销码使用台账"""

    def __init__(self, coupon_store: LedgerStore, promo_store: Optional[LedgerStore] = None, max_retries: Optional[int] = None):
        self.stores: Dict[DiscountSource, LedgerStore] = {DiscountSource.COUPON: coupon_store}
        if promo_store is not None:
            self.stores[DiscountSource.PROMO] = promo_store
        self.max_retries = max_retries or settings.ledger_max_retries

    async def _resolve(self, code: str, source: Optional[DiscountSource]) -> Tuple[LedgerStore, LedgerState]:
        """按来源查找；未指定来源时先查优惠券再查促销码"""
        if source is not None:
            candidates = [self.stores[source]] if source in self.stores else []
        else:
            candidates = list(self.stores.values())
        for store in candidates:
            state = await store.get_ledger_state(code)
            if state is not None:
                return store, state
        raise CouponNotFound(code)

    async def record_usage(
        self,
        code: str,
        user_id: str,
        order_amount,
        discount_applied,
        order_ref: Optional[str] = None,
        source: Optional[DiscountSource] = None,
        now: Optional[datetime] = None,
    ) -> UsageSnapshot:
        """
        记录一次核销

        每轮重试都重新读取计数并重新检查上限；
        上限类错误直接终止，不做重试
        """
        code = normalize_code(code)
        if not code:
            raise InputValidationError("优惠码不能为空", details={"field": "code"})
        if not user_id:
            raise InputValidationError("核销必须指定用户", details={"field": "user_id"})
        order_amount = to_money(order_amount, "order_amount")
        discount_applied = to_money(discount_applied, "discount_applied")

        for attempt in range(1, self.max_retries + 1):
            store, state = await self._resolve(code, source)

            if state.usage_limit and state.times_used >= state.usage_limit:
                logger.info("核销被拒绝：总次数已用完", code=code, user_id=user_id, times_used=state.times_used)
                raise UsageLimitExceeded(
                    f"优惠码 {code} 使用次数已达上限",
                    details={"code": code, "usage_limit": state.usage_limit},
                )

            user_times_used = 0
            if state.usage_limit_per_user:
                user_times_used = await store.count_user_usage(state.rule_id, user_id)
                if user_times_used >= state.usage_limit_per_user:
                    logger.info("核销被拒绝：用户次数已用完", code=code, user_id=user_id, user_times_used=user_times_used)
                    raise PerUserLimitExceeded(
                        f"用户已达到优惠码 {code} 的使用上限",
                        details={"code": code, "usage_limit_per_user": state.usage_limit_per_user},
                    )

            used_at = now or datetime.now()
            entry = CouponUsage(
                user_id=user_id,
                used_at=used_at,
                order_amount=order_amount,
                discount_applied=discount_applied,
                order_ref=order_ref,
            )
            times_used = state.times_used + 1
            new_status = state.derived_status(used_at, times_used=times_used)

            if await store.try_record_usage(state, entry, new_status):
                total_revenue = state.total_revenue + order_amount
                logger.info(
                    "核销成功",
                    code=code,
                    source=store.source.value,
                    user_id=user_id,
                    order_ref=order_ref,
                    discount_applied=str(discount_applied),
                    times_used=times_used,
                    attempt=attempt,
                )
                return UsageSnapshot(
                    code=code,
                    source=store.source,
                    rule_id=state.rule_id,
                    times_used=times_used,
                    usage_limit=state.usage_limit,
                    remaining_uses=max(0, state.usage_limit - times_used) if state.usage_limit else None,
                    user_times_used=user_times_used + 1,
                    total_discount_given=state.total_discount_given + discount_applied,
                    total_revenue=total_revenue,
                    average_order_value=quantize_money(total_revenue / times_used, state.currency),
                    status=new_status,
                )

            logger.warning("核销并发冲突，重新读取后重试", code=code, user_id=user_id, attempt=attempt)

        logger.error("核销重试次数耗尽", code=code, user_id=user_id, max_retries=self.max_retries)
        raise ConflictError(
            "优惠码正被并发使用，请稍后重试",
            details={"code": code, "attempts": self.max_retries},
        )

    async def refresh_statuses(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        状态对账任务

        重新推导每张券的状态，缓存值不同时写回；
        返回按新状态统计的更新数量
        """
        now = now or datetime.now()
        updated: Dict[str, int] = {}
        for store in self.stores.values():
            for state in await store.list_ledger_states():
                status = state.derived_status(now)
                if status == state.status:
                    continue
                if await store.update_status(state.rule_id, status):
                    updated[status.value] = updated.get(status.value, 0) + 1
                    logger.info(
                        "优惠状态已刷新",
                        code=state.code,
                        source=store.source.value,
                        old_status=state.status.value,
                        new_status=status.value,
                    )
        return updated

    async def verify_counters(self, code: str, source: Optional[DiscountSource] = None) -> LedgerState:
        """用使用记录重新汇总计数并与物化列比对"""
        store, state = await self._resolve(normalize_code(code), source)
        count, discount_total, revenue_total = await store.usage_totals(state.rule_id)

        if (
            count != state.times_used
            or discount_total != state.total_discount_given
            or revenue_total != state.total_revenue
        ):
            logger.error(
                "优惠使用统计与使用记录不一致",
                code=state.code,
                source=store.source.value,
                stored_times_used=state.times_used,
                log_times_used=count,
                stored_discount=str(state.total_discount_given),
                log_discount=str(discount_total),
                stored_revenue=str(state.total_revenue),
                log_revenue=str(revenue_total),
            )
            raise ConsistencyError(
                "优惠使用统计不一致",
                details={"code": state.code, "source": store.source.value},
            )
        return state
