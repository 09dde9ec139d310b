"""
自动应用优惠选择
从标记为自动应用的候选规则中挑选对用户最有利的组合
"""

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

import structlog

from checkout_engine.core.exceptions import UnsupportedDiscountError
from checkout_engine.core.money import ZERO
from checkout_engine.models.context import RuleContext
from checkout_engine.models.discount import (
    AppliedDiscount,
    AutoApplySelection,
    DiscountRule,
)
from checkout_engine.services.discount_calculator import calculate_discount
from checkout_engine.services.eligibility import evaluate_eligibility

logger = structlog.get_logger()


def _in_tenant_scope(rule: DiscountRule, context: RuleContext) -> bool:
    if rule.is_global or not rule.tenant_id:
        return True
    return rule.tenant_id == context.tenant_id


def _rank_key(entry: Tuple[DiscountRule, AppliedDiscount]):
    rule, applied = entry
    return (rule.can_combine_with_others, rule.priority, applied.amount)


def select_auto_apply(
    candidates: Iterable[DiscountRule],
    context: RuleContext,
    user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AutoApplySelection:
    """
    选择自动应用的优惠

    排序规则：可叠加优先、优先级高优先、折扣金额大优先。
    排第一的不可叠加时单独使用；否则依次累加可叠加的优惠，
    遇到不可叠加的即停止，总折扣不超过购物车小计
    """
    scored: List[Tuple[DiscountRule, AppliedDiscount]] = []
    for rule in candidates:
        if not rule.auto_apply or not _in_tenant_scope(rule, context):
            continue
        if not evaluate_eligibility(rule, context, user_id=user_id, now=now).usable:
            continue
        try:
            quote = calculate_discount(rule, context)
        except UnsupportedDiscountError:
            logger.warning("跳过不支持的自动应用优惠", code=rule.code, kind=rule.kind.value)
            continue
        if quote.amount <= ZERO:
            continue
        scored.append(
            (
                rule,
                AppliedDiscount(
                    code=rule.code,
                    source=rule.source,
                    amount=quote.amount,
                    priority=rule.priority,
                    can_combine_with_others=rule.can_combine_with_others,
                    applies_to_shipping=quote.applies_to_shipping,
                ),
            )
        )

    if not scored:
        return AutoApplySelection()

    scored.sort(key=_rank_key, reverse=True)
    top_rule, top_applied = scored[0]
    if not top_rule.can_combine_with_others:
        return AutoApplySelection(applied=[top_applied], total_discount=top_applied.amount)

    applied: List[AppliedDiscount] = []
    total = ZERO
    for rule, entry in scored:
        if not rule.can_combine_with_others:
            break
        remaining = context.subtotal - total
        if remaining <= ZERO:
            break
        if entry.amount > remaining:
            # 最后一张券吸收超出部分
            entry = entry.model_copy(update={"amount": remaining})
        applied.append(entry)
        total += entry.amount

    return AutoApplySelection(applied=applied, total_discount=total)
