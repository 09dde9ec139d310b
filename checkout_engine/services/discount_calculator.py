"""
折扣金额计算
纯函数，只对已通过资格校验的规则调用。
适用商品只决定券能否使用以及折扣分摊到哪些订单行，
折扣金额按购物车小计计算，截断到封顶金额和购物车小计，
最后只做一次四舍五入
"""

from decimal import Decimal

from checkout_engine.core.exceptions import UnsupportedDiscountError
from checkout_engine.core.money import HUNDRED, ZERO, quantize_not_above
from checkout_engine.models.context import RuleContext
from checkout_engine.models.discount import DiscountKind, DiscountQuote, DiscountRule


def calculate_discount(rule: DiscountRule, context: RuleContext) -> DiscountQuote:
    """计算折扣金额"""
    base = context.subtotal
    applies_to_shipping = False

    if rule.kind == DiscountKind.PERCENTAGE:
        raw = base * rule.value / HUNDRED
    elif rule.kind == DiscountKind.FIXED_AMOUNT:
        raw = min(rule.value, base)
    elif rule.kind == DiscountKind.FREE_SHIPPING:
        raw = context.shipping_fee
        applies_to_shipping = True
    else:
        raise UnsupportedDiscountError(
            f"不支持的折扣类型: {rule.kind.value}",
            details={"code": rule.code, "discount_kind": rule.kind.value},
        )

    # 上限：封顶金额与购物车小计取小
    limit = context.subtotal
    if rule.max_discount_amount is not None:
        limit = min(limit, rule.max_discount_amount)
    raw = max(ZERO, min(raw, limit))

    return DiscountQuote(
        amount=quantize_not_above(raw, limit, context.currency),
        base_amount=base,
        currency=context.currency,
        applies_to_shipping=applies_to_shipping,
    )
