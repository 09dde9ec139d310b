"""
订单分账计算
下单时对订单行做一次性拆分：商户收入四舍五入到最小结算单位，
平台佣金取余数，保证每一行 商户收入 + 平台佣金 + 行折扣 == 行小计
"""

from decimal import Decimal, ROUND_DOWN
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import structlog

from checkout_engine.core.config import settings
from checkout_engine.core.exceptions import ConsistencyError, InputValidationError
from checkout_engine.core.money import HUNDRED, ZERO, minor_unit, quantize_money
from checkout_engine.models.order import (
    PLATFORM_BUCKET,
    OrderLineInput,
    OrderLineItem,
    RevenueAllocation,
    RevenueModel,
    TenantCommercialModel,
    TenantRevenueBreakdown,
)

logger = structlog.get_logger()


def _fallback_model(tenant_id: str) -> TenantCommercialModel:
    logger.warning(
        "商户缺少分账配置，使用平台默认加价率",
        tenant_id=tenant_id,
        rate=settings.default_platform_markup_percentage,
    )
    return TenantCommercialModel(
        tenant_id=tenant_id,
        revenue_model=RevenueModel.MARKUP,
        rate=Decimal(str(settings.default_platform_markup_percentage)),
    )


def split_line(net_amount: Decimal, revenue_model: RevenueModel, rate: Decimal, currency: str) -> Decimal:
    """返回商户收入（已取整），佣金由调用方用余数计算"""
    if revenue_model == RevenueModel.PLATFORM_OWNED:
        return ZERO
    if revenue_model == RevenueModel.COMMISSION:
        if rate > HUNDRED:
            raise InputValidationError("佣金率不能超过100%", details={"rate": str(rate)})
        return quantize_money(net_amount - net_amount * rate / HUNDRED, currency)
    # markup 与 platform_markup：售价已包含平台加价
    return quantize_money(net_amount / (1 + rate / HUNDRED), currency)


def allocate_revenue(
    line_items: Iterable[OrderLineInput],
    tenant_models: Dict[str, TenantCommercialModel],
    currency: Optional[str] = None,
) -> RevenueAllocation:
    """
    计算订单分账

    Args:
        line_items: 订单行（顾客实付单价、行折扣、商户）
        tenant_models: 商户分账模式快照
        currency: 结算币种

    Returns:
        每行拆分结果、平台佣金合计、按商户汇总
    """
    currency = (currency or settings.default_currency).upper()
    allocated: List[OrderLineItem] = []
    breakdown: Dict[str, TenantRevenueBreakdown] = {}

    for line in line_items:
        item_subtotal = line.item_subtotal
        if line.discount_amount > item_subtotal:
            raise InputValidationError(
                "行折扣不能超过行小计",
                details={"item_id": line.item_id, "discount_amount": str(line.discount_amount)},
            )
        net_amount = item_subtotal - line.discount_amount

        if line.tenant_id:
            model = tenant_models.get(line.tenant_id) or _fallback_model(line.tenant_id)
            revenue_model, rate = model.revenue_model, model.rate
        else:
            revenue_model, rate = RevenueModel.PLATFORM_OWNED, HUNDRED

        tenant_share = split_line(net_amount, revenue_model, rate, currency)
        commission = net_amount - tenant_share

        item = OrderLineItem(
            item_id=line.item_id,
            product_id=line.product_id,
            variant_id=line.variant_id,
            size_id=line.size_id,
            tenant_id=line.tenant_id,
            quantity=line.quantity,
            price_at_purchase=line.unit_price,
            item_subtotal=item_subtotal,
            discount_amount=line.discount_amount,
            tenant_revenue_share=tenant_share,
            platform_commission=commission,
            revenue_model=revenue_model,
            rate=rate,
        )
        if not item.reconstructs_subtotal:
            logger.error(
                "订单行分账不平",
                item_id=item.item_id,
                item_subtotal=str(item.item_subtotal),
                tenant_revenue_share=str(item.tenant_revenue_share),
                platform_commission=str(item.platform_commission),
                discount_amount=str(item.discount_amount),
            )
            raise ConsistencyError("订单分账校验失败", details={"item_id": item.item_id})
        allocated.append(item)

        bucket = line.tenant_id or PLATFORM_BUCKET
        summary = breakdown.setdefault(bucket, TenantRevenueBreakdown(tenant_id=line.tenant_id))
        summary.item_count += line.quantity
        summary.customer_total += item_subtotal
        summary.discount_total += line.discount_amount
        summary.tenant_earnings += tenant_share
        summary.platform_commission += commission

    subtotal = sum((item.item_subtotal for item in allocated), ZERO)
    discount_total = sum((item.discount_amount for item in allocated), ZERO)
    tenant_total = sum((item.tenant_revenue_share for item in allocated), ZERO)
    commission_total = sum((item.platform_commission for item in allocated), ZERO)

    if subtotal != tenant_total + commission_total + discount_total:
        logger.error(
            "订单分账合计不平",
            subtotal=str(subtotal),
            tenant_revenue_total=str(tenant_total),
            platform_commission_total=str(commission_total),
            discount_total=str(discount_total),
        )
        raise ConsistencyError("订单分账校验失败", details={"scope": "order"})

    return RevenueAllocation(
        currency=currency,
        line_items=allocated,
        order_commission_total=commission_total,
        per_tenant_breakdown=breakdown,
        subtotal=subtotal,
        discount_total=discount_total,
        tenant_revenue_total=tenant_total,
    )


def distribute_discount(
    line_items: List[OrderLineInput],
    total_discount: Decimal,
    applicable_item_ids: Optional[Iterable[str]] = None,
    currency: Optional[str] = None,
) -> List[OrderLineInput]:
    """
    把订单级折扣按行剩余金额比例分摊到适用订单行

    先按比例向下取整到最小单位，剩余的单位按小数部分从大到小补足，
    分摊合计精确等于订单折扣，且任何一行折扣都不超过行小计
    """
    total_discount = Decimal(total_discount)
    if total_discount <= ZERO:
        return list(line_items)

    unit = minor_unit(currency)
    if total_discount != total_discount.quantize(unit):
        raise InputValidationError("订单折扣未按结算精度取整", details={"total_discount": str(total_discount)})

    allowed = set(applicable_item_ids) if applicable_item_ids is not None else None
    targets = [
        index for index, line in enumerate(line_items)
        if (allowed is None or line.item_id in allowed) and line.item_subtotal > line.discount_amount
    ]
    capacity = {index: line_items[index].item_subtotal - line_items[index].discount_amount for index in targets}
    base = sum(capacity.values(), ZERO)
    if total_discount > base:
        raise InputValidationError(
            "订单折扣超过适用商品金额",
            details={"total_discount": str(total_discount), "applicable_total": str(base)},
        )

    shares: Dict[int, Decimal] = {}
    remainders = []
    for index in targets:
        exact = total_discount * capacity[index] / base
        floored = exact.quantize(unit, rounding=ROUND_DOWN)
        shares[index] = floored
        remainders.append((exact - floored, index))

    leftover = total_discount - sum(shares.values(), ZERO)
    remainders.sort(key=lambda pair: (-pair[0], pair[1]))
    for _, index in remainders:
        if leftover <= ZERO:
            break
        if shares[index] + unit <= capacity[index]:
            shares[index] += unit
            leftover -= unit

    if leftover != ZERO:
        logger.error("订单折扣分摊后仍有余额", leftover=str(leftover), total_discount=str(total_discount))
        raise ConsistencyError("订单折扣分摊失败", details={"leftover": str(leftover)})

    result = list(line_items)
    for index, share in shares.items():
        line = result[index]
        result[index] = line.model_copy(update={"discount_amount": line.discount_amount + share})
    return result


def _remaining_capacity(line_items: List[OrderLineInput], allowed: Optional[Set[str]]) -> Decimal:
    return sum(
        (
            max(line.item_subtotal - line.discount_amount, ZERO)
            for line in line_items
            if allowed is None or line.item_id in allowed
        ),
        ZERO,
    )


def distribute_discounts(
    line_items: List[OrderLineInput],
    discounts: Sequence[Tuple[Decimal, Optional[Iterable[str]]]],
    currency: Optional[str] = None,
) -> List[OrderLineInput]:
    """
    叠加折扣一起分摊

    每个折扣是 (金额, 适用订单行ID)，适用行为None表示全场。
    限定商品的折扣先分摊，全场折扣最后分摊到剩余金额上；
    适用行放不下的部分溢出到其他订单行。
    折扣合计不超过订单小计时一定能分摊完
    """
    pending = [
        (Decimal(amount), set(item_ids) if item_ids is not None else None)
        for amount, item_ids in discounts
    ]
    pending.sort(key=lambda entry: entry[1] is None)

    lines = list(line_items)
    for amount, allowed in pending:
        if amount <= ZERO:
            continue
        scoped = amount if allowed is None else min(amount, _remaining_capacity(lines, allowed))
        lines = distribute_discount(lines, scoped, allowed, currency)
        if amount > scoped:
            logger.info(
                "限定商品折扣超过适用行金额，剩余部分分摊到其他订单行",
                amount=str(amount),
                overflow=str(amount - scoped),
            )
            lines = distribute_discount(lines, amount - scoped, None, currency)
    return lines
