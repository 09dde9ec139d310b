"""
订单业务服务层
结算流程：校验优惠 → 计算折扣 → 分摊到订单行 → 按商户分账快照拆分 → 核销 → 保存订单
"""

from typing import Dict, List, Optional, Tuple

import structlog

from checkout_engine.core.exceptions import InputValidationError
from checkout_engine.core.money import ZERO
from checkout_engine.models.context import RuleContext
from checkout_engine.models.discount import AppliedDiscount, DiscountQuote, DiscountRule
from checkout_engine.models.order import (
    OrderLineInput,
    OrderStatus,
    PlacedOrder,
    RevenueAllocation,
    TenantCommercialModel,
)
from checkout_engine.repositories.order_repository import OrderRepository
from checkout_engine.repositories.tenant_repository import TenantRepository
from checkout_engine.services import revenue_allocator
from checkout_engine.services.coupon_service import CouponService
from checkout_engine.services.eligibility import applicable_items, _needs_applicability_check

logger = structlog.get_logger()


class OrderService:
    """订单业务服务"""

    def __init__(
        self,
        order_repo: OrderRepository,
        tenant_repo: TenantRepository,
        coupon_service: CouponService
    ):
        self.order_repo = order_repo
        self.tenant_repo = tenant_repo
        self.coupon_service = coupon_service

    async def allocate_revenue(
        self,
        line_items: List[OrderLineInput],
        tenant_models: Optional[Dict[str, TenantCommercialModel]] = None,
        currency: Optional[str] = None
    ) -> RevenueAllocation:
        """未提供分账模式时从商户表读取快照"""
        if tenant_models is None:
            tenant_models = await self.tenant_repo.get_commercial_models(
                line.tenant_id for line in line_items
            )
        return revenue_allocator.allocate_revenue(line_items, tenant_models, currency)

    async def _collect_discounts(
        self,
        order_ref: str,
        context: RuleContext,
        coupon_code: Optional[str],
        auto_apply: bool
    ) -> List[Tuple[DiscountRule, DiscountQuote]]:
        """确定本单要核销的优惠及其金额"""
        user_id = context.user_id
        if coupon_code:
            if not user_id:
                raise InputValidationError("使用优惠码需要登录用户", details={"field": "user_id"})
            return [await self.coupon_service.quote_for_redemption(coupon_code, context, user_id=user_id)]

        if not auto_apply:
            return []
        if not user_id:
            logger.info("匿名结算跳过自动应用优惠", order_ref=order_ref)
            return []

        selection = await self.coupon_service.get_auto_apply(context, user_id=user_id, use_cache=False)
        discounts = []
        for applied in selection.applied:
            rule = await self.coupon_service.load_rule(applied.code)
            if rule is None:
                continue
            discounts.append(
                (
                    rule,
                    DiscountQuote(
                        amount=applied.amount,
                        base_amount=context.subtotal,
                        currency=context.currency,
                        applies_to_shipping=applied.applies_to_shipping
                    )
                )
            )
        return discounts

    def _applicable_line_ids(self, rule: DiscountRule, context: RuleContext) -> Optional[List[str]]:
        if not context.items or not _needs_applicability_check(rule):
            return None
        return [item.item_id for item in applicable_items(rule, context)]

    async def place_order(
        self,
        order_ref: str,
        context: RuleContext,
        line_items: List[OrderLineInput],
        coupon_code: Optional[str] = None,
        auto_apply: bool = False
    ) -> PlacedOrder:
        """
        完成结算并保存订单

        分账在核销之前完成，分账校验失败时不会产生核销记录，
        也不会保存订单
        """
        if not order_ref:
            raise InputValidationError("订单号不能为空", details={"field": "order_ref"})
        if not line_items:
            raise InputValidationError("订单行不能为空", details={"field": "line_items"})

        subtotal = sum((line.item_subtotal for line in line_items), ZERO)
        if subtotal != context.subtotal:
            raise InputValidationError(
                "订单行合计与购物车小计不一致",
                details={"subtotal": str(context.subtotal), "line_total": str(subtotal)}
            )

        discounts = await self._collect_discounts(order_ref, context, coupon_code, auto_apply)

        shipping_discount = ZERO
        line_discounts = []
        applied: List[AppliedDiscount] = []
        for rule, quote in discounts:
            if quote.applies_to_shipping:
                shipping_discount += quote.amount
            else:
                line_discounts.append((quote.amount, self._applicable_line_ids(rule, context)))
            applied.append(
                AppliedDiscount(
                    code=rule.code,
                    source=rule.source,
                    amount=quote.amount,
                    priority=rule.priority,
                    can_combine_with_others=rule.can_combine_with_others,
                    applies_to_shipping=quote.applies_to_shipping
                )
            )
        shipping_discount = min(shipping_discount, context.shipping_fee)
        lines = revenue_allocator.distribute_discounts(line_items, line_discounts, context.currency)

        allocation = await self.allocate_revenue(lines, currency=context.currency)

        for rule, quote in discounts:
            await self.coupon_service.record_redemption(
                rule,
                context.user_id,
                subtotal,
                quote.amount,
                order_ref=order_ref,
                applies_to_shipping=quote.applies_to_shipping
            )

        order = PlacedOrder(
            order_ref=order_ref,
            user_id=context.user_id,
            currency=allocation.currency,
            subtotal=allocation.subtotal,
            discount_total=allocation.discount_total,
            shipping_fee=context.shipping_fee,
            shipping_discount=shipping_discount,
            total_amount=allocation.subtotal - allocation.discount_total + context.shipping_fee - shipping_discount,
            applied_discounts=applied,
            allocation=allocation,
            status=OrderStatus.PENDING
        )
        await self.order_repo.create_order_with_items(order)

        logger.info(
            "订单已生成",
            order_ref=order_ref,
            user_id=context.user_id,
            subtotal=str(order.subtotal),
            discount_total=str(order.discount_total),
            platform_commission_total=str(allocation.order_commission_total),
            discounts=[item.code for item in applied],
        )
        return order
