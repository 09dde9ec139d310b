"""
OrderService结算流程测试
"""

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock

from checkout_engine.core.exceptions import InputValidationError
from checkout_engine.models.discount import (
    AppliedDiscount,
    ApplicableTo,
    AutoApplySelection,
    DiscountKind,
    DiscountQuote,
)
from checkout_engine.models.order import OrderStatus, RevenueModel, TenantCommercialModel
from checkout_engine.repositories.order_repository import OrderRepository
from checkout_engine.repositories.tenant_repository import TenantRepository
from checkout_engine.services.coupon_service import CouponService
from checkout_engine.services.order_service import OrderService


@pytest.mark.asyncio
class TestOrderService:
    """OrderService结算流程测试类"""

    @pytest.fixture
    def tenant_models(self):
        return {
            "tenant_a": TenantCommercialModel(tenant_id="tenant_a", revenue_model=RevenueModel.MARKUP, rate=Decimal("15")),
            "tenant_b": TenantCommercialModel(tenant_id="tenant_b", revenue_model=RevenueModel.COMMISSION, rate=Decimal("10")),
        }

    @pytest.fixture
    def mock_order_repo(self):
        """模拟OrderRepository"""
        return AsyncMock(spec=OrderRepository)

    @pytest.fixture
    def mock_tenant_repo(self, tenant_models):
        """模拟TenantRepository"""
        repo = AsyncMock(spec=TenantRepository)
        repo.get_commercial_models.return_value = tenant_models
        return repo

    @pytest.fixture
    def mock_coupon_service(self):
        """模拟CouponService"""
        return AsyncMock(spec=CouponService)

    @pytest.fixture
    def order_service(self, mock_order_repo, mock_tenant_repo, mock_coupon_service):
        """创建OrderService实例"""
        return OrderService(mock_order_repo, mock_tenant_repo, mock_coupon_service)

    def _quote(self, amount, applies_to_shipping=False):
        return DiscountQuote(
            amount=Decimal(amount),
            base_amount=Decimal("60000"),
            currency="NGN",
            applies_to_shipping=applies_to_shipping
        )

    async def test_place_order_without_discount(self, order_service, mock_order_repo, mock_coupon_service,
                                                sample_context, sample_lines):
        """测试无优惠结算：分账后保存订单，不产生核销"""
        order = await order_service.place_order("ORD-1", sample_context, sample_lines)

        assert order.order_ref == "ORD-1"
        assert order.user_id == "user_001"
        assert order.subtotal == Decimal("60000")
        assert order.discount_total == Decimal("0")
        assert order.total_amount == Decimal("62500")
        assert order.status == OrderStatus.PENDING

        by_line = {item.item_id: item for item in order.allocation.line_items}
        assert by_line["line_1"].tenant_revenue_share == Decimal("34783")
        assert by_line["line_2"].tenant_revenue_share == Decimal("13500")
        assert by_line["line_3"].platform_commission == Decimal("5000")
        assert order.allocation.order_commission_total == Decimal("11717")

        mock_coupon_service.record_redemption.assert_not_called()
        mock_order_repo.create_order_with_items.assert_called_once_with(order)

    async def test_place_order_with_coupon(self, order_service, mock_order_repo, mock_coupon_service,
                                           make_rule, sample_context, sample_lines):
        """测试优惠码结算：折扣分摊到订单行后再分账，最后核销"""
        rule = make_rule(max_discount_amount=Decimal("5000"))
        mock_coupon_service.quote_for_redemption.return_value = (rule, self._quote("5000"))

        order = await order_service.place_order("ORD-2", sample_context, sample_lines, coupon_code="save10")

        assert order.discount_total == Decimal("5000")
        assert order.total_amount == Decimal("57500")
        assert [item.discount_amount for item in order.allocation.line_items] == [
            Decimal("3333"), Decimal("1250"), Decimal("417")
        ]
        assert all(item.reconstructs_subtotal for item in order.allocation.line_items)
        assert [item.code for item in order.applied_discounts] == ["SAVE10"]

        mock_coupon_service.quote_for_redemption.assert_called_once_with("save10", sample_context, user_id="user_001")
        mock_coupon_service.record_redemption.assert_called_once_with(
            rule,
            "user_001",
            Decimal("60000"),
            Decimal("5000"),
            order_ref="ORD-2",
            applies_to_shipping=False
        )
        mock_order_repo.create_order_with_items.assert_called_once()

    async def test_free_shipping_coupon(self, order_service, mock_coupon_service, make_rule,
                                        sample_context, sample_lines):
        rule = make_rule(code="FREESHIP", kind=DiscountKind.FREE_SHIPPING)
        mock_coupon_service.quote_for_redemption.return_value = (rule, self._quote("2500", applies_to_shipping=True))

        order = await order_service.place_order("ORD-3", sample_context, sample_lines, coupon_code="FREESHIP")

        assert order.discount_total == Decimal("0")
        assert order.shipping_discount == Decimal("2500")
        assert order.total_amount == Decimal("60000")

    async def test_coupon_requires_user(self, order_service, mock_coupon_service, sample_context, sample_lines):
        anonymous = sample_context.model_copy(update={"user": None})

        with pytest.raises(InputValidationError):
            await order_service.place_order("ORD-4", anonymous, sample_lines, coupon_code="SAVE10")

        mock_coupon_service.quote_for_redemption.assert_not_called()

    async def test_anonymous_auto_apply_skipped(self, order_service, mock_coupon_service, sample_context, sample_lines):
        anonymous = sample_context.model_copy(update={"user": None})

        order = await order_service.place_order("ORD-5", anonymous, sample_lines, auto_apply=True)

        assert order.applied_discounts == []
        mock_coupon_service.get_auto_apply.assert_not_called()

    async def test_auto_apply(self, order_service, mock_coupon_service, make_rule, sample_context, sample_lines):
        """测试自动应用的优惠同样分摊并核销"""
        rule = make_rule(code="AUTO5", value=Decimal("5"), auto_apply=True)
        mock_coupon_service.get_auto_apply.return_value = AutoApplySelection(
            applied=[
                AppliedDiscount(
                    code="AUTO5",
                    source=rule.source,
                    amount=Decimal("3000"),
                    priority=0,
                    can_combine_with_others=False
                )
            ],
            total_discount=Decimal("3000")
        )
        mock_coupon_service.load_rule.return_value = rule

        order = await order_service.place_order("ORD-6", sample_context, sample_lines, auto_apply=True)

        assert order.discount_total == Decimal("3000")
        mock_coupon_service.get_auto_apply.assert_called_once_with(sample_context, user_id="user_001", use_cache=False)
        mock_coupon_service.record_redemption.assert_called_once()

    async def test_stacked_auto_apply_with_scoped_rule(self, order_service, mock_coupon_service, make_rule,
                                                       sample_context, sample_lines):
        """全场券与指定商品券叠加时，指定商品券先占用适用行，全场券分摊剩余金额"""
        all_rule = make_rule(
            code="ALLFIX",
            kind=DiscountKind.FIXED_AMOUNT,
            value=Decimal("40000"),
            auto_apply=True,
            can_combine_with_others=True,
            priority=5
        )
        shirt_rule = make_rule(
            code="SHIRT",
            value=Decimal("50"),
            applicable_to=ApplicableTo.SPECIFIC_PRODUCTS,
            included_products=("prod_shirt",),
            auto_apply=True,
            can_combine_with_others=True,
            priority=1
        )
        mock_coupon_service.get_auto_apply.return_value = AutoApplySelection(
            applied=[
                AppliedDiscount(code="ALLFIX", source=all_rule.source, amount=Decimal("40000"),
                                priority=5, can_combine_with_others=True),
                AppliedDiscount(code="SHIRT", source=shirt_rule.source, amount=Decimal("20000"),
                                priority=1, can_combine_with_others=True),
            ],
            total_discount=Decimal("60000")
        )
        rules = {"ALLFIX": all_rule, "SHIRT": shirt_rule}
        mock_coupon_service.load_rule.side_effect = lambda code: rules[code]

        order = await order_service.place_order("ORD-7", sample_context, sample_lines, auto_apply=True)

        assert order.discount_total == Decimal("60000")
        assert [item.discount_amount for item in order.allocation.line_items] == [
            Decimal("40000"), Decimal("15000"), Decimal("5000")
        ]
        assert all(item.reconstructs_subtotal for item in order.allocation.line_items)
        assert [item.code for item in order.applied_discounts] == ["ALLFIX", "SHIRT"]
        assert mock_coupon_service.record_redemption.await_count == 2

    async def test_scoped_discount_larger_than_its_lines_spills(self, order_service, mock_coupon_service,
                                                               make_rule, sample_context, sample_lines):
        """指定商品券金额超过适用行小计时，超出部分分摊到其他订单行"""
        rule = make_rule(
            kind=DiscountKind.FIXED_AMOUNT,
            value=Decimal("20000"),
            applicable_to=ApplicableTo.SPECIFIC_PRODUCTS,
            included_products=("prod_shoe",)
        )
        mock_coupon_service.quote_for_redemption.return_value = (rule, self._quote("20000"))

        order = await order_service.place_order("ORD-8", sample_context, sample_lines, coupon_code="save10")

        assert order.discount_total == Decimal("20000")
        assert [item.discount_amount for item in order.allocation.line_items] == [
            Decimal("4444"), Decimal("15000"), Decimal("556")
        ]

    async def test_subtotal_mismatch(self, order_service, sample_context, sample_lines):
        context = sample_context.model_copy(update={"subtotal": Decimal("59999")})
        with pytest.raises(InputValidationError):
            await order_service.place_order("ORD-7", context, sample_lines)

    async def test_empty_order(self, order_service, sample_context, sample_lines):
        with pytest.raises(InputValidationError):
            await order_service.place_order("", sample_context, sample_lines)
        with pytest.raises(InputValidationError):
            await order_service.place_order("ORD-8", sample_context, [])

    async def test_failed_allocation_records_nothing(self, order_service, mock_order_repo, mock_tenant_repo,
                                                     mock_coupon_service, make_rule, sample_context, sample_lines):
        """分账失败时不核销也不保存订单"""
        mock_tenant_repo.get_commercial_models.return_value = {
            "tenant_a": TenantCommercialModel(tenant_id="tenant_a", revenue_model=RevenueModel.COMMISSION, rate=Decimal("120")),
        }
        mock_coupon_service.quote_for_redemption.return_value = (make_rule(), self._quote("5000"))

        with pytest.raises(InputValidationError):
            await order_service.place_order("ORD-9", sample_context, sample_lines, coupon_code="SAVE10")

        mock_coupon_service.record_redemption.assert_not_called()
        mock_order_repo.create_order_with_items.assert_not_called()

    async def test_allocate_revenue_reads_tenant_models(self, order_service, mock_tenant_repo, sample_lines):
        allocation = await order_service.allocate_revenue(sample_lines, currency="NGN")

        assert allocation.subtotal == Decimal("60000")
        mock_tenant_repo.get_commercial_models.assert_called_once()

    async def test_allocate_revenue_with_explicit_models(self, order_service, mock_tenant_repo, tenant_models, sample_lines):
        await order_service.allocate_revenue(sample_lines, tenant_models, currency="NGN")
        mock_tenant_repo.get_commercial_models.assert_not_called()
