"""
自动应用优惠选择测试
"""

from decimal import Decimal

from checkout_engine.models.discount import DiscountKind
from checkout_engine.services.auto_apply import select_auto_apply


class TestSelectAutoApply:
    """自动应用选择测试"""

    def test_no_candidates(self, sample_context):
        selection = select_auto_apply([], sample_context)
        assert selection.applied == []
        assert selection.total_discount == Decimal("0")

    def test_skips_rules_not_marked_auto_apply(self, make_rule, sample_context):
        selection = select_auto_apply([make_rule(auto_apply=False)], sample_context)
        assert selection.applied == []

    def test_combinable_rules_stack_until_first_non_combinable(self, make_rule, sample_context):
        """可叠加的券依次累加，遇到不可叠加的停止"""
        candidates = [
            make_rule(rule_id="a", code="BIGSALE", auto_apply=True, priority=1),
            make_rule(
                rule_id="b", code="STACK1000", kind=DiscountKind.FIXED_AMOUNT, value=Decimal("1000"),
                auto_apply=True, can_combine_with_others=True, priority=5
            ),
            make_rule(
                rule_id="c", code="STACK5", value=Decimal("5"),
                auto_apply=True, can_combine_with_others=True, priority=3
            ),
        ]

        selection = select_auto_apply(candidates, sample_context)

        assert selection.codes == ["STACK1000", "STACK5"]
        assert selection.total_discount == Decimal("4000")

    def test_non_combinable_top_candidate_used_alone(self, make_rule, sample_context):
        candidates = [
            make_rule(rule_id="a", code="TEN", auto_apply=True, priority=1),
            make_rule(
                rule_id="b", code="FLAT", kind=DiscountKind.FIXED_AMOUNT, value=Decimal("1000"),
                auto_apply=True, priority=2
            ),
        ]

        selection = select_auto_apply(candidates, sample_context)

        assert selection.codes == ["FLAT"]
        assert selection.total_discount == Decimal("1000")

    def test_same_priority_prefers_larger_discount(self, make_rule, sample_context):
        candidates = [
            make_rule(rule_id="a", code="FIVE", value=Decimal("5"), auto_apply=True),
            make_rule(rule_id="b", code="TEN", value=Decimal("10"), auto_apply=True),
        ]
        assert select_auto_apply(candidates, sample_context).codes == ["TEN"]

    def test_stacked_total_trimmed_to_subtotal(self, make_rule, sample_context):
        """累加总额不超过购物车小计，最后一张券吸收超出部分"""
        candidates = [
            make_rule(
                rule_id="a", code="BIG", kind=DiscountKind.FIXED_AMOUNT, value=Decimal("50000"),
                auto_apply=True, can_combine_with_others=True, priority=2
            ),
            make_rule(
                rule_id="b", code="SMALL", kind=DiscountKind.FIXED_AMOUNT, value=Decimal("20000"),
                auto_apply=True, can_combine_with_others=True, priority=1
            ),
        ]

        selection = select_auto_apply(candidates, sample_context)

        assert selection.codes == ["BIG", "SMALL"]
        assert [item.amount for item in selection.applied] == [Decimal("50000"), Decimal("10000")]
        assert selection.total_discount == sample_context.subtotal

    def test_ineligible_and_unsupported_candidates_skipped(self, make_rule, sample_context):
        candidates = [
            make_rule(rule_id="a", code="OLD", auto_apply=True, is_active=False, priority=9),
            make_rule(rule_id="b", code="BOGO", kind=DiscountKind.BUY_X_GET_Y, auto_apply=True, priority=9),
            make_rule(rule_id="c", code="OK", auto_apply=True),
        ]
        assert select_auto_apply(candidates, sample_context).codes == ["OK"]

    def test_zero_amount_candidate_skipped(self, make_rule, sample_context):
        """运费为0时免运费券不参与自动应用"""
        context = sample_context.model_copy(update={"shipping_fee": Decimal("0")})
        candidates = [make_rule(code="FREESHIP", kind=DiscountKind.FREE_SHIPPING, auto_apply=True)]
        assert select_auto_apply(candidates, context).applied == []

    def test_other_tenant_rules_ignored(self, make_rule, sample_context):
        context = sample_context.model_copy(update={"tenant_id": "tenant_a"})
        candidates = [
            make_rule(rule_id="a", code="TENANTB", auto_apply=True, tenant_id="tenant_b", priority=5),
            make_rule(rule_id="b", code="TENANTA", auto_apply=True, tenant_id="tenant_a", value=Decimal("5")),
        ]
        assert select_auto_apply(candidates, context).codes == ["TENANTA"]

    def test_free_shipping_flag_carried(self, make_rule, sample_context):
        candidates = [make_rule(code="FREESHIP", kind=DiscountKind.FREE_SHIPPING, auto_apply=True)]
        selection = select_auto_apply(candidates, sample_context)
        assert selection.applied[0].applies_to_shipping is True
        assert selection.total_discount == Decimal("2500")
