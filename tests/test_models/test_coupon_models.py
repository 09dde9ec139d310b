"""
优惠券/促销码模型测试
"""

import pytest
from decimal import Decimal
from datetime import datetime, timedelta
from pydantic import ValidationError

from checkout_engine.core.exceptions import UnsupportedDiscountError
from checkout_engine.models.coupon import (
    Coupon,
    CouponCreate,
    CouponStatus,
    CouponUsage,
    derive_status,
    normalize_code,
)
from checkout_engine.models.discount import DiscountKind, DiscountSource, UserRole
from checkout_engine.models.order import RevenueModel, TenantCommercialModel
from checkout_engine.models.promo import Promo, PromoType, PromoUserType


NOW = datetime(2026, 3, 1, 12, 0, 0)


def _coupon(**overrides) -> Coupon:
    data = {
        "coupon_id": "coupon_001",
        "code": "save10",
        "name": "全场九折",
        "discount_kind": DiscountKind.PERCENTAGE,
        "discount_value": Decimal("10"),
        "starts_at": NOW - timedelta(days=1),
        "ends_at": NOW + timedelta(days=10),
    }
    data.update(overrides)
    return Coupon(**data)


class TestDeriveStatus:
    """状态推导顺序测试"""

    def test_inactive_wins_over_everything(self):
        """停用优先于过期和用完"""
        status = derive_status(False, NOW + timedelta(days=1), NOW - timedelta(days=1), 1, 5, NOW)
        assert status == CouponStatus.INACTIVE

    def test_expired_before_depleted(self):
        status = derive_status(True, None, NOW - timedelta(seconds=1), 1, 1, NOW)
        assert status == CouponStatus.EXPIRED

    def test_depleted_before_scheduled(self):
        status = derive_status(True, NOW + timedelta(days=1), None, 2, 2, NOW)
        assert status == CouponStatus.DEPLETED

    def test_scheduled(self):
        status = derive_status(True, NOW + timedelta(days=1), NOW + timedelta(days=2), None, 0, NOW)
        assert status == CouponStatus.SCHEDULED

    def test_active(self):
        status = derive_status(True, NOW - timedelta(days=1), NOW + timedelta(days=1), 10, 3, NOW)
        assert status == CouponStatus.ACTIVE

    def test_normalize_code(self):
        assert normalize_code("  save10 ") == "SAVE10"
        assert normalize_code(None) == ""


class TestCouponModel:
    """优惠券统计字段测试"""

    def test_counters_folded_from_usage_log(self):
        """使用次数、金额统计全部由使用记录折算"""
        coupon = _coupon(
            usage_limit=10,
            usage_log=[
                CouponUsage(user_id="u1", used_at=NOW, order_amount=Decimal("60000"), discount_applied=Decimal("5000")),
                CouponUsage(user_id="u2", used_at=NOW, order_amount=Decimal("30000"), discount_applied=Decimal("3000")),
                CouponUsage(user_id="u1", used_at=NOW, order_amount=Decimal("15000"), discount_applied=Decimal("1500")),
            ]
        )

        assert coupon.code == "SAVE10"
        assert coupon.times_used == 3
        assert coupon.total_discount_given == Decimal("9500")
        assert coupon.total_revenue == Decimal("105000")
        assert coupon.average_order_value == Decimal("35000")
        assert coupon.usage_by_user == {"u1": 2, "u2": 1}
        assert coupon.remaining_uses == 7
        assert coupon.usage_percentage == pytest.approx(30.0)

    def test_with_usage_updates_status(self):
        """追加最后一次使用后状态变为已用完"""
        coupon = _coupon(usage_limit=1)
        entry = CouponUsage(user_id="u1", used_at=NOW, order_amount=Decimal("1000"), discount_applied=Decimal("100"))

        updated = coupon.with_usage(entry)

        assert coupon.times_used == 0
        assert updated.times_used == 1
        assert updated.status == CouponStatus.DEPLETED
        assert updated.updated_at == NOW

    def test_days_until_expiration_rounds_up(self):
        coupon = _coupon(ends_at=NOW + timedelta(days=2, hours=1))
        assert coupon.days_until_expiration(NOW) == 3
        assert coupon.days_until_expiration(NOW + timedelta(days=5)) == 0

    def test_to_rule_keeps_usage_counts(self):
        coupon = _coupon(
            usage_limit=5,
            usage_limit_per_user=2,
            can_combine_with_other_coupons=True,
            allowed_roles=[UserRole.VIP],
            usage_log=[CouponUsage(user_id="u1", used_at=NOW, order_amount=Decimal("1"), discount_applied=Decimal("0"))]
        )

        rule = coupon.to_rule()

        assert rule.source == DiscountSource.COUPON
        assert rule.rule_id == "coupon_001"
        assert rule.times_used == 1
        assert rule.user_usage_count("u1") == 1
        assert rule.can_combine_with_others is True
        assert rule.allowed_roles == (UserRole.VIP,)
        assert rule.is_personalized is True


class TestCouponCreate:
    """创建参数校验测试"""

    def _payload(self, **overrides):
        data = {
            "code": "new10",
            "name": "新券",
            "discount_kind": DiscountKind.PERCENTAGE,
            "discount_value": Decimal("10"),
            "starts_at": NOW,
            "ends_at": NOW + timedelta(days=7),
        }
        data.update(overrides)
        return data

    def test_valid_create(self):
        coupon = CouponCreate(**self._payload())
        assert coupon.code == "NEW10"
        coupon.ensure_supported()

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            CouponCreate(**self._payload(ends_at=NOW - timedelta(days=1)))

    def test_percentage_above_hundred_rejected(self):
        with pytest.raises(ValidationError):
            CouponCreate(**self._payload(discount_value=Decimal("120")))

    def test_fixed_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            CouponCreate(**self._payload(discount_kind=DiscountKind.FIXED_AMOUNT, discount_value=Decimal("0")))

    def test_max_purchase_below_min_rejected(self):
        with pytest.raises(ValidationError):
            CouponCreate(**self._payload(
                minimum_purchase_amount=Decimal("5000"),
                maximum_purchase_amount=Decimal("1000")
            ))

    def test_buy_x_get_y_not_supported(self):
        """买X送Y在创建时拒绝"""
        coupon = CouponCreate(**self._payload(discount_kind=DiscountKind.BUY_X_GET_Y))
        with pytest.raises(UnsupportedDiscountError):
            coupon.ensure_supported()


class TestPromoModel:
    """促销码转换测试"""

    def _promo(self, **overrides) -> Promo:
        data = {
            "promo_id": "promo_001",
            "code": "flash5",
            "name": "限时立减",
            "promo_type": PromoType.FIXED,
            "discount_value": Decimal("500"),
            "minimum_order_value": Decimal("2000"),
        }
        data.update(overrides)
        return Promo(**data)

    def test_fixed_promo_to_rule(self):
        rule = self._promo().to_rule()

        assert rule.source == DiscountSource.PROMO
        assert rule.code == "FLASH5"
        assert rule.kind == DiscountKind.FIXED_AMOUNT
        assert rule.min_purchase_amount == Decimal("2000")
        assert rule.is_personalized is False

    def test_bogo_maps_to_unsupported_kind(self):
        assert self._promo(promo_type=PromoType.BOGO).to_rule().kind == DiscountKind.BUY_X_GET_Y
        assert self._promo(promo_type=PromoType.BUNDLE).to_rule().kind == DiscountKind.BUY_X_GET_Y

    def test_user_type_mapping(self):
        """用户类型转换为首单、老客或VIP角色限制"""
        new_rule = self._promo(applicable_user_types=PromoUserType.NEW_CUSTOMERS).to_rule()
        returning_rule = self._promo(applicable_user_types=PromoUserType.RETURNING_CUSTOMERS).to_rule()
        vip_rule = self._promo(applicable_user_types=PromoUserType.VIP).to_rule()

        assert new_rule.first_purchase_only is True
        assert returning_rule.returning_customers_only is True
        assert vip_rule.allowed_roles == (UserRole.VIP,)

    def test_applicable_scope_from_lists(self):
        rule = self._promo(applicable_categories=["cat_fashion"]).to_rule()
        assert rule.applicable_to.value == "specific_categories"
        assert rule.included_categories == ("cat_fashion",)


class TestTenantCommercialModel:

    def test_platform_owned_is_not_a_tenant_model(self):
        with pytest.raises(ValidationError):
            TenantCommercialModel(tenant_id="t1", revenue_model=RevenueModel.PLATFORM_OWNED, rate=Decimal("0"))
