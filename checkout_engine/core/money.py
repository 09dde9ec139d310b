"""
金额处理工具
所有金额使用Decimal，按结算币种的最小单位四舍五入（ROUND_HALF_UP）
"""

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP, InvalidOperation
from typing import Any, Optional

from checkout_engine.core.config import settings
from checkout_engine.core.exceptions import InputValidationError

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def minor_unit(currency: Optional[str] = None) -> Decimal:
    """获取币种最小结算单位，例如 NGN -> 1, USD -> 0.01"""
    code = (currency or settings.default_currency).upper()
    digits = settings.currency_minor_units.get(code, 2)
    return Decimal(1).scaleb(-digits)


def quantize_money(value: Decimal, currency: Optional[str] = None, rounding: str = ROUND_HALF_UP) -> Decimal:
    """按币种精度取整，默认四舍五入"""
    return Decimal(value).quantize(minor_unit(currency), rounding=rounding)


def quantize_not_above(value: Decimal, limit: Decimal, currency: Optional[str] = None) -> Decimal:
    """四舍五入取整，但结果不超过limit（limit本身未对齐精度时向下取整）"""
    rounded = quantize_money(value, currency)
    if rounded > limit:
        return quantize_money(limit, currency, rounding=ROUND_DOWN)
    return rounded


def to_money(value: Any, field_name: str = "amount") -> Decimal:
    """把外部输入转换为非负Decimal金额"""
    if isinstance(value, bool) or value is None:
        raise InputValidationError(f"{field_name} 必须是数字", details={"field": field_name})
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InputValidationError(f"{field_name} 必须是数字", details={"field": field_name})
    if not amount.is_finite():
        raise InputValidationError(f"{field_name} 必须是有限数字", details={"field": field_name})
    if amount < ZERO:
        raise InputValidationError(f"{field_name} 不能为负数", details={"field": field_name})
    return amount
