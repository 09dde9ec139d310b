"""
业务异常定义
结算引擎的错误分类：输入错误、资格错误、用量上限、并发冲突、一致性错误
"""

from typing import Any, Dict, Optional


class BusinessException(Exception):
    """业务异常基类"""

    error_code = "business_error"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class InputValidationError(BusinessException):
    """输入格式错误（缺少优惠码、金额非数字等）"""

    error_code = "validation_error"
    status_code = 422


class UnsupportedDiscountError(InputValidationError):
    """不支持的折扣类型（买X送Y等，产品规则尚未确定）"""

    error_code = "unsupported_discount"


class EligibilityError(BusinessException):
    """优惠资格不满足，可换券或调整购物车后重试"""

    error_code = "not_eligible"
    status_code = 422

    def __init__(self, reason, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.reason = reason
        reason_value = getattr(reason, "value", reason)
        super().__init__(message or f"优惠不可用: {reason_value}", details={"reason": reason_value, **(details or {})})


class CouponNotFound(BusinessException):
    """优惠码不存在"""

    error_code = "coupon_not_found"
    status_code = 404

    def __init__(self, code: str):
        super().__init__(f"优惠码不存在: {code}", details={"code": code})
        self.code = code


class UsageLimitError(BusinessException):
    """核销次数上限，本次核销终止"""

    error_code = "usage_limit"
    status_code = 409


class UsageLimitExceeded(UsageLimitError):
    """总使用次数已达上限"""

    error_code = "usage_limit_exceeded"


class PerUserLimitExceeded(UsageLimitError):
    """用户使用次数已达上限"""

    error_code = "per_user_limit_exceeded"


class ConflictError(BusinessException):
    """并发更新重试耗尽"""

    error_code = "conflict"
    status_code = 409


class ConsistencyError(BusinessException):
    """数据不变量被破坏，订单必须阻断，不可对用户展示细节"""

    error_code = "consistency_error"
    status_code = 500
