"""
数据访问层
"""

from .coupon_repository import CouponRepository
from .promo_repository import PromoRepository
from .tenant_repository import TenantRepository
from .order_repository import OrderRepository

__all__ = [
    "CouponRepository",
    "PromoRepository",
    "TenantRepository",
    "OrderRepository",
]
