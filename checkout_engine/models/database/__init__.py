"""
数据库模型包初始化文件
"""

from .coupon_db import CouponDB, CouponUsageDB
from .promo_db import PromoDB, PromoUsageDB
from .tenant_db import TenantDB
from .order_db import OrderDB, OrderItemDB

__all__ = [
    "CouponDB",
    "CouponUsageDB",
    "PromoDB",
    "PromoUsageDB",
    "TenantDB",
    "OrderDB",
    "OrderItemDB",
]
