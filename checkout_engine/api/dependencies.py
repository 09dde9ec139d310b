"""
接口依赖注入
每个请求使用同一个数据库会话构建仓储和服务
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from checkout_engine.core.database import get_db_session
from checkout_engine.repositories import (
    CouponRepository,
    OrderRepository,
    PromoRepository,
    TenantRepository,
)
from checkout_engine.services.coupon_service import CouponService
from checkout_engine.services.order_service import OrderService


def get_coupon_service(db: AsyncSession = Depends(get_db_session)) -> CouponService:
    return CouponService(CouponRepository(db), PromoRepository(db))


def get_order_service(db: AsyncSession = Depends(get_db_session)) -> OrderService:
    coupon_service = CouponService(CouponRepository(db), PromoRepository(db))
    return OrderService(OrderRepository(db), TenantRepository(db), coupon_service)
