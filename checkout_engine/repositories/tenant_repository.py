"""
商户数据库操作层
"""

import logging
from typing import Dict, Iterable, Optional
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from checkout_engine.models.order import RevenueModel, TenantCommercialModel
from checkout_engine.models.database.tenant_db import TenantDB

logger = logging.getLogger(__name__)


class TenantRepository:
    """商户数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_tenant_id(self, tenant_id: str) -> Optional[TenantDB]:
        result = await self.db.execute(
            select(TenantDB).where(TenantDB.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def get_commercial_models(self, tenant_ids: Iterable[str]) -> Dict[str, TenantCommercialModel]:
        """批量读取商户分账模式，返回的是下单时刻的快照"""
        ids = sorted({tenant_id for tenant_id in tenant_ids if tenant_id})
        if not ids:
            return {}

        result = await self.db.execute(
            select(TenantDB).where(TenantDB.tenant_id.in_(ids))
        )
        models = {}
        for tenant in result.scalars().all():
            commercial_model = self.to_commercial_model(tenant)
            if commercial_model is not None:
                models[tenant.tenant_id] = commercial_model
        return models

    def to_commercial_model(self, tenant: TenantDB) -> Optional[TenantCommercialModel]:
        try:
            revenue_model = RevenueModel(tenant.revenue_model or RevenueModel.MARKUP.value)
        except ValueError:
            logger.warning(f"商户 {tenant.tenant_id} 分账模式无效: {tenant.revenue_model}")
            return None

        if revenue_model == RevenueModel.PLATFORM_OWNED:
            logger.warning(f"商户 {tenant.tenant_id} 配置为平台自营，按默认分账处理")
            return None
        if revenue_model == RevenueModel.COMMISSION:
            rate = tenant.commission_percentage
        else:
            rate = tenant.platform_markup_percentage

        return TenantCommercialModel(
            tenant_id=tenant.tenant_id,
            revenue_model=revenue_model,
            rate=Decimal(str(rate or 0))
        )
