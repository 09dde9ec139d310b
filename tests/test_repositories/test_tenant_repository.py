"""
商户Repository测试 - 分账模式快照读取
"""

import pytest
from decimal import Decimal

from checkout_engine.models.database.tenant_db import TenantDB
from checkout_engine.models.order import RevenueModel
from checkout_engine.repositories.tenant_repository import TenantRepository


@pytest.mark.asyncio
class TestTenantRepository:
    """商户Repository测试类"""

    @pytest.fixture
    def tenants(self):
        return [
            TenantDB(tenant_id="tenant_a", name="A店", revenue_model="markup", platform_markup_percentage=Decimal("12.5")),
            TenantDB(tenant_id="tenant_b", name="B店", revenue_model="commission", commission_percentage=Decimal("8")),
            TenantDB(tenant_id="tenant_c", name="C店", revenue_model="platform_owned"),
            TenantDB(tenant_id="tenant_d", name="D店", revenue_model="barter"),
        ]

    async def test_get_commercial_models(self, db_session, tenants):
        """测试批量读取分账模式，无效配置不返回"""
        db_session.add_all(tenants)
        await db_session.flush()
        tenant_repo = TenantRepository(db_session)

        models = await tenant_repo.get_commercial_models(
            ["tenant_a", "tenant_b", "tenant_c", "tenant_d", "tenant_missing", None, "tenant_a"]
        )

        assert set(models) == {"tenant_a", "tenant_b"}
        assert models["tenant_a"].revenue_model == RevenueModel.MARKUP
        assert models["tenant_a"].rate == Decimal("12.5")
        assert models["tenant_b"].revenue_model == RevenueModel.COMMISSION
        assert models["tenant_b"].rate == Decimal("8")

    async def test_no_tenants(self, db_session):
        tenant_repo = TenantRepository(db_session)
        assert await tenant_repo.get_commercial_models([None]) == {}

    async def test_get_by_tenant_id(self, db_session, tenants):
        db_session.add_all(tenants)
        await db_session.flush()
        tenant_repo = TenantRepository(db_session)

        tenant = await tenant_repo.get_by_tenant_id("tenant_b")

        assert tenant.name == "B店"
        assert await tenant_repo.get_by_tenant_id("nobody") is None
