"""
SimpleCache测试 - 使用模拟的Redis客户端
"""

import json
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from checkout_engine.models.discount import DiscountKind, DiscountRule, DiscountSource
from checkout_engine.services.common_cache import SimpleCache


@pytest.mark.asyncio
class TestSimpleCache:
    """缓存读写与降级测试类"""

    @pytest.fixture
    def redis_client(self):
        """模拟Redis客户端"""
        client = AsyncMock()
        client.get = AsyncMock(return_value=None)
        client.setex = AsyncMock(return_value=True)
        client.delete = AsyncMock(return_value=1)
        return client

    @pytest.fixture
    def cache(self, redis_client):
        return SimpleCache(redis_client, key_prefix="checkout:")

    @pytest.fixture
    def sample_rule(self):
        return DiscountRule(
            source=DiscountSource.COUPON,
            rule_id="coupon_001",
            code="SAVE10",
            kind=DiscountKind.PERCENTAGE,
            value=Decimal("10"),
            included_products=("prod_1",)
        )

    async def test_set_and_get(self, cache, redis_client):
        await cache.set("coupon:analytics:SAVE10", {"total": Decimal("5000")}, ttl=60)

        redis_client.setex.assert_called_once_with(
            "checkout:coupon:analytics:SAVE10", 60, json.dumps({"total": "5000"})
        )

        redis_client.get.return_value = '{"total": "5000"}'
        assert await cache.get("coupon:analytics:SAVE10") == {"total": "5000"}

    async def test_model_list_roundtrip_keeps_types(self, cache, redis_client, sample_rule):
        """缓存的规则读回后Decimal和元组类型不变"""
        await cache.set_models("coupon:auto_apply:global", [sample_rule], ttl=300)
        stored = redis_client.setex.call_args[0][2]
        redis_client.get.return_value = stored

        rules = await cache.get_models("coupon:auto_apply:global", DiscountRule)

        assert rules == [sample_rule]
        assert rules[0].value == Decimal("10")
        assert rules[0].included_products == ("prod_1",)

    async def test_incompatible_cached_models_ignored(self, cache, redis_client):
        redis_client.get.return_value = json.dumps([{"code": "BROKEN"}])
        assert await cache.get_models("coupon:auto_apply:global", DiscountRule) is None

    async def test_redis_errors_degrade_to_miss(self, cache, redis_client):
        redis_client.get.side_effect = ConnectionError("redis down")
        redis_client.setex.side_effect = ConnectionError("redis down")

        assert await cache.get("any") is None
        assert await cache.set("any", {"a": 1}) is False

    async def test_delete_pattern(self, cache, redis_client):
        async def scan_iter(match):
            assert match == "checkout:coupon:auto_apply:*"
            for key in ("checkout:coupon:auto_apply:global", "checkout:coupon:auto_apply:tenant_a"):
                yield key

        redis_client.scan_iter = MagicMock(side_effect=scan_iter)
        redis_client.delete.return_value = 2

        assert await cache.delete_pattern("coupon:auto_apply:*") == 2
        redis_client.delete.assert_called_once_with(
            "checkout:coupon:auto_apply:global", "checkout:coupon:auto_apply:tenant_a"
        )

    async def test_without_redis(self, monkeypatch):
        """Redis未初始化时所有操作都视为未命中"""
        monkeypatch.setattr("checkout_engine.services.common_cache.get_redis_client", lambda: None)
        cache = SimpleCache(key_prefix="checkout:")

        assert await cache.get("any") is None
        assert await cache.set("any", 1) is False
        assert await cache.delete("any") is False
        assert await cache.delete_pattern("*") == 0
