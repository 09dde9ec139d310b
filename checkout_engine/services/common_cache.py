"""
通用缓存工具
优惠券展示数据、自动应用候选和统计数据的Redis缓存。
缓存只用于展示和推荐，资格校验与核销始终读取数据库最新数据；
Redis不可用时所有操作静默降级为未命中
"""

import json
import logging
from typing import Any, List, Optional, Type, TypeVar
import redis.asyncio as redis
from pydantic import BaseModel, ValidationError

from checkout_engine.core.redis import get_redis_client

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class SimpleCache:
    """简单缓存管理器"""

    def __init__(self, redis_client: Optional[redis.Redis] = None, key_prefix: str = ""):
        self._redis_client = redis_client
        self.key_prefix = key_prefix

    @property
    def redis_client(self) -> Optional[redis.Redis]:
        """未显式指定客户端时使用应用启动时创建的连接池"""
        return self._redis_client or get_redis_client()

    def _get_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        """获取缓存值（JSON反序列化后）"""
        client = self.redis_client
        if client is None:
            return None
        try:
            data = await client.get(self._get_key(key))
        except Exception as e:
            logger.error(f"获取缓存失败 {key}: {e}")
            return None
        return json.loads(data) if data else None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """写入缓存，Decimal和时间按字符串保存"""
        client = self.redis_client
        if client is None:
            return False
        try:
            await client.setex(self._get_key(key), ttl, json.dumps(value, default=str, ensure_ascii=False))
        except Exception as e:
            logger.error(f"设置缓存失败 {key}: {e}")
            return False
        return True

    async def get_models(self, key: str, model: Type[ModelT]) -> Optional[List[ModelT]]:
        """读取模型列表，结构不兼容（例如升级后字段变化）时视为未命中"""
        cached = await self.get(key)
        if not cached:
            return None
        try:
            return [model.model_validate(item) for item in cached]
        except ValidationError as e:
            logger.warning(f"缓存数据无法解析，忽略 {key}: {e.error_count()} 个错误")
            return None

    async def set_models(self, key: str, items: List[BaseModel], ttl: int = 3600) -> bool:
        return await self.set(key, [item.model_dump(mode="json") for item in items], ttl=ttl)

    async def delete(self, key: str) -> bool:
        client = self.redis_client
        if client is None:
            return False
        try:
            return await client.delete(self._get_key(key)) > 0
        except Exception as e:
            logger.error(f"删除缓存失败 {key}: {e}")
            return False

    async def delete_pattern(self, pattern: str) -> int:
        """按通配符删除，核销或创建优惠券后用于清理自动应用候选"""
        client = self.redis_client
        if client is None:
            return 0
        try:
            keys = [key async for key in client.scan_iter(match=self._get_key(pattern))]
            return await client.delete(*keys) if keys else 0
        except Exception as e:
            logger.error(f"删除模式缓存失败 {pattern}: {e}")
            return 0


# 结算引擎缓存实例，所有key带应用前缀
coupon_cache = SimpleCache(key_prefix="checkout:")
