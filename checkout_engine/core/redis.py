import redis.asyncio as aioredis
from typing import Optional
from checkout_engine.core.config import settings
import structlog

"redis连接管理器：只服务展示缓存，连接失败不影响结算"

logger = structlog.get_logger()


class RedisManager:
    """Redis连接管理器"""

    def __init__(self):
        self.redis_pool: Optional[aioredis.Redis] = None

    @property
    def available(self) -> bool:
        return self.redis_pool is not None

    async def init_redis(self, url: Optional[str] = None) -> None:
        """创建连接池并ping一次，失败时不保留连接池"""
        pool = aioredis.from_url(
            url or settings.redis_url_computed,
            encoding="utf-8",
            decode_responses=True,
            max_connections=20,
            socket_timeout=settings.redis_socket_timeout,
            retry_on_timeout=True
        )
        try:
            await pool.ping()
        except Exception as e:
            logger.error("Redis连接初始化失败", error=str(e))
            await pool.aclose()
            raise

        self.redis_pool = pool
        logger.info("Redis连接初始化成功", host=settings.redis_host, db=settings.redis_db)

    async def close_redis(self) -> None:
        if self.redis_pool:
            await self.redis_pool.aclose()
            self.redis_pool = None
            logger.info("Redis连接已关闭")

    async def ping(self) -> bool:
        """健康检查用，异常时返回False"""
        if not self.redis_pool:
            return False
        try:
            return bool(await self.redis_pool.ping())
        except Exception as e:
            logger.warning("Redis连通性检查失败", error=str(e))
            return False


# 全局Redis管理器实例
redis_manager = RedisManager()


def get_redis_client() -> Optional[aioredis.Redis]:
    """缓存层取连接池，未初始化时返回None"""
    return redis_manager.redis_pool
