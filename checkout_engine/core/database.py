from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession, AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from sqlalchemy import text
from typing import AsyncGenerator, AsyncIterator
import logging

from checkout_engine.core.config import settings

"数据库连接管理：一次请求或一次对账任务对应一个事务，核销与订单写入同进同退"

logger = logging.getLogger(__name__)

# 所有ORM模型共用的基类
Base = declarative_base()

# 全局数据库引擎
engine: AsyncEngine = None
async_session_maker: async_sessionmaker = None


def _engine_options(url: str) -> dict:
    """测试环境不保留连接池，SQLite不支持连接回收参数"""
    options = {"echo": settings.debug}
    if url.startswith("sqlite"):
        return options
    options["pool_pre_ping"] = True
    if settings.is_testing:
        options["poolclass"] = NullPool
    else:
        options["pool_recycle"] = 3600
    return options


async def init_database(url: str = None) -> None:
    """初始化数据库引擎和会话工厂"""
    global engine, async_session_maker

    url = url or settings.database_url_computed
    try:
        engine = create_async_engine(url, **_engine_options(url))
        # 提交后对象不过期，核销结果在提交后仍可直接读取
        async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        logger.info(f"数据库连接初始化成功: {engine.url.drivername}")

    except Exception as e:
        logger.error(f"数据库连接初始化失败: {e}")
        raise


async def close_database() -> None:
    """释放连接池"""
    global engine, async_session_maker

    if engine:
        await engine.dispose()
        engine = None
        async_session_maker = None
        logger.info("数据库连接已关闭")


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """
    事务范围

    正常退出时提交；任何异常（包括上限错误和分账校验失败）都回滚，
    已追加的使用记录和计数更新一起撤销
    """
    if not async_session_maker:
        raise RuntimeError("数据库未初始化，请先调用 init_database()")

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI依赖：每个请求一个事务"""
    async with session_scope() as session:
        yield session


async def create_all_tables() -> None:
    """按ORM模型建表（已存在的表跳过）"""
    # 导入模型以注册到 Base.metadata
    from checkout_engine.models import database as _models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"数据表创建完成: {', '.join(sorted(Base.metadata.tables))}")


class DatabaseService:
    """数据库健康检查"""

    @property
    def engine(self):
        return engine

    async def health_check(self) -> dict:
        if not self.engine:
            return {"status": "error", "message": "数据库引擎未初始化"}

        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                row = result.fetchone()
        except Exception as e:
            return {"status": "error", "message": f"数据库连接失败: {str(e)}"}

        return {
            "status": "healthy",
            "message": "数据库连接正常",
            "driver": self.engine.url.drivername,
            "test_query_result": row[0] if row else None
        }


# 全局数据库服务实例
database_service = DatabaseService()
