"""
结算引擎数据库表创建脚本
"""

import asyncio
import sys
from pathlib import Path

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy import text
from checkout_engine.core import database
from checkout_engine.core.config import settings


# 核销统计和自动应用查询依赖的索引
EXTRA_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_coupons_validity ON coupons(starts_at, ends_at);",
    "CREATE INDEX IF NOT EXISTS idx_coupons_auto_apply_scope ON coupons(auto_apply, tenant_id, is_global);",
    "CREATE INDEX IF NOT EXISTS idx_promos_auto_apply_scope ON promos(auto_apply, tenant_id, is_global);",
    "CREATE INDEX IF NOT EXISTS idx_coupon_usage_coupon_user ON coupon_usage(coupon_id, user_id);",
    "CREATE INDEX IF NOT EXISTS idx_promo_usage_promo_user ON promo_usage(promo_id, user_id);",
    "CREATE INDEX IF NOT EXISTS idx_orders_user_created ON orders(user_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_order_items_tenant ON order_items(tenant_id, order_ref);",
]


async def create_database_if_not_exists():
    """PostgreSQL下先创建数据库"""
    url = settings.database_url_computed
    if not url.startswith("postgresql"):
        return

    # 连接默认的postgres库
    server_url = url.replace(f"/{settings.db_name}", "/postgres")
    engine = create_async_engine(server_url, isolation_level="AUTOCOMMIT")

    async with engine.connect() as conn:
        result = await conn.execute(
            text("SELECT 1 FROM pg_database WHERE datname = :db_name"),
            {"db_name": settings.db_name}
        )
        if result.fetchone():
            print(f"数据库 '{settings.db_name}' 已存在")
        else:
            await conn.execute(text(f'CREATE DATABASE "{settings.db_name}"'))
            print(f"数据库 '{settings.db_name}' 创建成功")

    await engine.dispose()


async def create_indexes():
    async with database.engine.begin() as conn:
        for index_sql in EXTRA_INDEXES:
            await conn.execute(text(index_sql))
    print(f"已创建 {len(EXTRA_INDEXES)} 个索引")


async def main():
    print("开始创建结算引擎数据库表...")

    try:
        await create_database_if_not_exists()
        await database.init_database()
        await database.create_all_tables()
        await create_indexes()
        print("结算引擎数据库初始化完成！")

    except Exception as e:
        print(f"数据库初始化失败: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)

    finally:
        await database.close_database()


if __name__ == "__main__":
    asyncio.run(main())
