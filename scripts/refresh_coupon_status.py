"""
优惠券状态对账脚本
按有效期、启用标记和使用次数重新推导状态并写回，可由定时任务调用
"""

import asyncio
import logging
import sys
from pathlib import Path

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from checkout_engine.core import database
from checkout_engine.repositories import CouponRepository, PromoRepository
from checkout_engine.services.usage_ledger import UsageLedger

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


async def refresh_statuses() -> dict:
    """刷新所有优惠券和促销码的缓存状态"""
    await database.init_database()
    try:
        async with database.session_scope() as session:
            ledger = UsageLedger(CouponRepository(session), PromoRepository(session))
            return await ledger.refresh_statuses()
    finally:
        await database.close_database()


async def main():
    try:
        updated = await refresh_statuses()
        logger.info(f"状态刷新完成: {updated or '无变化'}")
    except Exception as e:
        logger.error(f"状态刷新失败: {e}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
