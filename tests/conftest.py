"""
测试配置文件 - pytest fixtures和共用配置
"""

import pytest
import pytest_asyncio
from decimal import Decimal
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from checkout_engine.core.database import Base
from checkout_engine.models import database as _db_models  # noqa: F401  注册所有表
from checkout_engine.models.context import CartItem, RuleContext, UserSnapshot
from checkout_engine.models.discount import DiscountKind, DiscountRule, DiscountSource
from checkout_engine.models.order import OrderLineInput


# 配置pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


@pytest_asyncio.fixture(scope="function")
async def test_db_engine():
    """测试数据库引擎 - 使用内存SQLite，每个测试独立建表"""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,  # 设为True可以看到SQL语句
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )

    # 创建表结构
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_db_engine) -> AsyncSession:
    """测试数据库会话"""
    async_session_maker = async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@pytest.fixture
def now():
    """固定的评估时间"""
    return datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def make_rule(now):
    """折扣规则工厂 - 默认是一张当前有效的NGN百分比券"""
    def _make(**overrides) -> DiscountRule:
        data = {
            "source": DiscountSource.COUPON,
            "rule_id": "rule_001",
            "code": "SAVE10",
            "kind": DiscountKind.PERCENTAGE,
            "value": Decimal("10"),
            "currency": "NGN",
            "starts_at": now - timedelta(days=1),
            "ends_at": now + timedelta(days=30),
            "usage_limit_per_user": None,
        }
        data.update(overrides)
        return DiscountRule(**data)

    return _make


@pytest.fixture
def sample_user(now):
    """注册一年的老用户"""
    return UserSnapshot(
        user_id="user_001",
        account_created_at=now - timedelta(days=365),
        completed_order_count=3
    )


@pytest.fixture
def sample_items():
    """两个商户、一件平台自营商品的购物车"""
    return (
        CartItem(
            item_id="line_1",
            product_id="prod_shirt",
            category_id="cat_fashion",
            brand_id="brand_a",
            tenant_id="tenant_a",
            quantity=2,
            unit_price=Decimal("20000")
        ),
        CartItem(
            item_id="line_2",
            product_id="prod_shoe",
            category_id="cat_shoes",
            brand_id="brand_b",
            tenant_id="tenant_b",
            quantity=1,
            unit_price=Decimal("15000")
        ),
        CartItem(
            item_id="line_3",
            product_id="prod_bag",
            category_id="cat_fashion",
            brand_id="brand_c",
            tenant_id=None,
            quantity=1,
            unit_price=Decimal("5000"),
            on_sale=True
        ),
    )


@pytest.fixture
def sample_context(sample_items, sample_user, now):
    """小计60000 NGN的购物车上下文"""
    return RuleContext(
        subtotal=Decimal("60000"),
        currency="NGN",
        shipping_fee=Decimal("2500"),
        items=sample_items,
        user=sample_user,
        evaluated_at=now
    )


@pytest.fixture
def sample_lines(sample_items):
    """与购物车一致的订单行"""
    return [
        OrderLineInput(
            item_id=item.item_id,
            product_id=item.product_id,
            tenant_id=item.tenant_id,
            quantity=item.quantity,
            unit_price=item.unit_price
        )
        for item in sample_items
    ]
