"""
订单数据库操作层
订单行只在下单时写入一次，这里不提供更新接口
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from checkout_engine.models.order import PlacedOrder
from checkout_engine.models.database.order_db import OrderDB, OrderItemDB


class OrderRepository:
    """订单数据库操作层"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_order_ref(self, order_ref: str) -> Optional[OrderDB]:
        """根据订单号获取订单（包含订单行）"""
        result = await self.db.execute(
            select(OrderDB)
            .options(selectinload(OrderDB.order_items))
            .where(OrderDB.order_ref == order_ref)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_order_with_items(self, order: PlacedOrder) -> OrderDB:
        """创建订单及订单行快照"""
        allocation = order.allocation
        db_order = OrderDB(
            order_ref=order.order_ref,
            user_id=order.user_id,
            currency=order.currency,
            subtotal=order.subtotal,
            discount_total=order.discount_total,
            shipping_fee=order.shipping_fee,
            shipping_discount=order.shipping_discount,
            total_amount=order.total_amount,
            platform_commission_total=allocation.order_commission_total,
            tenant_revenue_total=allocation.tenant_revenue_total,
            applied_discounts=[item.model_dump(mode="json") for item in order.applied_discounts],
            order_status=order.status.value,
            created_at=order.created_at
        )
        self.db.add(db_order)

        for line in allocation.line_items:
            self.db.add(
                OrderItemDB(
                    item_id=str(uuid.uuid4()),
                    line_ref=line.item_id,
                    order_ref=order.order_ref,
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    size_id=line.size_id,
                    tenant_id=line.tenant_id,
                    quantity=line.quantity,
                    price_at_purchase=line.price_at_purchase,
                    item_subtotal=line.item_subtotal,
                    discount_amount=line.discount_amount,
                    tenant_revenue_share=line.tenant_revenue_share,
                    platform_commission=line.platform_commission,
                    revenue_model=line.revenue_model.value,
                    rate=line.rate
                )
            )

        await self.db.flush()
        return db_order
