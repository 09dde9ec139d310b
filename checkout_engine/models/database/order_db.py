"""
订单相关数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from checkout_engine.core.database import Base


class OrderDB(Base):
    """订单数据库表"""

    __tablename__ = "orders"

    # 主键和用户信息
    order_ref = Column(String(50), primary_key=True, comment="订单号")
    user_id = Column(String(50), index=True, comment="用户ID，匿名结算为空")
    currency = Column(String(3), nullable=False, comment="币种")

    # 金额信息
    subtotal = Column(Numeric(14, 2), nullable=False, comment="商品小计")
    discount_total = Column(Numeric(14, 2), default=0, comment="商品折扣合计")
    shipping_fee = Column(Numeric(12, 2), default=0, comment="运费")
    shipping_discount = Column(Numeric(12, 2), default=0, comment="运费折扣")
    total_amount = Column(Numeric(14, 2), nullable=False, comment="应付金额")
    platform_commission_total = Column(Numeric(14, 2), nullable=False, comment="平台佣金合计")
    tenant_revenue_total = Column(Numeric(14, 2), nullable=False, comment="商户收入合计")

    # 应用的优惠信息
    applied_discounts = Column(JSON, default=list, comment="应用的优惠列表")

    order_status = Column(String(20), default="pending", index=True, comment="订单状态")

    created_at = Column(DateTime, server_default=func.now(), index=True, comment="创建时间")

    order_items = relationship("OrderItemDB", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        {'comment': '订单主表'}
    )


class OrderItemDB(Base):
    """订单行数据库表（下单时写入的快照，不再修改）"""

    __tablename__ = "order_items"

    item_id = Column(String(50), primary_key=True, comment="订单行ID")
    line_ref = Column(String(50), nullable=False, comment="购物车行ID")
    order_ref = Column(String(50), ForeignKey("orders.order_ref"), nullable=False, index=True, comment="订单号")

    product_id = Column(String(50), nullable=False, comment="商品ID")
    variant_id = Column(String(50), comment="规格ID")
    size_id = Column(String(50), comment="尺码ID")
    tenant_id = Column(String(50), index=True, comment="商户ID，平台自营为空")

    quantity = Column(Integer, nullable=False, comment="数量")
    price_at_purchase = Column(Numeric(12, 2), nullable=False, comment="成交单价")
    item_subtotal = Column(Numeric(14, 2), nullable=False, comment="行小计")
    discount_amount = Column(Numeric(14, 2), nullable=False, default=0, comment="行折扣")

    # 分账快照
    tenant_revenue_share = Column(Numeric(14, 2), nullable=False, comment="商户收入")
    platform_commission = Column(Numeric(14, 2), nullable=False, comment="平台佣金")
    revenue_model = Column(String(20), nullable=False, comment="分账模式快照")
    rate = Column(Numeric(6, 2), nullable=False, comment="费率快照")

    order = relationship("OrderDB", back_populates="order_items")

    __table_args__ = (
        {'comment': '订单行表'}
    )
