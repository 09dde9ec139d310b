"""
促销码数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from checkout_engine.core.database import Base


class PromoDB(Base):
    """促销码数据库表"""

    __tablename__ = "promos"

    promo_id = Column(String(50), primary_key=True, comment="促销ID")
    code = Column(String(20), nullable=False, unique=True, index=True, comment="促销码（大写）")
    name = Column(String(100), nullable=False, comment="促销名称")
    description = Column(Text, comment="促销描述")

    promo_type = Column(String(20), nullable=False, comment="促销类型")
    discount_value = Column(Numeric(12, 2), nullable=False, default=0, comment="折扣值")
    maximum_discount = Column(Numeric(12, 2), comment="最大折扣金额")
    minimum_order_value = Column(Numeric(12, 2), default=0, comment="最低订单金额")
    currency = Column(String(3), nullable=False, default="NGN", comment="币种")

    usage_limit = Column(Integer, comment="总使用次数限制")
    usage_limit_per_customer = Column(Integer, default=1, comment="单用户使用次数限制")
    used_count = Column(Integer, nullable=False, default=0, comment="已使用次数")
    total_discount_given = Column(Numeric(14, 2), nullable=False, default=0, comment="累计折扣")
    total_revenue = Column(Numeric(14, 2), nullable=False, default=0, comment="累计订单金额")
    average_order_value = Column(Numeric(14, 2), nullable=False, default=0, comment="平均订单金额")

    starts_at = Column(DateTime, index=True, comment="开始时间")
    ends_at = Column(DateTime, index=True, comment="结束时间")
    is_active = Column(Boolean, default=True, comment="是否启用")
    status = Column(String(20), default="active", index=True, comment="缓存状态，仅供展示")

    applicable_products = Column(JSON, default=list, comment="适用商品ID列表")
    applicable_categories = Column(JSON, default=list, comment="适用分类ID列表")
    applicable_brands = Column(JSON, default=list, comment="适用品牌ID列表")
    excluded_products = Column(JSON, default=list, comment="排除商品ID列表")
    applicable_user_types = Column(String(30), default="all", comment="适用用户类型")

    priority = Column(Integer, default=0, comment="优先级")
    tenant_id = Column(String(50), index=True, comment="所属商户")
    is_global = Column(Boolean, default=False, comment="是否全平台通用")
    auto_apply = Column(Boolean, default=False, index=True, comment="自动应用")

    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), comment="更新时间")

    usages = relationship(
        "PromoUsageDB",
        back_populates="promo",
        order_by="PromoUsageDB.used_at",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        {'comment': '促销码信息表'}
    )


class PromoUsageDB(Base):
    """促销码使用记录表（只追加）"""

    __tablename__ = "promo_usage"

    usage_id = Column(String(50), primary_key=True, comment="使用记录ID")
    promo_id = Column(String(50), ForeignKey("promos.promo_id"), nullable=False, index=True, comment="促销ID")
    user_id = Column(String(50), nullable=False, index=True, comment="使用用户ID")
    order_ref = Column(String(50), comment="关联订单号")
    order_amount = Column(Numeric(12, 2), nullable=False, comment="订单金额")
    discount_applied = Column(Numeric(12, 2), nullable=False, comment="折扣金额")
    used_at = Column(DateTime, nullable=False, comment="使用时间")

    promo = relationship("PromoDB", back_populates="usages")

    __table_args__ = (
        {'comment': '促销码使用记录表'}
    )
