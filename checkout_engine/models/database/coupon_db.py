"""
优惠券数据库模型
使用统计列是使用记录表的物化视图，只允许核销时原子更新
"""

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from checkout_engine.core.database import Base


class CouponDB(Base):
    """优惠券数据库表"""

    __tablename__ = "coupons"

    # 主键和基本信息
    coupon_id = Column(String(50), primary_key=True, comment="优惠券ID")
    code = Column(String(50), nullable=False, unique=True, index=True, comment="优惠券代码（大写）")
    name = Column(String(200), nullable=False, comment="优惠券名称")
    description = Column(Text, comment="优惠券描述")

    # 折扣信息
    discount_kind = Column(String(20), nullable=False, comment="折扣类型")
    discount_value = Column(Numeric(12, 2), nullable=False, default=0, comment="折扣值")
    max_discount_amount = Column(Numeric(12, 2), comment="最大折扣金额")
    buy_quantity = Column(Integer, comment="买X数量")
    get_quantity = Column(Integer, comment="送Y数量")
    currency = Column(String(3), nullable=False, default="NGN", comment="币种")

    # 金额与件数限制
    minimum_purchase_amount = Column(Numeric(12, 2), default=0, comment="最低消费")
    maximum_purchase_amount = Column(Numeric(12, 2), comment="最高消费")
    minimum_items = Column(Integer, default=0, comment="最少件数")
    maximum_items = Column(Integer, comment="最多件数")

    # 有效期与状态
    starts_at = Column(DateTime, nullable=False, index=True, comment="有效开始时间")
    ends_at = Column(DateTime, nullable=False, index=True, comment="有效结束时间")
    is_active = Column(Boolean, default=True, comment="是否启用")
    status = Column(String(20), default="active", index=True, comment="缓存状态，仅供展示")

    # 使用限制
    usage_limit = Column(Integer, comment="总使用次数限制")
    usage_limit_per_user = Column(Integer, default=1, comment="单用户使用次数限制")

    # 使用统计（物化）
    times_used = Column(Integer, nullable=False, default=0, comment="已使用次数")
    total_discount_given = Column(Numeric(14, 2), nullable=False, default=0, comment="累计折扣")
    total_revenue = Column(Numeric(14, 2), nullable=False, default=0, comment="累计订单金额")
    average_order_value = Column(Numeric(14, 2), nullable=False, default=0, comment="平均订单金额")

    # 适用范围
    applicable_to = Column(String(30), default="all", comment="适用范围")
    included_products = Column(JSON, default=list, comment="适用商品ID列表")
    excluded_products = Column(JSON, default=list, comment="排除商品ID列表")
    included_categories = Column(JSON, default=list, comment="适用分类ID列表")
    excluded_categories = Column(JSON, default=list, comment="排除分类ID列表")
    included_brands = Column(JSON, default=list, comment="适用品牌ID列表")
    excluded_brands = Column(JSON, default=list, comment="排除品牌ID列表")
    allowed_tenants = Column(JSON, default=list, comment="适用商户ID列表")

    # 商户范围
    tenant_id = Column(String(50), index=True, comment="所属商户")
    is_global = Column(Boolean, default=False, comment="是否全平台通用")

    # 用户范围
    allowed_users = Column(JSON, default=list, comment="允许用户ID列表")
    excluded_users = Column(JSON, default=list, comment="排除用户ID列表")
    allowed_roles = Column(JSON, default=list, comment="允许角色列表")
    first_purchase_only = Column(Boolean, default=False, comment="仅限首单")
    minimum_account_age_days = Column(Integer, comment="最短注册天数")

    # 叠加与自动应用
    can_combine_with_other_coupons = Column(Boolean, default=False, comment="可与其他优惠叠加")
    can_combine_with_sales = Column(Boolean, default=True, comment="可与特价叠加")
    priority = Column(Integer, default=0, comment="优先级")
    auto_apply = Column(Boolean, default=False, index=True, comment="自动应用")

    # 时间戳
    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), comment="更新时间")

    # 关系映射
    usages = relationship(
        "CouponUsageDB",
        back_populates="coupon",
        order_by="CouponUsageDB.used_at",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        {'comment': '优惠券信息表'}
    )


class CouponUsageDB(Base):
    """优惠券使用记录表（只追加）"""

    __tablename__ = "coupon_usage"

    usage_id = Column(String(50), primary_key=True, comment="使用记录ID")
    coupon_id = Column(String(50), ForeignKey("coupons.coupon_id"), nullable=False, index=True, comment="优惠券ID")
    user_id = Column(String(50), nullable=False, index=True, comment="使用用户ID")
    order_ref = Column(String(50), comment="关联订单号")
    order_amount = Column(Numeric(12, 2), nullable=False, comment="订单金额")
    discount_applied = Column(Numeric(12, 2), nullable=False, comment="折扣金额")
    used_at = Column(DateTime, nullable=False, comment="使用时间")

    coupon = relationship("CouponDB", back_populates="usages")

    __table_args__ = (
        {'comment': '优惠券使用记录表'}
    )
