"""
商户数据库模型
"""

from sqlalchemy import Column, String, Numeric, Boolean, DateTime
from sqlalchemy.sql import func
from checkout_engine.core.database import Base


class TenantDB(Base):
    """商户数据库表（只保存结算需要的分账配置）"""

    __tablename__ = "tenants"

    tenant_id = Column(String(50), primary_key=True, comment="商户ID")
    name = Column(String(200), nullable=False, comment="商户名称")
    is_active = Column(Boolean, default=True, comment="是否启用")

    # 分账配置
    revenue_model = Column(String(20), nullable=False, default="markup", comment="分账模式")
    markup_percentage = Column(Numeric(6, 2), default=0, comment="商户加价率")
    platform_markup_percentage = Column(Numeric(6, 2), default=15, comment="平台加价率")
    commission_percentage = Column(Numeric(6, 2), default=0, comment="平台佣金率")

    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        {'comment': '商户分账配置表'}
    )
