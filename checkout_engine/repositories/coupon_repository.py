"""
优惠券数据库操作层
"""

import logging
import uuid
from typing import List, Optional, Tuple
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update, and_, or_, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from checkout_engine.core.money import quantize_money
from checkout_engine.models.coupon import (
    Coupon,
    CouponCreate,
    CouponStatus,
    CouponUsage,
    LedgerState,
    normalize_code,
)
from checkout_engine.models.discount import DiscountSource
from checkout_engine.models.database.coupon_db import CouponDB, CouponUsageDB

logger = logging.getLogger(__name__)


class CouponRepository:
    """优惠券数据库操作类"""

    source = DiscountSource.COUPON

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_code(self, code: str) -> Optional[CouponDB]:
        """根据优惠券代码获取优惠券（包含使用记录）"""
        result = await self.db.execute(
            select(CouponDB)
            .options(selectinload(CouponDB.usages))
            .where(CouponDB.code == normalize_code(code))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_model_by_code(self, code: str) -> Optional[Coupon]:
        db_coupon = await self.get_by_code(code)
        return self.to_model(db_coupon) if db_coupon else None

    async def get_ledger_state(self, code: str) -> Optional[LedgerState]:
        """读取核销计数，不加载使用记录"""
        result = await self.db.execute(
            select(CouponDB)
            .where(CouponDB.code == normalize_code(code))
            .execution_options(populate_existing=True)
        )
        db_coupon = result.scalar_one_or_none()
        return self._to_state(db_coupon) if db_coupon else None

    async def list_ledger_states(self) -> List[LedgerState]:
        result = await self.db.execute(
            select(CouponDB)
            .order_by(CouponDB.code)
            .execution_options(populate_existing=True)
        )
        return [self._to_state(row) for row in result.scalars().all()]

    async def count_user_usage(self, rule_id: str, user_id: str) -> int:
        """获取用户对特定优惠券的使用次数"""
        result = await self.db.execute(
            select(func.count(CouponUsageDB.usage_id)).where(
                and_(
                    CouponUsageDB.coupon_id == rule_id,
                    CouponUsageDB.user_id == user_id
                )
            )
        )
        return result.scalar() or 0

    async def try_record_usage(self, state: LedgerState, entry: CouponUsage, new_status: CouponStatus) -> bool:
        """
        条件更新计数并追加使用记录

        以读取时的 times_used 作为比较值，期间有其他核销写入则更新0行，
        返回False由调用方重新读取后重试
        """
        times_used = state.times_used + 1
        total_discount = state.total_discount_given + entry.discount_applied
        total_revenue = state.total_revenue + entry.order_amount

        result = await self.db.execute(
            update(CouponDB)
            .where(
                and_(
                    CouponDB.coupon_id == state.rule_id,
                    CouponDB.times_used == state.times_used
                )
            )
            .values(
                times_used=times_used,
                total_discount_given=total_discount,
                total_revenue=total_revenue,
                average_order_value=quantize_money(total_revenue / times_used, state.currency),
                status=new_status.value,
                updated_at=entry.used_at
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        self.db.add(
            CouponUsageDB(
                usage_id=str(uuid.uuid4()),
                coupon_id=state.rule_id,
                user_id=entry.user_id,
                order_ref=entry.order_ref,
                order_amount=entry.order_amount,
                discount_applied=entry.discount_applied,
                used_at=entry.used_at
            )
        )
        await self.db.flush()
        return True

    async def usage_totals(self, rule_id: str) -> Tuple[int, Decimal, Decimal]:
        """从使用记录重新汇总：次数、折扣合计、订单金额合计"""
        result = await self.db.execute(
            select(
                func.count(CouponUsageDB.usage_id),
                func.sum(CouponUsageDB.discount_applied),
                func.sum(CouponUsageDB.order_amount)
            ).where(CouponUsageDB.coupon_id == rule_id)
        )
        count, discount, revenue = result.one()
        return count or 0, Decimal(str(discount or 0)), Decimal(str(revenue or 0))

    async def update_status(self, rule_id: str, status: CouponStatus) -> bool:
        """更新缓存状态（仅用于展示）"""
        result = await self.db.execute(
            update(CouponDB)
            .where(CouponDB.coupon_id == rule_id)
            .values(status=status.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def get_auto_apply_candidates(self, tenant_id: Optional[str] = None) -> List[Coupon]:
        """获取自动应用候选：启用、自动应用，且属于该商户或全平台通用"""
        conditions = [CouponDB.is_active.is_(True), CouponDB.auto_apply.is_(True)]
        scope = [CouponDB.is_global.is_(True), CouponDB.tenant_id.is_(None)]
        if tenant_id:
            scope.append(CouponDB.tenant_id == tenant_id)
        conditions.append(or_(*scope))

        result = await self.db.execute(
            select(CouponDB)
            .options(selectinload(CouponDB.usages))
            .where(and_(*conditions))
            .order_by(CouponDB.priority.desc())
            .execution_options(populate_existing=True)
        )
        return [self.to_model(row) for row in result.scalars().all()]

    async def create(self, coupon_data: CouponCreate) -> CouponDB:
        """创建优惠券"""
        payload = coupon_data.model_dump()
        payload["discount_kind"] = coupon_data.discount_kind.value
        payload["currency"] = coupon_data.currency.value
        payload["applicable_to"] = coupon_data.applicable_to.value
        payload["allowed_roles"] = [role.value for role in coupon_data.allowed_roles]

        db_coupon = CouponDB(
            coupon_id=str(uuid.uuid4()),
            status=CouponStatus.ACTIVE.value,
            times_used=0,
            total_discount_given=Decimal("0"),
            total_revenue=Decimal("0"),
            average_order_value=Decimal("0"),
            **payload
        )
        self.db.add(db_coupon)
        await self.db.flush()
        logger.info(f"创建优惠券: {db_coupon.code}")
        return db_coupon

    def _to_state(self, db_coupon: CouponDB) -> LedgerState:
        return LedgerState(
            source=self.source,
            rule_id=db_coupon.coupon_id,
            code=db_coupon.code,
            currency=db_coupon.currency,
            is_active=db_coupon.is_active,
            starts_at=db_coupon.starts_at,
            ends_at=db_coupon.ends_at,
            status=CouponStatus(db_coupon.status or CouponStatus.ACTIVE.value),
            usage_limit=db_coupon.usage_limit,
            usage_limit_per_user=db_coupon.usage_limit_per_user,
            times_used=db_coupon.times_used or 0,
            total_discount_given=Decimal(str(db_coupon.total_discount_given or 0)),
            total_revenue=Decimal(str(db_coupon.total_revenue or 0))
        )

    def to_model(self, db_coupon: CouponDB) -> Coupon:
        """转换为Pydantic模型"""
        return Coupon(
            coupon_id=db_coupon.coupon_id,
            code=db_coupon.code,
            name=db_coupon.name,
            description=db_coupon.description,
            discount_kind=db_coupon.discount_kind,
            discount_value=db_coupon.discount_value,
            max_discount_amount=db_coupon.max_discount_amount,
            buy_quantity=db_coupon.buy_quantity,
            get_quantity=db_coupon.get_quantity,
            currency=db_coupon.currency,
            minimum_purchase_amount=db_coupon.minimum_purchase_amount or Decimal("0"),
            maximum_purchase_amount=db_coupon.maximum_purchase_amount,
            minimum_items=db_coupon.minimum_items or 0,
            maximum_items=db_coupon.maximum_items,
            starts_at=db_coupon.starts_at,
            ends_at=db_coupon.ends_at,
            is_active=db_coupon.is_active,
            status=db_coupon.status or CouponStatus.ACTIVE.value,
            usage_limit=db_coupon.usage_limit,
            usage_limit_per_user=db_coupon.usage_limit_per_user,
            applicable_to=db_coupon.applicable_to or "all",
            included_products=db_coupon.included_products or [],
            excluded_products=db_coupon.excluded_products or [],
            included_categories=db_coupon.included_categories or [],
            excluded_categories=db_coupon.excluded_categories or [],
            included_brands=db_coupon.included_brands or [],
            excluded_brands=db_coupon.excluded_brands or [],
            allowed_tenants=db_coupon.allowed_tenants or [],
            tenant_id=db_coupon.tenant_id,
            is_global=db_coupon.is_global,
            allowed_users=db_coupon.allowed_users or [],
            excluded_users=db_coupon.excluded_users or [],
            allowed_roles=db_coupon.allowed_roles or [],
            first_purchase_only=db_coupon.first_purchase_only,
            minimum_account_age_days=db_coupon.minimum_account_age_days,
            can_combine_with_other_coupons=db_coupon.can_combine_with_other_coupons,
            can_combine_with_sales=db_coupon.can_combine_with_sales,
            priority=db_coupon.priority or 0,
            auto_apply=db_coupon.auto_apply,
            usage_log=[
                CouponUsage(
                    user_id=usage.user_id,
                    used_at=usage.used_at,
                    order_amount=usage.order_amount,
                    discount_applied=usage.discount_applied,
                    order_ref=usage.order_ref
                )
                for usage in db_coupon.usages
            ],
            created_at=db_coupon.created_at or datetime.now(),
            updated_at=db_coupon.updated_at or datetime.now()
        )
