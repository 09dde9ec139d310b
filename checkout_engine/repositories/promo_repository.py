"""
促销码数据库操作层
计数列与优惠券表同样由条件更新维护
"""

import uuid
from typing import List, Optional, Tuple
from decimal import Decimal

from sqlalchemy import select, update, and_, or_, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from checkout_engine.core.money import quantize_money
from checkout_engine.models.coupon import CouponStatus, CouponUsage, LedgerState, normalize_code
from checkout_engine.models.discount import DiscountSource
from checkout_engine.models.promo import Promo
from checkout_engine.models.database.promo_db import PromoDB, PromoUsageDB


class PromoRepository:
    """促销码数据库操作类"""

    source = DiscountSource.PROMO

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_code(self, code: str) -> Optional[PromoDB]:
        result = await self.db.execute(
            select(PromoDB)
            .options(selectinload(PromoDB.usages))
            .where(PromoDB.code == normalize_code(code))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_model_by_code(self, code: str) -> Optional[Promo]:
        db_promo = await self.get_by_code(code)
        return self.to_model(db_promo) if db_promo else None

    async def get_ledger_state(self, code: str) -> Optional[LedgerState]:
        result = await self.db.execute(
            select(PromoDB)
            .where(PromoDB.code == normalize_code(code))
            .execution_options(populate_existing=True)
        )
        db_promo = result.scalar_one_or_none()
        return self._to_state(db_promo) if db_promo else None

    async def list_ledger_states(self) -> List[LedgerState]:
        result = await self.db.execute(
            select(PromoDB)
            .order_by(PromoDB.code)
            .execution_options(populate_existing=True)
        )
        return [self._to_state(row) for row in result.scalars().all()]

    async def count_user_usage(self, rule_id: str, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(PromoUsageDB.usage_id)).where(
                and_(
                    PromoUsageDB.promo_id == rule_id,
                    PromoUsageDB.user_id == user_id
                )
            )
        )
        return result.scalar() or 0

    async def try_record_usage(self, state: LedgerState, entry: CouponUsage, new_status: CouponStatus) -> bool:
        """按读取时的 used_count 条件更新，并追加使用记录"""
        used_count = state.times_used + 1
        total_revenue = state.total_revenue + entry.order_amount

        result = await self.db.execute(
            update(PromoDB)
            .where(
                and_(
                    PromoDB.promo_id == state.rule_id,
                    PromoDB.used_count == state.times_used
                )
            )
            .values(
                used_count=used_count,
                total_discount_given=state.total_discount_given + entry.discount_applied,
                total_revenue=total_revenue,
                average_order_value=quantize_money(total_revenue / used_count, state.currency),
                status=new_status.value,
                updated_at=entry.used_at
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        self.db.add(
            PromoUsageDB(
                usage_id=str(uuid.uuid4()),
                promo_id=state.rule_id,
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
        result = await self.db.execute(
            select(
                func.count(PromoUsageDB.usage_id),
                func.sum(PromoUsageDB.discount_applied),
                func.sum(PromoUsageDB.order_amount)
            ).where(PromoUsageDB.promo_id == rule_id)
        )
        count, discount, revenue = result.one()
        return count or 0, Decimal(str(discount or 0)), Decimal(str(revenue or 0))

    async def update_status(self, rule_id: str, status: CouponStatus) -> bool:
        result = await self.db.execute(
            update(PromoDB)
            .where(PromoDB.promo_id == rule_id)
            .values(status=status.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def get_auto_apply_candidates(self, tenant_id: Optional[str] = None) -> List[Promo]:
        conditions = [PromoDB.is_active.is_(True), PromoDB.auto_apply.is_(True)]
        scope = [PromoDB.is_global.is_(True), PromoDB.tenant_id.is_(None)]
        if tenant_id:
            scope.append(PromoDB.tenant_id == tenant_id)
        conditions.append(or_(*scope))

        result = await self.db.execute(
            select(PromoDB)
            .options(selectinload(PromoDB.usages))
            .where(and_(*conditions))
            .order_by(PromoDB.priority.desc())
            .execution_options(populate_existing=True)
        )
        return [self.to_model(row) for row in result.scalars().all()]

    def _to_state(self, db_promo: PromoDB) -> LedgerState:
        return LedgerState(
            source=self.source,
            rule_id=db_promo.promo_id,
            code=db_promo.code,
            currency=db_promo.currency,
            is_active=db_promo.is_active,
            starts_at=db_promo.starts_at,
            ends_at=db_promo.ends_at,
            status=CouponStatus(db_promo.status or CouponStatus.ACTIVE.value),
            usage_limit=db_promo.usage_limit,
            usage_limit_per_user=db_promo.usage_limit_per_customer,
            times_used=db_promo.used_count or 0,
            total_discount_given=Decimal(str(db_promo.total_discount_given or 0)),
            total_revenue=Decimal(str(db_promo.total_revenue or 0))
        )

    def to_model(self, db_promo: PromoDB) -> Promo:
        """转换为Pydantic模型"""
        return Promo(
            promo_id=db_promo.promo_id,
            code=db_promo.code,
            name=db_promo.name,
            description=db_promo.description,
            promo_type=db_promo.promo_type,
            discount_value=db_promo.discount_value,
            maximum_discount=db_promo.maximum_discount,
            minimum_order_value=db_promo.minimum_order_value or Decimal("0"),
            currency=db_promo.currency,
            usage_limit=db_promo.usage_limit,
            usage_limit_per_customer=db_promo.usage_limit_per_customer,
            starts_at=db_promo.starts_at,
            ends_at=db_promo.ends_at,
            is_active=db_promo.is_active,
            status=db_promo.status or CouponStatus.ACTIVE.value,
            applicable_products=db_promo.applicable_products or [],
            applicable_categories=db_promo.applicable_categories or [],
            applicable_brands=db_promo.applicable_brands or [],
            excluded_products=db_promo.excluded_products or [],
            applicable_user_types=db_promo.applicable_user_types or "all",
            priority=db_promo.priority or 0,
            tenant_id=db_promo.tenant_id,
            is_global=db_promo.is_global,
            auto_apply=db_promo.auto_apply,
            usage_log=[
                CouponUsage(
                    user_id=usage.user_id,
                    used_at=usage.used_at,
                    order_amount=usage.order_amount,
                    discount_applied=usage.discount_applied,
                    order_ref=usage.order_ref
                )
                for usage in db_promo.usages
            ]
        )
