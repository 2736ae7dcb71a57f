# haggle/dao/bargaining/bargaining_setting_dao.py

from decimal import Decimal
from typing import Optional, Iterable
from sqlalchemy import select, func, distinct
from sqlalchemy.ext.asyncio import AsyncSession
from haggle.dao.base_dao import BaseDao
from haggle.models import BargainingSetting, BargainingBehavior, MinPriceType
from haggle.utils.pricing import clamp_min_price, to_money, Number

class BargainingSettingDao(BaseDao[BargainingSetting]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(BargainingSetting, db_session)

    async def get_setting(self, user_id: int, product_id: str, variant_id: str) -> Optional[BargainingSetting]:
        return await self.get_one(
            where={"user_id": user_id, "product_id": product_id, "variant_id": variant_id}
        )

    async def get_settings(self, user_id: int, product_ids: Optional[Iterable[str]] = None) -> list[BargainingSetting]:
        where = [BargainingSetting.user_id == user_id]
        if product_ids is not None:
            where.append(BargainingSetting.product_id.in_(list(product_ids)))
        return await self.get_list(
            where=where,
            order=[BargainingSetting.product_id.asc(), BargainingSetting.variant_id.asc()]
        )

    async def upsert_setting(
        self,
        user_id: int,
        product_id: str,
        variant_id: str,
        enabled: bool,
        min_price_type: MinPriceType,
        min_price_value: Number,
        original_price: Optional[Number],
        behavior: BargainingBehavior
    ) -> BargainingSetting:
        """
        Insert-or-update keyed on (user, product, variant). The min price is
        always clamped to [0, original_price] before it is written.
        An original_price of None keeps the stored one (0 for a new row).
        """
        setting = await self.get_setting(user_id, product_id, variant_id)

        if original_price is None:
            original = setting.original_price if setting is not None else Decimal("0")
        else:
            original = original_price
        original = max(to_money(original), Decimal("0.00"))
        min_price = clamp_min_price(min_price_type, min_price_value, original)

        if setting is None:
            setting = BargainingSetting(
                user_id=user_id,
                product_id=product_id,
                variant_id=variant_id,
                enabled=enabled,
                min_price=min_price,
                original_price=original,
                behavior=behavior
            )
            return await self.add(setting)

        setting.enabled = enabled
        setting.min_price = min_price
        setting.original_price = original
        setting.behavior = behavior
        await self.db_session.flush()
        return setting

    async def count_enabled_distinct_products(self, user_id: int) -> int:
        stmt = select(func.count(distinct(BargainingSetting.product_id))).where(
            BargainingSetting.user_id == user_id,
            BargainingSetting.enabled.is_(True)
        )
        executed = await self.db_session.execute(stmt)
        return executed.scalar() or 0

    async def count_enabled_for_product(self, user_id: int, product_id: str) -> int:
        return await self.count(where=[
            BargainingSetting.user_id == user_id,
            BargainingSetting.product_id == product_id,
            BargainingSetting.enabled.is_(True)
        ])

    async def enabled_product_ids(self, user_id: int, product_ids: Optional[Iterable[str]] = None) -> set[str]:
        stmt = select(distinct(BargainingSetting.product_id)).where(
            BargainingSetting.user_id == user_id,
            BargainingSetting.enabled.is_(True)
        )
        if product_ids is not None:
            stmt = stmt.where(BargainingSetting.product_id.in_(list(product_ids)))
        executed = await self.db_session.execute(stmt)
        return set(executed.scalars().all())

    async def disable(self, user_id: int, product_id: str, variant_id: Optional[str] = None) -> int:
        """Disables one variant, or every variant of the product. Returns the number of rows switched off."""
        where = [
            BargainingSetting.user_id == user_id,
            BargainingSetting.product_id == product_id,
            BargainingSetting.enabled.is_(True)
        ]
        if variant_id is not None:
            where.append(BargainingSetting.variant_id == variant_id)
        return await self.update_where(where, {"enabled": False})
