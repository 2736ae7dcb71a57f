# tests/dao/test_bargaining_setting_dao.py

from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession

from haggle.dao.bargaining.bargaining_setting_dao import BargainingSettingDao
from haggle.models import BargainingBehavior, MinPriceType

USER_ID = 501


async def _upsert(dao: BargainingSettingDao, product_id="P1", variant_id="V1", enabled=True,
                  min_type=MinPriceType.PERCENTAGE, value="80", original="100"):
    return await dao.upsert_setting(
        user_id=USER_ID,
        product_id=product_id,
        variant_id=variant_id,
        enabled=enabled,
        min_price_type=min_type,
        min_price_value=Decimal(value),
        original_price=Decimal(original) if original is not None else None,
        behavior=BargainingBehavior.NORMAL,
    )


async def test_upsert_is_keyed_on_user_product_variant(db_session: AsyncSession):
    dao = BargainingSettingDao(db_session)

    first = await _upsert(dao)
    second = await _upsert(dao, value="70")

    assert first.id == second.id
    assert second.min_price == Decimal("70.00")
    assert len(await dao.get_settings(USER_ID)) == 1


async def test_upsert_without_original_keeps_stored_price(db_session: AsyncSession):
    dao = BargainingSettingDao(db_session)
    await _upsert(dao, original="60")

    updated = await _upsert(dao, enabled=False, min_type=MinPriceType.FIXED, value="75", original=None)

    assert updated.original_price == Decimal("60.00")
    # A fixed floor above the original price is clamped down to it.
    assert updated.min_price == Decimal("60.00")
    assert updated.enabled is False


async def test_enabled_counts_are_per_distinct_product(db_session: AsyncSession):
    dao = BargainingSettingDao(db_session)
    await _upsert(dao, product_id="P1", variant_id="V1")
    await _upsert(dao, product_id="P1", variant_id="V2")
    await _upsert(dao, product_id="P2", variant_id="V1")
    await _upsert(dao, product_id="P3", variant_id="V1", enabled=False)

    assert await dao.count_enabled_distinct_products(USER_ID) == 2
    assert await dao.count_enabled_for_product(USER_ID, "P1") == 2
    assert await dao.enabled_product_ids(USER_ID) == {"P1", "P2"}
    assert await dao.enabled_product_ids(USER_ID, ["P2", "P3"]) == {"P2"}
    assert await dao.count_enabled_distinct_products(USER_ID + 1) == 0


async def test_disable_variant_or_whole_product(db_session: AsyncSession):
    dao = BargainingSettingDao(db_session)
    await _upsert(dao, product_id="P1", variant_id="V1")
    await _upsert(dao, product_id="P1", variant_id="V2")
    await _upsert(dao, product_id="P1", variant_id="V3")

    assert await dao.disable(USER_ID, "P1", "V1") == 1
    assert await dao.count_enabled_for_product(USER_ID, "P1") == 2

    assert await dao.disable(USER_ID, "P1") == 2
    assert await dao.count_enabled_distinct_products(USER_ID) == 0
    # Already-disabled rows are not counted again.
    assert await dao.disable(USER_ID, "P1") == 0
    # Rows are switched off, never deleted.
    assert len(await dao.get_settings(USER_ID, ["P1"])) == 3
