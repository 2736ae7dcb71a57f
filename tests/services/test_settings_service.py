# tests/services/test_settings_service.py

from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession

from haggle.dao.bargaining.bargaining_setting_dao import BargainingSettingDao
from haggle.models import BargainingBehavior, MinPriceType
from haggle.schemas.bargaining.bargaining_schemas import MinPriceSpec, BulkSelection
from haggle.services.bargaining.settings_service import BargainingSettingsService, QUOTA_EXCEEDED_MESSAGE
from haggle.services.exceptions import QuotaExceeded, NoInventory, InvalidPrice

USER_ID = 701

EIGHTY_PERCENT = MinPriceSpec(type=MinPriceType.PERCENTAGE, value=Decimal("80"))


async def _enable(service: BargainingSettingsService, product_id: str, variant_id: str = "V1",
                  original_price: str = "100", inventory_quantity: int = 5, min_price: MinPriceSpec = EIGHTY_PERCENT):
    return await service.enable(
        user_id=USER_ID,
        product_id=product_id,
        variant_id=variant_id,
        min_price=min_price,
        behavior=BargainingBehavior.NORMAL,
        original_price=Decimal(original_price),
        inventory_quantity=inventory_quantity,
    )

# ==============================================================================
# 1. Enable / Disable
# ==============================================================================

async def test_enable_resolves_percentage_floor(make_context):
    """A free user enables a $100 variant at 80% and gets an $80.00 floor."""
    service = BargainingSettingsService(make_context(USER_ID))

    result = await _enable(service, "P1")

    assert result.success is True
    assert result.data.setting.min_price == Decimal("80.00")
    assert result.data.setting.enabled is True
    assert result.data.limits.currently_enabled == 1
    assert result.data.limits.max_products == 10


async def test_enable_refused_at_plan_limit(make_context, enable_products, db_session: AsyncSession):
    await enable_products(USER_ID, 10)
    service = BargainingSettingsService(make_context(USER_ID))

    result = await _enable(service, "P11")

    assert result.success is False
    assert result.error == QuotaExceeded.code
    assert result.message == QUOTA_EXCEEDED_MESSAGE
    dao = BargainingSettingDao(db_session)
    assert await dao.count_enabled_distinct_products(USER_ID) == 10
    assert await dao.get_setting(USER_ID, "P11", "V1") is None


async def test_more_variants_of_enabled_product_do_not_use_quota(make_context, enable_products):
    await enable_products(USER_ID, 10)
    service = BargainingSettingsService(make_context(USER_ID))

    result = await _enable(service, "P3", variant_id="V2")

    assert result.success is True
    assert result.data.limits.currently_enabled == 10


async def test_enable_is_idempotent(make_context, db_session: AsyncSession):
    service = BargainingSettingsService(make_context(USER_ID))

    await _enable(service, "P1")
    second = await _enable(service, "P1", min_price=MinPriceSpec(type=MinPriceType.FIXED, value=Decimal("90")))

    assert second.success is True
    assert second.data.setting.min_price == Decimal("90.00")
    assert second.data.limits.currently_enabled == 1
    assert len(await BargainingSettingDao(db_session).get_settings(USER_ID)) == 1


async def test_enable_refuses_out_of_stock_variant(make_context, db_session: AsyncSession):
    service = BargainingSettingsService(make_context(USER_ID))

    result = await _enable(service, "P1", inventory_quantity=0)

    assert result.success is False
    assert result.error == NoInventory.code
    assert await BargainingSettingDao(db_session).get_setting(USER_ID, "P1", "V1") is None


async def test_enable_refuses_unpriced_variant(make_context, db_session: AsyncSession):
    service = BargainingSettingsService(make_context(USER_ID))

    result = await _enable(service, "P1", original_price="0")

    assert result.success is False
    assert result.error == InvalidPrice.code
    assert await BargainingSettingDao(db_session).get_setting(USER_ID, "P1", "V1") is None


async def test_disable_frees_quota(make_context, enable_products):
    await enable_products(USER_ID, 10)
    service = BargainingSettingsService(make_context(USER_ID))

    disabled = await service.disable(USER_ID, "P4")
    assert disabled.success is True
    assert disabled.data.disabled == 1
    assert disabled.data.limits.currently_enabled == 9

    assert (await _enable(service, "P11")).success is True


async def test_get_settings_filters_by_product(make_context, enable_products):
    await enable_products(USER_ID, 3)
    service = BargainingSettingsService(make_context(USER_ID))

    result = await service.get_settings(USER_ID, ["P1", "P3"])

    assert result.success is True
    assert [s.product_id for s in result.data] == ["P1", "P3"]

# ==============================================================================
# 2. Bulk Update
# ==============================================================================

def _selection(product_id: str, variants: dict, enabled: bool = True) -> BulkSelection:
    """`variants` maps variant id -> (original price, inventory)."""
    return BulkSelection(
        product_id=product_id,
        variant_ids=list(variants),
        enabled=enabled,
        min_price=EIGHTY_PERCENT,
        behavior=BargainingBehavior.HIGH,
        original_prices={v: Decimal(price) for v, (price, _) in variants.items()},
        inventory_quantities={v: qty for v, (_, qty) in variants.items()},
    )


async def test_bulk_update_skips_ineligible_variants(make_context):
    service = BargainingSettingsService(make_context(USER_ID))

    result = await service.bulk_update(USER_ID, [
        _selection("P1", {"V1": ("50", 3), "V2": ("50", 0), "V3": ("0", 4)}),
        _selection("P2", {"V1": ("20", 0)}),
    ])

    assert result.success is True
    assert [(s.product_id, s.variant_id) for s in result.data.updated] == [("P1", "V1")]
    assert result.data.updated[0].min_price == Decimal("40.00")
    reasons = {(s.product_id, s.variant_id): s.reason for s in result.data.skipped}
    assert reasons == {
        ("P1", "V2"): "no_inventory",
        ("P1", "V3"): "invalid_price",
        ("P2", "V1"): "no_inventory",
    }
    assert result.data.limits.currently_enabled == 1


async def test_bulk_update_counts_only_newly_enabled_products(make_context, enable_products):
    await enable_products(USER_ID, 9)
    service = BargainingSettingsService(make_context(USER_ID))

    result = await service.bulk_update(USER_ID, [
        _selection("P1", {"V2": ("30", 1)}),
        _selection("P2", {"V2": ("30", 1)}),
        _selection("P10", {"V1": ("30", 1), "V2": ("30", 1)}),
    ])

    assert result.success is True
    assert result.data.limits.currently_enabled == 10


async def test_bulk_update_refused_when_delta_exceeds_quota(make_context, enable_products, db_session: AsyncSession):
    await enable_products(USER_ID, 9)
    service = BargainingSettingsService(make_context(USER_ID))

    result = await service.bulk_update(USER_ID, [
        _selection("P10", {"V1": ("30", 1)}),
        _selection("P11", {"V1": ("30", 1)}),
        # Disabling in the same request does not make room up front.
        _selection("P1", {"V1": ("100", 1)}, enabled=False),
    ])

    assert result.success is False
    assert result.error == QuotaExceeded.code
    assert result.message.startswith(QUOTA_EXCEEDED_MESSAGE)
    dao = BargainingSettingDao(db_session)
    assert await dao.count_enabled_distinct_products(USER_ID) == 9
    assert await dao.get_setting(USER_ID, "P10", "V1") is None
    assert (await dao.get_setting(USER_ID, "P1", "V1")).enabled is True


async def test_bulk_disable_keeps_rows(make_context, enable_products, db_session: AsyncSession):
    await enable_products(USER_ID, 2)
    service = BargainingSettingsService(make_context(USER_ID))

    result = await service.bulk_update(USER_ID, [_selection("P1", {"V1": ("100", 0)}, enabled=False)])

    assert result.success is True
    assert result.data.skipped == []
    assert result.data.updated[0].enabled is False
    assert result.data.limits.currently_enabled == 1
    assert (await BargainingSettingDao(db_session).get_setting(USER_ID, "P1", "V1")) is not None

# ==============================================================================
# 3. Price range
# ==============================================================================

async def test_enable_with_unstorable_price_is_refused(make_context, db_session: AsyncSession):
    service = BargainingSettingsService(make_context(USER_ID))

    result = await _enable(service, "P1", original_price="1e30")

    assert result.success is False
    assert result.error == InvalidPrice.code
    assert await BargainingSettingDao(db_session).get_setting(USER_ID, "P1", "V1") is None


async def test_enable_with_non_finite_floor_is_refused(make_context):
    service = BargainingSettingsService(make_context(USER_ID))
    floor = MinPriceSpec.model_construct(type=MinPriceType.FIXED, value=Decimal("Infinity"))

    result = await _enable(service, "P1", min_price=floor)

    assert result.success is False
    assert result.error == InvalidPrice.code


async def test_bulk_update_skips_unstorable_price(make_context):
    service = BargainingSettingsService(make_context(USER_ID))
    selection = _selection("P1", {"V1": ("20", 1), "V2": ("25", 1)})
    selection.original_prices["V2"] = Decimal("1e30")

    result = await service.bulk_update(USER_ID, [selection])

    assert result.success is True
    assert [s.variant_id for s in result.data.updated] == ["V1"]
    assert [(s.variant_id, s.reason) for s in result.data.skipped] == [("V2", "invalid_price")]
