# haggle/services/bargaining/settings_service.py

import logging
from decimal import Decimal
from typing import Optional, List, Iterable

from haggle.core.context import AppContext
from haggle.dao.membership.membership_dao import UserMembershipDao
from haggle.dao.bargaining.bargaining_setting_dao import BargainingSettingDao
from haggle.models import BargainingBehavior
from haggle.schemas.bargaining.bargaining_schemas import (
    MinPriceSpec, BulkSelection, BargainingSettingRead, EnableResult, DisableResult,
    BulkUpdateResult, SkippedVariant
)
from haggle.services.base_service import BaseService, service_operation
from haggle.services.bargaining.quota_ledger import QuotaLedger
from haggle.services.exceptions import QuotaExceeded, NoInventory, InvalidPrice
from haggle.utils.pricing import to_decimal, to_money

logger = logging.getLogger(__name__)

QUOTA_EXCEEDED_MESSAGE = "You've reached your bargaining product limit. Please upgrade your plan to enable more products."

SKIP_NO_INVENTORY = "no_inventory"
SKIP_INVALID_PRICE = "invalid_price"

def _valid_price(value) -> Optional[Decimal]:
    """The price as money when it is a positive storable amount, else None."""
    if value is None:
        return None
    try:
        price = to_money(value)
    except ValueError:
        return None
    return price if price > 0 else None

def _check_min_price(min_price: MinPriceSpec) -> None:
    try:
        to_decimal(min_price.value)
    except ValueError as e:
        raise InvalidPrice("The minimum price is not a valid amount.") from e

class BargainingSettingsService(BaseService):
    """
    [Service Layer] Enable/disable/bulk-update bargaining on product variants.

    Every mutation takes the per-user lock first and holds it through the
    write, so the quota read and the setting write cannot interleave with
    another request of the same user.
    """
    def __init__(self, context: AppContext):
        super().__init__(context)
        self.setting_dao = BargainingSettingDao(context.db)
        self.membership_dao = UserMembershipDao(context.db)
        self.quota = QuotaLedger(context)

    @service_operation
    async def get_settings(self, user_id: int, product_ids: Optional[Iterable[str]] = None) -> List[BargainingSettingRead]:
        settings = await self.setting_dao.get_settings(user_id, product_ids)
        return [BargainingSettingRead.model_validate(s) for s in settings]

    @service_operation
    async def enable(
        self,
        user_id: int,
        product_id: str,
        variant_id: str,
        min_price: MinPriceSpec,
        behavior: BargainingBehavior,
        original_price: Decimal,
        inventory_quantity: int
    ) -> EnableResult:
        if inventory_quantity <= 0:
            raise NoInventory("This item is out of stock. Bargaining can only be enabled for items with inventory.")
        original = _valid_price(original_price)
        if original is None:
            raise InvalidPrice("This item has no valid price. Bargaining needs a price greater than zero.")
        _check_min_price(min_price)

        await self.membership_dao.lock_user(user_id)

        product_already_enabled = await self.setting_dao.count_enabled_for_product(user_id, product_id) > 0
        if not product_already_enabled:
            limits = await self.quota.get_limits(user_id)
            if not self.quota.allows(limits, 1):
                logger.info(
                    f"[BargainingSettings] User {user_id} at quota "
                    f"({limits.currently_enabled}/{limits.max_products}), refused product {product_id}."
                )
                raise QuotaExceeded(QUOTA_EXCEEDED_MESSAGE)

        setting = await self.setting_dao.upsert_setting(
            user_id=user_id,
            product_id=product_id,
            variant_id=variant_id,
            enabled=True,
            min_price_type=min_price.type,
            min_price_value=min_price.value,
            original_price=original,
            behavior=behavior
        )
        limits = await self.quota.get_limits(user_id)
        return EnableResult(setting=BargainingSettingRead.model_validate(setting), limits=limits)

    @service_operation
    async def disable(self, user_id: int, product_id: str, variant_id: Optional[str] = None) -> DisableResult:
        await self.membership_dao.lock_user(user_id)
        disabled = await self.setting_dao.disable(user_id, product_id, variant_id)
        limits = await self.quota.get_limits(user_id)
        return DisableResult(product_id=product_id, variant_id=variant_id, disabled=disabled, limits=limits)

    @service_operation
    async def bulk_update(self, user_id: int, selections: List[BulkSelection]) -> BulkUpdateResult:
        """
        Applies every selection in one savepoint. The quota is checked once,
        up front, against the number of products this request newly enables.
        Out-of-stock and unpriced variants are skipped and reported.
        """
        for selection in selections:
            _check_min_price(selection.min_price)

        await self.membership_dao.lock_user(user_id)

        enabled_before = await self.setting_dao.enabled_product_ids(
            user_id, [s.product_id for s in selections]
        )

        skipped: List[SkippedVariant] = []
        plan: List[tuple[BulkSelection, List[str]]] = []
        newly_enabled: set[str] = set()

        for selection in selections:
            if not selection.enabled:
                plan.append((selection, selection.variant_ids))
                continue

            eligible = []
            for variant_id in selection.variant_ids:
                quantity = selection.inventory_quantities.get(variant_id, 0)
                if quantity <= 0:
                    skipped.append(SkippedVariant(product_id=selection.product_id, variant_id=variant_id, reason=SKIP_NO_INVENTORY))
                elif _valid_price(selection.original_prices.get(variant_id)) is None:
                    skipped.append(SkippedVariant(product_id=selection.product_id, variant_id=variant_id, reason=SKIP_INVALID_PRICE))
                else:
                    eligible.append(variant_id)
            plan.append((selection, eligible))
            if eligible and selection.product_id not in enabled_before:
                newly_enabled.add(selection.product_id)

        if skipped:
            logger.info(f"[BargainingSettings] Bulk update for user {user_id} skipped {len(skipped)} variant(s).")

        if newly_enabled:
            limits = await self.quota.get_limits(user_id)
            if not self.quota.allows(limits, len(newly_enabled)):
                raise QuotaExceeded(
                    f"{QUOTA_EXCEEDED_MESSAGE} This update would enable {len(newly_enabled)} new product(s); "
                    f"you are using {limits.currently_enabled} of {limits.max_products}."
                )

        updated = []
        for selection, variant_ids in plan:
            for variant_id in variant_ids:
                original_price = _valid_price(selection.original_prices.get(variant_id))
                setting = await self.setting_dao.upsert_setting(
                    user_id=user_id,
                    product_id=selection.product_id,
                    variant_id=variant_id,
                    enabled=selection.enabled,
                    min_price_type=selection.min_price.type,
                    min_price_value=selection.min_price.value,
                    original_price=original_price,
                    behavior=selection.behavior
                )
                updated.append(BargainingSettingRead.model_validate(setting))

        limits = await self.quota.get_limits(user_id)
        return BulkUpdateResult(updated=updated, skipped=skipped, limits=limits)
