# haggle/services/bargaining/quota_ledger.py

import logging
from typing import Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError

from haggle.core.config import settings
from haggle.core.context import AppContext
from haggle.dao.membership.plan_dao import MembershipPlanDao
from haggle.dao.membership.membership_dao import UserMembershipDao
from haggle.dao.bargaining.bargaining_setting_dao import BargainingSettingDao
from haggle.models import MembershipPlan
from haggle.schemas.bargaining.bargaining_schemas import BargainingLimits
from haggle.services.base_service import BaseService, service_operation

logger = logging.getLogger(__name__)

DEFAULT_FREE_PLAN_NAME = "Free"

class QuotaLedger(BaseService):
    """
    [Service Layer] Answers "how many products may this user have bargaining
    enabled on, and how many do they have now".

    The plan lookup never fails outward: when it cannot be read it degrades
    to the free tier, and when even that is unreadable, to the built-in free
    limit. It never degrades to unlimited.
    """
    def __init__(self, context: AppContext):
        super().__init__(context)
        self.plan_dao = MembershipPlanDao(context.db)
        self.membership_dao = UserMembershipDao(context.db)
        self.setting_dao = BargainingSettingDao(context.db)

    @staticmethod
    def _plan_limits(plan: MembershipPlan) -> Tuple[str, str, int]:
        return plan.slug, plan.name, plan.product_limit

    @staticmethod
    def default_plan_limits() -> Tuple[str, str, int]:
        return settings.FREE_PLAN_SLUG, DEFAULT_FREE_PLAN_NAME, settings.DEFAULT_FREE_PRODUCT_LIMIT

    async def _active_plan(self, user_id: int) -> Optional[MembershipPlan]:
        try:
            async with self.db.begin_nested():
                membership = await self.membership_dao.get_active_membership(user_id)
                return membership.plan if membership else None
        except SQLAlchemyError:
            logger.warning(f"[QuotaLedger] Active membership lookup failed for user {user_id}, using free tier.", exc_info=True)
            return None

    async def _free_plan(self) -> Optional[MembershipPlan]:
        try:
            async with self.db.begin_nested():
                return await self.plan_dao.get_by_slug(settings.FREE_PLAN_SLUG)
        except SQLAlchemyError:
            logger.warning("[QuotaLedger] Free plan lookup failed, using built-in defaults.", exc_info=True)
            return None

    async def resolve_plan_limits(self, user_id: int) -> Tuple[str, str, int]:
        """(plan_slug, plan_name, max_products) for the user's current plan."""
        plan = await self._active_plan(user_id)
        if plan is None:
            plan = await self._free_plan()
        if plan is None:
            logger.warning(f"[QuotaLedger] No plan resolvable for user {user_id}, using built-in free limits.")
            return self.default_plan_limits()
        return self._plan_limits(plan)

    async def get_limits(self, user_id: int) -> BargainingLimits:
        """
        Current quota for the user. Counting enabled products is not degraded:
        a failure here propagates, since a caller about to write cannot decide
        without it.
        """
        plan_slug, plan_name, max_products = await self.resolve_plan_limits(user_id)
        currently_enabled = await self.setting_dao.count_enabled_distinct_products(user_id)
        return BargainingLimits(
            max_products=max_products,
            currently_enabled=currently_enabled,
            plan_slug=plan_slug,
            plan_name=plan_name,
        )

    @staticmethod
    def allows(limits: BargainingLimits, additional_products: int) -> bool:
        if additional_products <= 0 or limits.is_unlimited:
            return True
        return limits.currently_enabled + additional_products <= limits.max_products

    @service_operation
    async def get_user_limits(self, user_id: int) -> BargainingLimits:
        """Read-only quota lookup. Degrades to the built-in free limits on any store failure."""
        try:
            async with self.db.begin_nested():
                return await self.get_limits(user_id)
        except SQLAlchemyError:
            logger.warning(f"[QuotaLedger] Quota lookup failed for user {user_id}, returning free defaults.", exc_info=True)
            plan_slug, plan_name, max_products = self.default_plan_limits()
            return BargainingLimits(
                max_products=max_products,
                currently_enabled=0,
                plan_slug=plan_slug,
                plan_name=plan_name,
            )
