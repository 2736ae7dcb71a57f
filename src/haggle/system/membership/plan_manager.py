# haggle/system/membership/plan_manager.py

import logging
from sqlalchemy.ext.asyncio import AsyncSession
from haggle.models import MembershipPlan
from haggle.dao.membership.plan_dao import MembershipPlanDao
from haggle.schemas.membership.membership_schemas import PlanCreate
from haggle.services.exceptions import ServiceException

logger = logging.getLogger(__name__)

class PlanManager:
    """[System Layer] Manages membership plan reference data."""
    def __init__(self, db: AsyncSession):
        self.db = db
        self.dao = MembershipPlanDao(db)

    async def create_plan(self, plan_data: PlanCreate) -> MembershipPlan:
        if await self.dao.get_by_slug(plan_data.slug):
            raise ServiceException(f"Plan with slug '{plan_data.slug}' already exists.")
        new_plan = MembershipPlan(**plan_data.model_dump())
        return await self.dao.add(new_plan)

    async def sync_plans(self, plans: list[PlanCreate]) -> list[MembershipPlan]:
        """
        Creates missing plans by slug. Existing plans are left untouched,
        since memberships and history rows point at them.
        """
        synced = []
        for plan_data in plans:
            existing = await self.dao.get_by_slug(plan_data.slug)
            if existing:
                logger.info(f"[PlanManager] Plan '{plan_data.slug}' exists, skipping.")
                synced.append(existing)
                continue
            synced.append(await self.create_plan(plan_data))
            logger.info(f"[PlanManager] Plan '{plan_data.slug}' created.")
        return synced
