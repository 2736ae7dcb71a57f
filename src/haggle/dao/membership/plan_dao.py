# haggle/dao/membership/plan_dao.py

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from haggle.dao.base_dao import BaseDao
from haggle.models import MembershipPlan

class MembershipPlanDao(BaseDao[MembershipPlan]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(MembershipPlan, db_session)

    async def get_by_slug(self, slug: str) -> Optional[MembershipPlan]:
        return await self.get_one(where={"slug": slug})

    async def list_plans(self) -> list[MembershipPlan]:
        return await self.get_list(order=[MembershipPlan.price.asc(), MembershipPlan.id.asc()])
