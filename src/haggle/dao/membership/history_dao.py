from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from haggle.dao.base_dao import BaseDao
from haggle.models import MembershipHistory, MembershipChangeType
from haggle.utils.datetime_utils import utcnow

class MembershipHistoryDao(BaseDao[MembershipHistory]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(MembershipHistory, db_session)

    async def append_history(
        self,
        user_id: int,
        from_plan_id: Optional[int],
        to_plan_id: int,
        change_type: MembershipChangeType,
        reason: Optional[str] = None
    ) -> MembershipHistory:
        entry = MembershipHistory(
            user_id=user_id,
            from_plan_id=from_plan_id,
            to_plan_id=to_plan_id,
            change_type=change_type,
            reason=reason,
            change_date=utcnow()
        )
        return await self.add(entry)

    async def list_for_user(self, user_id: int, page: int = 0, limit: int = 0) -> list[MembershipHistory]:
        return await self.get_list(
            where={"user_id": user_id},
            order=[MembershipHistory.change_date.desc(), MembershipHistory.id.desc()],
            page=page,
            limit=limit,
            populate_existing=True
        )
