from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from haggle.dao.base_dao import BaseDao
from haggle.models import StoreConnection, StoreConnectionStatus

class StoreConnectionDao(BaseDao[StoreConnection]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(StoreConnection, db_session)

    async def get_active_for_user(self, user_id: int) -> Optional[StoreConnection]:
        return await self.get_one(
            where={"user_id": user_id, "status": StoreConnectionStatus.ACTIVE},
            order=[StoreConnection.updated_at.desc(), StoreConnection.id.desc()]
        )
