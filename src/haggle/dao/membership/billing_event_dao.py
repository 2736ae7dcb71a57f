from typing import Optional, Any
from sqlalchemy.ext.asyncio import AsyncSession
from haggle.dao.base_dao import BaseDao
from haggle.models import BillingEvent, BillingEventType
from haggle.utils.datetime_utils import utcnow

class BillingEventDao(BaseDao[BillingEvent]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(BillingEvent, db_session)

    async def append_billing_event(
        self,
        user_id: int,
        event_type: BillingEventType | str,
        status: str,
        plan_id: Optional[int] = None,
        charge_id: Optional[str] = None,
        session_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None
    ) -> BillingEvent:
        event = BillingEvent(
            user_id=user_id,
            event_type=event_type.value if isinstance(event_type, BillingEventType) else event_type,
            status=status,
            plan_id=plan_id,
            charge_id=charge_id,
            session_id=session_id,
            details=details or {},
            created_at=utcnow()
        )
        return await self.add(event)

    async def list_for_user(self, user_id: int, page: int = 0, limit: int = 0) -> list[BillingEvent]:
        return await self.get_list(
            where={"user_id": user_id},
            order=[BillingEvent.created_at.desc(), BillingEvent.id.desc()],
            page=page,
            limit=limit,
            populate_existing=True
        )
