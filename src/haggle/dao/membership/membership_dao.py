# haggle/dao/membership/membership_dao.py

from datetime import datetime
from typing import Optional, Any
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from haggle.dao.base_dao import BaseDao
from haggle.models import UserMembership, MembershipStatus
from haggle.utils.datetime_utils import utcnow

# First key of pg_advisory_xact_lock(int, int); the second key is the user id.
MEMBERSHIP_LOCK_NAMESPACE = 4207

class UserMembershipDao(BaseDao[UserMembership]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(UserMembership, db_session)

    async def lock_user(self, user_id: int) -> None:
        """
        Serializes membership and settings mutations for one user until the
        surrounding transaction ends. Only PostgreSQL needs it; SQLite already
        serializes writers.
        """
        if self.db_session.get_bind().dialect.name != "postgresql":
            return
        await self.db_session.execute(
            select(func.pg_advisory_xact_lock(MEMBERSHIP_LOCK_NAMESPACE, user_id))
        )

    async def get_active_membership(self, user_id: int, for_update: bool = False) -> Optional[UserMembership]:
        return await self.get_one(
            where={"user_id": user_id, "status": MembershipStatus.ACTIVE},
            order=[UserMembership.start_date.desc(), UserMembership.id.desc()],
            for_update=for_update
        )

    async def get_pending_membership(
        self,
        user_id: int,
        plan_id: Optional[int] = None,
        session_id: Optional[str] = None,
        charge_id: Optional[str] = None
    ) -> Optional[UserMembership]:
        where: dict[str, Any] = {"user_id": user_id, "status": MembershipStatus.PENDING}
        if plan_id is not None:
            where["plan_id"] = plan_id
        if session_id:
            where["session_id"] = session_id
        if charge_id:
            where["external_charge_id"] = charge_id
        return await self.get_one(where=where, order=[UserMembership.id.desc()], for_update=True)

    async def get_by_charge_id(self, charge_id: str, for_update: bool = True) -> Optional[UserMembership]:
        return await self.get_one(
            where={"external_charge_id": charge_id},
            order=[UserMembership.id.desc()],
            for_update=for_update
        )

    async def get_by_session_id(self, session_id: str) -> Optional[UserMembership]:
        return await self.get_one(where={"session_id": session_id}, order=[UserMembership.id.desc()])

    async def create_membership(
        self,
        user_id: int,
        plan_id: int,
        status: MembershipStatus,
        session_id: Optional[str] = None,
        start_date: Optional[datetime] = None
    ) -> UserMembership:
        membership = UserMembership(
            user_id=user_id,
            plan_id=plan_id,
            status=status,
            start_date=start_date or utcnow(),
            session_id=session_id
        )
        await self.add(membership)
        await self.db_session.refresh(membership, attribute_names=["plan"])
        return membership

    async def transition_to_active(
        self,
        membership: UserMembership,
        charge_id: Optional[str] = None,
        billing_status: Optional[str] = None,
        next_billing_date: Optional[datetime] = None,
        trial_end_date: Optional[datetime] = None,
        billing_details: Optional[dict] = None
    ) -> UserMembership:
        """pending -> active. The caller must have cancelled any other active row first."""
        membership.status = MembershipStatus.ACTIVE
        membership.start_date = utcnow()
        membership.end_date = None
        if charge_id:
            membership.external_charge_id = charge_id
        if billing_status:
            membership.billing_status = billing_status
        if next_billing_date:
            membership.next_billing_date = next_billing_date
        if trial_end_date:
            membership.trial_end_date = trial_end_date
        if billing_details is not None:
            membership.billing_details = billing_details
        await self.db_session.flush()
        return membership

    async def cancel_membership(self, membership: UserMembership, end_date: Optional[datetime] = None) -> UserMembership:
        membership.status = MembershipStatus.CANCELLED
        membership.end_date = end_date or utcnow()
        await self.db_session.flush()
        return membership

    async def cancel_active(self, user_id: int, end_date: Optional[datetime] = None) -> list[UserMembership]:
        """
        Cancels every active row of the user (normally zero or one) and flushes,
        so a following activation cannot collide with the one-active index.
        """
        end_date = end_date or utcnow()
        active_rows = await self.get_list(
            where={"user_id": user_id, "status": MembershipStatus.ACTIVE},
            for_update=True
        )
        for membership in active_rows:
            membership.status = MembershipStatus.CANCELLED
            membership.end_date = end_date
        if active_rows:
            await self.db_session.flush()
        return active_rows

    async def list_stale_pending(self, created_before: datetime) -> list[UserMembership]:
        return await self.get_list(
            where=[
                UserMembership.status == MembershipStatus.PENDING,
                UserMembership.created_at < created_before
            ],
            order=[UserMembership.id.asc()],
            for_update=True
        )

    async def list_for_user(self, user_id: int, status: Optional[MembershipStatus] = None) -> list[UserMembership]:
        where: dict[str, Any] = {"user_id": user_id}
        if status is not None:
            where["status"] = status
        return await self.get_list(where=where, order=[UserMembership.id.desc()])
