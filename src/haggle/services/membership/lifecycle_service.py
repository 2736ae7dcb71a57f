# haggle/services/membership/lifecycle_service.py

import logging
from datetime import timedelta
from typing import Optional, List, Tuple
from urllib.parse import urlencode

from haggle.core.config import settings
from haggle.core.context import AppContext
from haggle.dao.membership.plan_dao import MembershipPlanDao
from haggle.dao.membership.membership_dao import UserMembershipDao
from haggle.dao.membership.history_dao import MembershipHistoryDao
from haggle.dao.membership.billing_event_dao import BillingEventDao
from haggle.dao.store.store_connection_dao import StoreConnectionDao
from haggle.models import (
    MembershipPlan, UserMembership, MembershipStatus, MembershipChangeType,
    BillingEventType, StoreConnection
)
from haggle.schemas.common import OperationResult
from haggle.schemas.membership.membership_schemas import (
    PlanRead, MembershipRead, PlanChangeResult, CurrentMembershipRead,
    MembershipHistoryRead, BillingEventRead
)
from haggle.schemas.billing.billing_schemas import StartBillingResult, ConfirmBillingResult, ChargeUpdateResult
from haggle.services.base_service import BaseService, service_operation
from haggle.services.bargaining.quota_ledger import QuotaLedger
from haggle.services.billing.gateway import ChargeDetails, TERMINAL_CHARGE_STATUSES
from haggle.services.exceptions import (
    PlanNotFound, StoreNotConnected, PlanUnchanged, MembershipNotFound,
    ChargeDeclined, GatewayError
)
from haggle.utils.datetime_utils import utcnow
from haggle.utils.ids import new_billing_session_id

logger = logging.getLogger(__name__)

class MembershipLifecycleService(BaseService):
    """
    [Service Layer] The membership state machine.

    pending -> active -> cancelled, with at most one active row per user.
    A free plan is applied immediately; a paid plan goes through a pending row
    until the billing provider confirms the charge. Every committed transition
    appends exactly one history entry, and every step appends a billing event.
    """
    def __init__(self, context: AppContext):
        super().__init__(context)
        self.plan_dao = MembershipPlanDao(context.db)
        self.membership_dao = UserMembershipDao(context.db)
        self.history_dao = MembershipHistoryDao(context.db)
        self.event_dao = BillingEventDao(context.db)
        self.store_dao = StoreConnectionDao(context.db)
        self.quota = QuotaLedger(context)

    # ==============================================================================
    # Helpers
    # ==============================================================================

    async def _get_plan(self, plan_id: int) -> MembershipPlan:
        plan = await self.plan_dao.get_by_pk(plan_id)
        if plan is None:
            raise PlanNotFound(f"Plan {plan_id} does not exist.")
        return plan

    async def _get_free_plan(self) -> MembershipPlan:
        plan = await self.plan_dao.get_by_slug(settings.FREE_PLAN_SLUG)
        if plan is None:
            raise PlanNotFound("The free plan is not configured.")
        return plan

    async def _require_store(self, user_id: int) -> StoreConnection:
        store = await self.store_dao.get_active_for_user(user_id)
        if store is None or not store.is_usable:
            raise StoreNotConnected("Please connect your Shopify store before upgrading to a paid plan.")
        return store

    @staticmethod
    def classify_change(from_plan: Optional[MembershipPlan], to_plan: MembershipPlan) -> MembershipChangeType:
        if from_plan is None:
            return MembershipChangeType.SWITCH if to_plan.is_free else MembershipChangeType.UPGRADE
        if to_plan.price > from_plan.price:
            return MembershipChangeType.UPGRADE
        if to_plan.price < from_plan.price:
            return MembershipChangeType.DOWNGRADE
        return MembershipChangeType.SWITCH

    @staticmethod
    def _billing_url(path: str, plan_id: int, session_id: str) -> str:
        query = urlencode({"plan_id": plan_id, "session_id": session_id})
        return f"{settings.APP_BASE_URL.rstrip('/')}/api/v1/billing/{path}?{query}"

    async def _commit_transition(
        self,
        user_id: int,
        target_plan: MembershipPlan,
        reason: Optional[str],
        pending: Optional[UserMembership] = None,
        charge_id: Optional[str] = None,
        details: Optional[ChargeDetails] = None,
        change_type: Optional[MembershipChangeType] = None
    ) -> Tuple[UserMembership, Optional[MembershipPlan], MembershipChangeType]:
        """
        Cancels the current active row, then activates `pending` (or a new row
        for `target_plan`) and appends the history entry. Must run inside the
        caller's savepoint with the user lock held.
        """
        previous = await self.membership_dao.get_active_membership(user_id, for_update=True)
        from_plan = previous.plan if previous else None

        await self.membership_dao.cancel_active(user_id)

        if pending is None:
            membership = await self.membership_dao.create_membership(user_id, target_plan.id, MembershipStatus.ACTIVE)
        else:
            membership = await self.membership_dao.transition_to_active(
                pending,
                charge_id=charge_id,
                billing_status=details.status if details else None,
                next_billing_date=details.billing_on if details else None,
                trial_end_date=details.trial_ends_on if details else None,
                billing_details=details.raw if details else None
            )

        change_type = change_type or self.classify_change(from_plan, target_plan)
        await self.history_dao.append_history(
            user_id=user_id,
            from_plan_id=from_plan.id if from_plan else None,
            to_plan_id=target_plan.id,
            change_type=change_type,
            reason=reason
        )
        logger.info(
            f"[Lifecycle] User {user_id}: {from_plan.slug if from_plan else 'none'} -> {target_plan.slug} "
            f"({change_type.value}), membership {membership.id} active."
        )
        return membership, from_plan, change_type

    # ==============================================================================
    # Plan changes
    # ==============================================================================

    @service_operation
    async def change_plan(self, user_id: int, plan_id: int, reason: Optional[str] = None) -> PlanChangeResult:
        await self.membership_dao.lock_user(user_id)

        plan = await self._get_plan(plan_id)
        active = await self.membership_dao.get_active_membership(user_id)
        if active is not None and active.plan_id == plan.id:
            raise PlanUnchanged(f"You are already on the {plan.name} plan.")

        await self.event_dao.append_billing_event(
            user_id=user_id,
            event_type=BillingEventType.CHANGE_INITIATED,
            status="initiated",
            plan_id=plan.id,
            details={
                "from_plan_id": active.plan_id if active else None,
                "to_plan_id": plan.id,
                "reason": reason,
            }
        )

        if plan.is_free:
            membership, from_plan, change_type = await self._commit_transition(user_id, plan, reason)
            await self.event_dao.append_billing_event(
                user_id=user_id,
                event_type=BillingEventType.CHANGED,
                status=MembershipStatus.ACTIVE.value,
                plan_id=plan.id,
                details={
                    "membership_id": membership.id,
                    "from_plan_id": from_plan.id if from_plan else None,
                    "change_type": change_type.value,
                }
            )
            return PlanChangeResult(
                membership_id=membership.id,
                status=MembershipStatus.ACTIVE,
                plan=PlanRead.model_validate(plan)
            )

        store = await self._require_store(user_id)
        session_id = new_billing_session_id()

        pending = await self.membership_dao.get_pending_membership(user_id, plan.id)
        reused = pending is not None
        if pending is not None:
            pending.session_id = session_id
            await self.db.flush()
        else:
            pending = await self.membership_dao.create_membership(
                user_id, plan.id, MembershipStatus.PENDING, session_id=session_id
            )

        await self.event_dao.append_billing_event(
            user_id=user_id,
            event_type=BillingEventType.PENDING_CREATED,
            status=MembershipStatus.PENDING.value,
            plan_id=plan.id,
            session_id=session_id,
            details={
                "membership_id": pending.id,
                "shop_domain": store.shop_domain,
                "reused": reused,
            }
        )
        return PlanChangeResult(
            membership_id=pending.id,
            status=MembershipStatus.PENDING,
            plan=PlanRead.model_validate(plan),
            requires_billing=True,
            redirect_url=self._billing_url("start", plan.id, session_id),
            session_id=session_id
        )

    @service_operation
    async def start_billing(self, user_id: int, plan_id: int, session_id: Optional[str] = None) -> StartBillingResult:
        """
        Creates the provider charge for a pending paid membership. A provider
        failure leaves no trace: the savepoint is rolled back.
        """
        await self.membership_dao.lock_user(user_id)

        plan = await self._get_plan(plan_id)
        if plan.is_free:
            raise PlanUnchanged(f"The {plan.name} plan is free and does not need billing.")
        store = await self._require_store(user_id)

        pending = None
        if session_id:
            pending = await self.membership_dao.get_pending_membership(user_id, plan.id, session_id=session_id)
        if pending is None:
            pending = await self.membership_dao.get_pending_membership(user_id, plan.id)
        if pending is None:
            pending = await self.membership_dao.create_membership(
                user_id, plan.id, MembershipStatus.PENDING, session_id=session_id or new_billing_session_id()
            )
        elif not pending.session_id:
            pending.session_id = session_id or new_billing_session_id()

        return_url = self._billing_url("confirm", plan.id, pending.session_id)
        charge = await self.context.gateway.initiate_charge(plan, store, return_url)

        pending.external_charge_id = charge.charge_id
        await self.db.flush()

        await self.event_dao.append_billing_event(
            user_id=user_id,
            event_type=BillingEventType.CHARGE_CREATED,
            status=MembershipStatus.PENDING.value,
            plan_id=plan.id,
            charge_id=charge.charge_id,
            session_id=pending.session_id,
            details={
                "membership_id": pending.id,
                "shop_domain": store.shop_domain,
                "confirmation_url": charge.confirmation_url,
                "price": str(plan.price),
            }
        )
        return StartBillingResult(
            charge_id=charge.charge_id,
            confirmation_url=charge.confirmation_url,
            session_id=pending.session_id,
            membership_id=pending.id
        )

    async def _fetch_charge_details(self, user_id: int, charge_id: str) -> Optional[ChargeDetails]:
        """Best-effort enrichment. Any provider problem yields None."""
        if self.context.billing_gateway is None:
            logger.warning(f"[Lifecycle] No billing gateway configured, confirming charge {charge_id} without details.")
            return None
        store = await self.store_dao.get_active_for_user(user_id)
        if store is None or not store.is_usable:
            logger.warning(f"[Lifecycle] User {user_id} has no usable store, confirming charge {charge_id} without details.")
            return None
        try:
            return await self.context.billing_gateway.fetch_charge_details(charge_id, store)
        except (GatewayError, StoreNotConnected) as e:
            logger.warning(f"[Lifecycle] Charge {charge_id} details unavailable ({e.message}), proceeding with stored fields.")
            return None

    @service_operation
    async def confirm_billing(
        self,
        user_id: int,
        plan_id: int,
        charge_id: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> ConfirmBillingResult:
        await self.membership_dao.lock_user(user_id)
        plan = await self._get_plan(plan_id)

        pending = None
        if charge_id:
            pending = await self.membership_dao.get_pending_membership(user_id, plan.id, charge_id=charge_id)
        if pending is None and session_id:
            pending = await self.membership_dao.get_pending_membership(user_id, plan.id, session_id=session_id)
        if pending is None:
            pending = await self.membership_dao.get_pending_membership(user_id, plan.id)

        if pending is None:
            active = await self.membership_dao.get_active_membership(user_id)
            if active is not None and active.plan_id == plan.id and (not charge_id or active.external_charge_id == charge_id):
                logger.info(f"[Lifecycle] Charge for user {user_id} plan {plan.slug} already confirmed, nothing to do.")
                return ConfirmBillingResult(membership=MembershipRead.model_validate(active), charge_status=active.billing_status)
            logger.warning(f"[Lifecycle] No pending membership for user {user_id} plan {plan.slug}, creating one.")
            pending = await self.membership_dao.create_membership(
                user_id, plan.id, MembershipStatus.PENDING, session_id=session_id
            )

        charge_id = charge_id or pending.external_charge_id
        details = await self._fetch_charge_details(user_id, charge_id) if charge_id else None

        if details is not None and not details.is_approved:
            provider_status = details.status or "unknown"
            logger.info(f"[Lifecycle] Charge {charge_id} of user {user_id} is '{provider_status}', plan {plan.slug} not activated.")
            pending.billing_status = provider_status
            await self.db.flush()
            await self.event_dao.append_billing_event(
                user_id=user_id,
                event_type=BillingEventType.CHARGE_DECLINED,
                status=provider_status,
                plan_id=plan.id,
                charge_id=charge_id,
                session_id=pending.session_id,
                details={"membership_id": pending.id, "charge": details.raw}
            )
            return OperationResult.fail(
                "The charge was not approved, so your plan was not changed.",
                ChargeDeclined.code
            )

        membership, from_plan, change_type = await self._commit_transition(
            user_id, plan,
            reason=f"Billing confirmed for charge {charge_id}" if charge_id else "Billing confirmed",
            pending=pending,
            charge_id=charge_id,
            details=details
        )
        await self.event_dao.append_billing_event(
            user_id=user_id,
            event_type=BillingEventType.BILLING_CONFIRMED,
            status=MembershipStatus.ACTIVE.value,
            plan_id=plan.id,
            charge_id=charge_id,
            session_id=membership.session_id,
            details={
                "membership_id": membership.id,
                "from_plan_id": from_plan.id if from_plan else None,
                "change_type": change_type.value,
                "enriched": details is not None,
                "billing_on": details.billing_on.isoformat() if details and details.billing_on else None,
                "trial_ends_on": details.trial_ends_on.isoformat() if details and details.trial_ends_on else None,
            }
        )
        return ConfirmBillingResult(
            membership=MembershipRead.model_validate(membership),
            charge_status=details.status if details else None,
            enriched=details is not None
        )

    @service_operation
    async def confirm_billing_return(
        self,
        plan_id: int,
        charge_id: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> ConfirmBillingResult:
        """
        Entry point for the provider's redirect back to us, which carries no
        credentials. The merchant is the owner of the billing attempt named by
        the session id (or, failing that, the charge id) in the return URL.
        """
        membership = None
        if session_id:
            membership = await self.membership_dao.get_by_session_id(session_id)
        if membership is None and charge_id:
            membership = await self.membership_dao.get_by_charge_id(charge_id, for_update=False)
        if membership is None or membership.plan_id != plan_id:
            raise MembershipNotFound("No billing attempt matches this confirmation.")
        return await self.confirm_billing(membership.user_id, plan_id, charge_id, session_id)

    @service_operation
    async def cancel_billing(self, user_id: int, reason: Optional[str] = None) -> MembershipRead:
        """
        Cancels the active paid membership and falls back to the free plan.
        Local state only: the provider charge is not cancelled here.
        """
        await self.membership_dao.lock_user(user_id)

        active = await self.membership_dao.get_active_membership(user_id, for_update=True)
        if active is None:
            raise MembershipNotFound("You do not have an active membership to cancel.")
        free_plan = await self._get_free_plan()
        if active.plan_id == free_plan.id:
            raise PlanUnchanged("You are already on the free plan.")

        logger.warning(
            f"[Lifecycle] Cancelling membership {active.id} of user {user_id} locally; "
            f"provider charge {active.external_charge_id} is left as is."
        )
        cancelled_id = active.id
        cancelled_plan_id = active.plan_id
        cancelled_charge_id = active.external_charge_id

        membership, _, _ = await self._commit_transition(
            user_id, free_plan,
            reason=reason or "Membership cancelled",
            change_type=MembershipChangeType.DOWNGRADE
        )
        await self.event_dao.append_billing_event(
            user_id=user_id,
            event_type=BillingEventType.CANCELLED,
            status=MembershipStatus.CANCELLED.value,
            plan_id=cancelled_plan_id,
            charge_id=cancelled_charge_id,
            details={
                "cancelled_membership_id": cancelled_id,
                "fallback_membership_id": membership.id,
                "reason": reason,
            }
        )
        return MembershipRead.model_validate(membership)

    @service_operation
    async def apply_charge_update(self, charge_id: str, provider_status: str, payload: Optional[dict] = None) -> ChargeUpdateResult:
        """
        Applies a provider-side status change for a charge (billing webhook).
        `active` activates the matching pending row; `cancelled`, `declined`
        and `expired` cancel it. Cancelling the user's active membership grants
        the free plan so the user never ends up without one.
        """
        membership = await self.membership_dao.get_by_charge_id(charge_id)
        if membership is None:
            raise MembershipNotFound(f"No membership found for charge {charge_id}.")

        user_id = membership.user_id
        await self.membership_dao.lock_user(user_id)

        provider_status = (provider_status or "").lower()
        result = ChargeUpdateResult(charge_id=charge_id, provider_status=provider_status, membership_id=membership.id)

        if provider_status == "active":
            if membership.status != MembershipStatus.PENDING:
                logger.info(f"[Lifecycle] Charge {charge_id} active, membership {membership.id} already {membership.status.value}.")
                return result
            plan = await self._get_plan(membership.plan_id)
            await self._commit_transition(
                user_id, plan, reason=f"Activated by billing provider (charge {charge_id})",
                pending=membership, charge_id=charge_id,
                details=ChargeDetails(status=provider_status, raw=payload or {})
            )
            new_status, event_type = MembershipStatus.ACTIVE, BillingEventType.ACTIVATED
        elif provider_status in TERMINAL_CHARGE_STATUSES:
            if membership.status == MembershipStatus.CANCELLED:
                return result
            if membership.status == MembershipStatus.ACTIVE:
                free_plan = await self._get_free_plan()
                if membership.plan_id == free_plan.id:
                    await self.membership_dao.cancel_membership(membership)
                else:
                    await self._commit_transition(
                        user_id, free_plan,
                        reason=f"Charge {charge_id} {provider_status} by billing provider",
                        change_type=MembershipChangeType.DOWNGRADE
                    )
            else:
                await self.membership_dao.cancel_membership(membership)
            membership.billing_status = provider_status
            await self.db.flush()
            new_status, event_type = MembershipStatus.CANCELLED, BillingEventType.CANCELLED
        else:
            logger.info(f"[Lifecycle] Ignoring provider status '{provider_status}' for charge {charge_id}.")
            return result

        await self.event_dao.append_billing_event(
            user_id=user_id,
            event_type=event_type,
            status=new_status.value,
            plan_id=membership.plan_id,
            charge_id=charge_id,
            session_id=membership.session_id,
            details={"membership_id": membership.id, "provider_status": provider_status, "charge": payload or {}}
        )
        result.applied = True
        return result

    # ==============================================================================
    # Maintenance (admin operations, run from scripts/repair_memberships.py)
    # ==============================================================================

    @service_operation
    async def expire_stale_pending(self, older_than: Optional[timedelta] = None) -> int:
        """Cancels pending memberships that were never confirmed. Returns how many."""
        cutoff = utcnow() - (older_than or timedelta(hours=settings.STALE_PENDING_HOURS))
        stale = await self.membership_dao.list_stale_pending(cutoff)
        for membership in stale:
            await self.membership_dao.cancel_membership(membership)
            await self.event_dao.append_billing_event(
                user_id=membership.user_id,
                event_type=BillingEventType.PENDING_EXPIRED,
                status=MembershipStatus.CANCELLED.value,
                plan_id=membership.plan_id,
                charge_id=membership.external_charge_id,
                session_id=membership.session_id,
                details={
                    "membership_id": membership.id,
                    "created_at": membership.created_at.isoformat() if membership.created_at else None,
                    "reason": "Pending membership was never confirmed",
                }
            )
        if stale:
            logger.info(f"[Lifecycle] Expired {len(stale)} stale pending membership(s) created before {cutoff.isoformat()}.")
        return len(stale)

    @service_operation
    async def ensure_active_membership(self, user_id: int) -> MembershipRead:
        """
        Repairs a user's memberships so that exactly one is active: keeps the
        newest active row, or grants the free plan when there is none.
        """
        await self.membership_dao.lock_user(user_id)

        active_rows = await self.membership_dao.list_for_user(user_id, MembershipStatus.ACTIVE)
        if active_rows:
            keep, extras = active_rows[0], active_rows[1:]
            for extra in extras:
                await self.membership_dao.cancel_membership(extra)
                await self.event_dao.append_billing_event(
                    user_id=user_id,
                    event_type=BillingEventType.STATUS_FIXED,
                    status=MembershipStatus.CANCELLED.value,
                    plan_id=extra.plan_id,
                    details={"membership_id": extra.id, "kept_membership_id": keep.id}
                )
            return MembershipRead.model_validate(keep)

        free_plan = await self._get_free_plan()
        membership, _, _ = await self._commit_transition(user_id, free_plan, reason="Granted free plan (no active membership)")
        await self.event_dao.append_billing_event(
            user_id=user_id,
            event_type=BillingEventType.STATUS_FIXED,
            status=MembershipStatus.ACTIVE.value,
            plan_id=free_plan.id,
            details={"membership_id": membership.id}
        )
        return MembershipRead.model_validate(membership)

    # ==============================================================================
    # Reads
    # ==============================================================================

    @service_operation
    async def list_plans(self) -> List[PlanRead]:
        plans = await self.plan_dao.list_plans()
        return [PlanRead.model_validate(p) for p in plans]

    @service_operation
    async def get_current_membership(self, user_id: int) -> CurrentMembershipRead:
        active = await self.membership_dao.get_active_membership(user_id)
        pending = await self.membership_dao.list_for_user(user_id, MembershipStatus.PENDING)
        limits = await self.quota.get_limits(user_id)
        return CurrentMembershipRead(
            membership=MembershipRead.model_validate(active) if active else None,
            plan=PlanRead.model_validate(active.plan) if active else None,
            pending=[MembershipRead.model_validate(p) for p in pending],
            limits=limits
        )

    @service_operation
    async def list_history(self, user_id: int, page: int = 1, limit: int = 50) -> List[MembershipHistoryRead]:
        entries = await self.history_dao.list_for_user(user_id, page=page, limit=limit)
        return [MembershipHistoryRead.from_entry(e) for e in entries]

    @service_operation
    async def list_billing_events(self, user_id: int, page: int = 1, limit: int = 50) -> List[BillingEventRead]:
        events = await self.event_dao.list_for_user(user_id, page=page, limit=limit)
        return [BillingEventRead.from_event(e) for e in events]
