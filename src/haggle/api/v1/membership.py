# haggle/api/v1/membership.py

from fastapi import APIRouter, Query
from typing import List
from haggle.core.context import AppContext
from haggle.api.dependencies.context import AuthContextDep, PublicContextDep
from haggle.api.responses import respond
from haggle.schemas.common import OperationResult
from haggle.schemas.membership.membership_schemas import (
    PlanRead, MembershipRead, CurrentMembershipRead, MembershipHistoryRead, BillingEventRead,
    ChangePlanRequest, CancelMembershipRequest, PlanChangeResult
)
from haggle.services.membership.lifecycle_service import MembershipLifecycleService

router = APIRouter()

@router.get("/plans", response_model=OperationResult[List[PlanRead]], summary="List Membership Plans")
async def list_plans(context: AppContext = PublicContextDep):
    service = MembershipLifecycleService(context)
    return respond(await service.list_plans())

@router.get("/current", response_model=OperationResult[CurrentMembershipRead], summary="Get My Membership")
async def get_current_membership(context: AppContext = AuthContextDep):
    service = MembershipLifecycleService(context)
    return respond(await service.get_current_membership(context.actor.id))

@router.get("/history", response_model=OperationResult[List[MembershipHistoryRead]], summary="Get My Plan History")
async def list_history(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    context: AppContext = AuthContextDep
):
    service = MembershipLifecycleService(context)
    return respond(await service.list_history(context.actor.id, page=page, limit=limit))

@router.get("/billing-events", response_model=OperationResult[List[BillingEventRead]], summary="Get My Billing Events")
async def list_billing_events(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    context: AppContext = AuthContextDep
):
    service = MembershipLifecycleService(context)
    return respond(await service.list_billing_events(context.actor.id, page=page, limit=limit))

@router.post("/change-plan", response_model=OperationResult[PlanChangeResult], summary="Change Membership Plan")
async def change_plan(request: ChangePlanRequest, context: AppContext = AuthContextDep):
    """
    A free plan is applied immediately. A paid plan returns `requires_billing`
    and a `redirect_url` to start billing with the provider.
    """
    service = MembershipLifecycleService(context)
    return respond(await service.change_plan(context.actor.id, request.plan_id, request.reason))

@router.post("/cancel", response_model=OperationResult[MembershipRead], summary="Cancel Paid Membership")
async def cancel_membership(request: CancelMembershipRequest, context: AppContext = AuthContextDep):
    service = MembershipLifecycleService(context)
    return respond(await service.cancel_billing(context.actor.id, request.reason))
