# haggle/schemas/membership/membership_schemas.py

from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field

from haggle.models import MembershipStatus, MembershipChangeType, MembershipHistory, BillingEvent
from haggle.schemas.bargaining.bargaining_schemas import BargainingLimits

# ==============================================================================
# Plans
# ==============================================================================

class PlanRead(BaseModel):
    id: int
    slug: str
    name: str
    description: Optional[str] = None
    price: Decimal
    product_limit: int = Field(..., description="0 means unlimited")
    trial_days: int
    features: List[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

# ==============================================================================
# Memberships
# ==============================================================================

class MembershipRead(BaseModel):
    id: int
    user_id: int
    plan_id: int
    status: MembershipStatus
    start_date: datetime
    end_date: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    billing_status: Optional[str] = None
    external_charge_id: Optional[str] = None
    session_id: Optional[str] = None
    plan: Optional[PlanRead] = None

    model_config = ConfigDict(from_attributes=True)

class ChangePlanRequest(BaseModel):
    plan_id: int
    reason: Optional[str] = Field(None, max_length=500)

class CancelMembershipRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

class PlanChangeResult(BaseModel):
    """
    Outcome of a plan change. A free change is applied immediately
    (requires_billing=False); a paid change leaves a pending membership and
    tells the client where to start billing.
    """
    membership_id: int
    status: MembershipStatus
    plan: PlanRead
    requires_billing: bool = False
    redirect_url: Optional[str] = None
    session_id: Optional[str] = None

# ==============================================================================
# Audit trail
# ==============================================================================

class MembershipHistoryRead(BaseModel):
    id: int
    from_plan_id: Optional[int] = None
    from_plan_name: Optional[str] = None
    to_plan_id: int
    to_plan_name: Optional[str] = None
    change_type: MembershipChangeType
    reason: Optional[str] = None
    change_date: datetime

    @classmethod
    def from_entry(cls, entry: MembershipHistory) -> "MembershipHistoryRead":
        return cls(
            id=entry.id,
            from_plan_id=entry.from_plan_id,
            from_plan_name=entry.from_plan.name if entry.from_plan else None,
            to_plan_id=entry.to_plan_id,
            to_plan_name=entry.to_plan.name if entry.to_plan else None,
            change_type=entry.change_type,
            reason=entry.reason,
            change_date=entry.change_date,
        )

class BillingEventRead(BaseModel):
    id: int
    event_type: str
    charge_id: Optional[str] = None
    plan_id: Optional[int] = None
    plan_name: Optional[str] = None
    status: str
    session_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_event(cls, event: BillingEvent) -> "BillingEventRead":
        return cls(
            id=event.id,
            event_type=event.event_type,
            charge_id=event.charge_id,
            plan_id=event.plan_id,
            plan_name=event.plan.name if event.plan else None,
            status=event.status,
            session_id=event.session_id,
            details=event.details or {},
            created_at=event.created_at,
        )

class CurrentMembershipRead(BaseModel):
    """The user's active membership (None before the first plan is granted) plus quota usage."""
    membership: Optional[MembershipRead] = None
    plan: Optional[PlanRead] = None
    pending: List[MembershipRead] = Field(default_factory=list)
    limits: BargainingLimits

class PlanCreate(BaseModel):
    """Seed-file shape of a plan."""
    slug: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    product_limit: int = Field(..., ge=0)
    trial_days: int = Field(0, ge=0)
    features: List[str] = Field(default_factory=list)
