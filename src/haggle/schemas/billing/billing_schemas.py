from typing import Optional
from pydantic import BaseModel

from haggle.schemas.membership.membership_schemas import MembershipRead

class StartBillingResult(BaseModel):
    charge_id: str
    confirmation_url: str
    session_id: Optional[str] = None
    membership_id: int

class ConfirmBillingResult(BaseModel):
    membership: MembershipRead
    charge_status: Optional[str] = None
    enriched: bool = False

class ChargeUpdateResult(BaseModel):
    charge_id: str
    provider_status: str
    membership_id: Optional[int] = None
    applied: bool = False
