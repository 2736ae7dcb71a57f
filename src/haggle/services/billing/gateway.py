# haggle/services/billing/gateway.py

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from haggle.models import MembershipPlan, StoreConnection

# Provider statuses under which the merchant has approved the charge.
APPROVED_CHARGE_STATUSES = frozenset({"accepted", "active"})
TERMINAL_CHARGE_STATUSES = frozenset({"cancelled", "declined", "expired"})

class ChargeInitiation(BaseModel):
    charge_id: str
    confirmation_url: str

class ChargeDetails(BaseModel):
    status: Optional[str] = None
    billing_on: Optional[datetime] = None
    trial_ends_on: Optional[datetime] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_approved(self) -> bool:
        return (self.status or "").lower() in APPROVED_CHARGE_STATUSES

class BillingGateway(ABC):
    """
    Port to an external recurring-billing provider.
    Implementations raise GatewayError for any transport or provider failure.
    """

    @abstractmethod
    async def initiate_charge(self, plan: MembershipPlan, store: StoreConnection, return_url: str) -> ChargeInitiation:
        """Creates a recurring charge and returns where the merchant must approve it."""
        ...

    @abstractmethod
    async def fetch_charge_details(self, charge_id: str, store: StoreConnection) -> ChargeDetails:
        """Best-effort lookup of a charge's current status and billing dates."""
        ...
