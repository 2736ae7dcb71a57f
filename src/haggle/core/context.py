# haggle/core/context.py

from pydantic import BaseModel, ConfigDict
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from haggle.api.dependencies.authentication import AuthContext, CurrentUser
from haggle.services.billing.gateway import BillingGateway
from haggle.services.exceptions import Unauthenticated, GatewayError

class AppContext(BaseModel):
    """
    Defines the complete, typed context for service layer operations.
    This is the single source of truth for service dependencies; tests
    substitute the billing gateway here.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    db: AsyncSession

    # Set for authenticated routes, None for public ones and scripts.
    auth: Optional[AuthContext] = None

    billing_gateway: Optional[BillingGateway] = None

    @property
    def actor(self) -> CurrentUser:
        if not self.auth or not self.auth.user:
            raise Unauthenticated("Please sign in to continue.")
        return self.auth.user

    @property
    def gateway(self) -> BillingGateway:
        if self.billing_gateway is None:
            raise GatewayError("The billing provider is not configured.")
        return self.billing_gateway
