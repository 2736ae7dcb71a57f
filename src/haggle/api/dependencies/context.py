# haggle/api/dependencies/context.py

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from haggle.core.context import AppContext
from haggle.db.session import get_db
from haggle.api.dependencies.authentication import get_auth
from haggle.services.billing.gateway import BillingGateway

def get_billing_gateway(request: Request) -> Optional[BillingGateway]:
    """The gateway created by the app lifespan, if any."""
    return getattr(request.app.state, "billing_gateway", None)

# --- Step 1: base context, no authentication ---
async def get_base_context(
    db: AsyncSession = Depends(get_db),
    billing_gateway: Optional[BillingGateway] = Depends(get_billing_gateway),
) -> AppContext:
    return AppContext(db=db, auth=None, billing_gateway=billing_gateway)

# --- Step 2: authentication required ---
async def require_auth_context(
    request: Request,
    context: AppContext = Depends(get_base_context),
) -> AppContext:
    """
    Fills in the current user. A missing or invalid token ends the request
    with 401 here.
    """
    context.auth = await get_auth(request)
    return context

PublicContextDep = Depends(get_base_context)
AuthContextDep = Depends(require_auth_context)
