# haggle/api/v1/billing.py

import json
import logging
from fastapi import APIRouter, Query, Request, Header, status
from fastapi.responses import RedirectResponse
from typing import Optional
from haggle.core.config import settings
from haggle.core.context import AppContext
from haggle.core.security import verify_webhook_signature
from haggle.api.dependencies.context import AuthContextDep, PublicContextDep
from haggle.api.responses import respond, envelope
from haggle.schemas.common import OperationResult
from haggle.schemas.billing.billing_schemas import StartBillingResult, ConfirmBillingResult, ChargeUpdateResult
from haggle.services.exceptions import InvalidWebhook
from haggle.services.membership.lifecycle_service import MembershipLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter()

CHARGE_WEBHOOK_TOPICS = {"recurring_application_charges/update", "application_charges/update"}

@router.get("/start", response_model=OperationResult[StartBillingResult], summary="Start Paid Billing")
async def start_billing(
    plan_id: int = Query(...),
    session_id: Optional[str] = Query(None),
    redirect: bool = Query(False, description="Answer with a 303 to the provider's confirmation page"),
    context: AppContext = AuthContextDep
):
    service = MembershipLifecycleService(context)
    result = await service.start_billing(context.actor.id, plan_id, session_id)
    if result.success and redirect:
        return RedirectResponse(result.data.confirmation_url, status_code=status.HTTP_303_SEE_OTHER)
    return respond(result)

@router.get("/confirm", response_model=OperationResult[ConfirmBillingResult], summary="Confirm Paid Billing")
async def confirm_billing(
    plan_id: int = Query(...),
    charge_id: Optional[str] = Query(None),
    session_id: Optional[str] = Query(None),
    context: AppContext = PublicContextDep
):
    """
    Return point after the merchant approved the charge with the provider.
    The provider redirects the browser here without our bearer token, so the
    merchant is taken from the billing attempt the session id names.
    Activates the pending membership and cancels the previous one.
    """
    service = MembershipLifecycleService(context)
    return respond(await service.confirm_billing_return(plan_id, charge_id, session_id))

@router.post("/webhook", response_model=OperationResult[Optional[ChargeUpdateResult]], summary="Billing Provider Webhook")
async def billing_webhook(
    request: Request,
    x_shopify_hmac_sha256: Optional[str] = Header(None),
    x_shopify_topic: Optional[str] = Header(None),
    x_shopify_shop_domain: Optional[str] = Header(None),
    context: AppContext = PublicContextDep
):
    body = await request.body()
    if not verify_webhook_signature(body, x_shopify_hmac_sha256, settings.SHOPIFY_API_SECRET):
        logger.warning(f"[BillingWebhook] Signature check failed for shop {x_shopify_shop_domain}.")
        raise InvalidWebhook("Webhook signature verification failed.")

    if x_shopify_topic not in CHARGE_WEBHOOK_TOPICS:
        logger.info(f"[BillingWebhook] Ignoring topic '{x_shopify_topic}' from {x_shopify_shop_domain}.")
        return OperationResult.ok(None, message="ignored")

    try:
        payload = json.loads(body)
    except ValueError:
        return envelope(status.HTTP_400_BAD_REQUEST, "Webhook body is not valid JSON.")

    charge = payload.get("recurring_application_charge") or payload.get("application_charge") or payload
    charge_id = charge.get("id") if isinstance(charge, dict) else None
    provider_status = charge.get("status") if isinstance(charge, dict) else None
    if charge_id is None or not provider_status:
        return envelope(status.HTTP_400_BAD_REQUEST, "Webhook payload has no charge id or status.")

    service = MembershipLifecycleService(context)
    return respond(await service.apply_charge_update(str(charge_id), provider_status, charge))
