# haggle/api/v1/bargaining.py

from fastapi import APIRouter, Query
from typing import List, Optional
from haggle.core.context import AppContext
from haggle.api.dependencies.context import AuthContextDep
from haggle.api.responses import respond
from haggle.schemas.common import OperationResult
from haggle.schemas.bargaining.bargaining_schemas import (
    BargainingLimits, BargainingSettingRead, EnableBargainingRequest, EnableResult,
    DisableBargainingRequest, DisableResult, BulkUpdateRequest, BulkUpdateResult
)
from haggle.services.bargaining.quota_ledger import QuotaLedger
from haggle.services.bargaining.settings_service import BargainingSettingsService

router = APIRouter()

@router.get("/limits", response_model=OperationResult[BargainingLimits], summary="Get My Bargaining Limits")
async def get_limits(context: AppContext = AuthContextDep):
    service = QuotaLedger(context)
    return respond(await service.get_user_limits(context.actor.id))

@router.get("/settings", response_model=OperationResult[List[BargainingSettingRead]], summary="List Bargaining Settings")
async def list_settings(
    product_ids: Optional[List[str]] = Query(None, description="Limit to these products"),
    context: AppContext = AuthContextDep
):
    service = BargainingSettingsService(context)
    return respond(await service.get_settings(context.actor.id, product_ids))

@router.post("/enable", response_model=OperationResult[EnableResult], summary="Enable Bargaining On A Variant")
async def enable_bargaining(request: EnableBargainingRequest, context: AppContext = AuthContextDep):
    """
    Enables bargaining for one variant. Refused when the variant is out of
    stock, unpriced, or when a new product would exceed the plan's limit.
    """
    service = BargainingSettingsService(context)
    result = await service.enable(
        user_id=context.actor.id,
        product_id=request.product_id,
        variant_id=request.variant_id,
        min_price=request.min_price,
        behavior=request.behavior,
        original_price=request.original_price,
        inventory_quantity=request.inventory_quantity
    )
    return respond(result)

@router.post("/disable", response_model=OperationResult[DisableResult], summary="Disable Bargaining")
async def disable_bargaining(request: DisableBargainingRequest, context: AppContext = AuthContextDep):
    service = BargainingSettingsService(context)
    return respond(await service.disable(context.actor.id, request.product_id, request.variant_id))

@router.post("/bulk", response_model=OperationResult[BulkUpdateResult], summary="Bulk Update Bargaining")
async def bulk_update_bargaining(request: BulkUpdateRequest, context: AppContext = AuthContextDep):
    service = BargainingSettingsService(context)
    return respond(await service.bulk_update(context.actor.id, request.selections))
