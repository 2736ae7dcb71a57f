# haggle/api/responses.py

from fastapi import status
from fastapi.responses import JSONResponse
from typing import Optional, Union
from haggle.schemas.common import OperationResult
from haggle.services import exceptions as exc

ERROR_STATUS_CODES = {
    exc.Unauthenticated.code: status.HTTP_401_UNAUTHORIZED,
    exc.InvalidWebhook.code: status.HTTP_401_UNAUTHORIZED,
    exc.QuotaExceeded.code: status.HTTP_402_PAYMENT_REQUIRED,
    exc.ChargeDeclined.code: status.HTTP_402_PAYMENT_REQUIRED,
    exc.PlanNotFound.code: status.HTTP_404_NOT_FOUND,
    exc.MembershipNotFound.code: status.HTTP_404_NOT_FOUND,
    exc.StoreNotConnected.code: status.HTTP_409_CONFLICT,
    exc.PlanUnchanged.code: status.HTTP_409_CONFLICT,
    exc.NoInventory.code: status.HTTP_422_UNPROCESSABLE_ENTITY,
    exc.InvalidPrice.code: status.HTTP_422_UNPROCESSABLE_ENTITY,
    exc.GatewayError.code: status.HTTP_502_BAD_GATEWAY,
    exc.PersistenceError.code: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

def status_for(error: Optional[str]) -> int:
    return ERROR_STATUS_CODES.get(error, status.HTTP_400_BAD_REQUEST)

def envelope(status_code: int, message: str, data=None, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "data": data},
        headers=headers,
    )

def respond(result: OperationResult) -> Union[OperationResult, JSONResponse]:
    """Successful results go through the route's response_model; failures get their mapped status."""
    if result.success:
        return result
    return JSONResponse(status_code=status_for(result.error), content=result.model_dump(mode="json"))
