# haggle/services/billing/shopify_gateway.py

import logging
from typing import Any, Dict, Optional
import httpx

from haggle.core.config import settings
from haggle.models import MembershipPlan, StoreConnection
from haggle.services.exceptions import GatewayError, StoreNotConnected
from haggle.services.billing.gateway import BillingGateway, ChargeInitiation, ChargeDetails
from haggle.utils.datetime_utils import parse_provider_datetime

logger = logging.getLogger(__name__)

class ShopifyBillingGateway(BillingGateway):
    """
    Shopify Admin REST API, `recurring_application_charges` resource.
    The httpx client is owned by the caller (the app lifespan) and shared
    across requests.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_version: Optional[str] = None,
        test_mode: Optional[bool] = None
    ):
        self.client = client
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self.test_mode = settings.BILLING_TEST_MODE if test_mode is None else test_mode

    def _url(self, store: StoreConnection, path: str) -> str:
        return f"https://{store.shop_domain}/admin/api/{self.api_version}/{path}"

    def _headers(self, store: StoreConnection) -> Dict[str, str]:
        if not store.access_token:
            raise StoreNotConnected("Your store is not connected. Please reconnect it and try again.")
        return {
            "X-Shopify-Access-Token": store.access_token,
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, url: str, store: StoreConnection, **kwargs: Any) -> Dict[str, Any]:
        headers = self._headers(store)
        try:
            response = await self.client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"[ShopifyBilling] {method} {url} rejected with {e.response.status_code}: {e.response.text[:500]}"
            )
            raise GatewayError("The billing provider rejected the request. Please try again later.") from e
        except httpx.RequestError as e:
            logger.error(f"[ShopifyBilling] {method} {url} failed: {e!r}")
            raise GatewayError("The billing provider is unreachable. Please try again later.") from e
        except ValueError as e:
            logger.error(f"[ShopifyBilling] {method} {url} returned a non-JSON body.")
            raise GatewayError("The billing provider returned an unexpected response.") from e

    async def initiate_charge(self, plan: MembershipPlan, store: StoreConnection, return_url: str) -> ChargeInitiation:
        payload = {
            "recurring_application_charge": {
                "name": plan.name,
                "price": str(plan.price),
                "return_url": return_url,
                "test": self.test_mode,
                "trial_days": plan.trial_days or 0,
            }
        }
        data = await self._request(
            "POST", self._url(store, "recurring_application_charges.json"), store, json=payload
        )
        charge = data.get("recurring_application_charge") or {}
        charge_id = charge.get("id")
        confirmation_url = charge.get("confirmation_url")
        if charge_id is None or not confirmation_url:
            logger.error(f"[ShopifyBilling] Charge response for shop {store.shop_domain} is missing id/confirmation_url: {data}")
            raise GatewayError("The billing provider returned an incomplete charge.")

        logger.info(f"[ShopifyBilling] Created charge {charge_id} for plan '{plan.slug}' on {store.shop_domain}.")
        return ChargeInitiation(charge_id=str(charge_id), confirmation_url=confirmation_url)

    async def fetch_charge_details(self, charge_id: str, store: StoreConnection) -> ChargeDetails:
        data = await self._request(
            "GET", self._url(store, f"recurring_application_charges/{charge_id}.json"), store
        )
        charge = data.get("recurring_application_charge") or {}
        return ChargeDetails(
            status=charge.get("status"),
            billing_on=parse_provider_datetime(charge.get("billing_on")),
            trial_ends_on=parse_provider_datetime(charge.get("trial_ends_on")),
            raw=charge
        )
