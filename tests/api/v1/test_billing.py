# tests/api/v1/test_billing.py

import json
import pytest
from httpx import AsyncClient
from fastapi import status

from haggle.core.config import settings
from haggle.core.security import compute_webhook_signature

USER_ID = 903
WEBHOOK_SECRET = "shpss_test_secret"


@pytest.fixture
async def pending_upgrade(client: AsyncClient, auth_headers, plans, grant_plan, connect_store):
    """A free merchant with a store who asked for the starter plan."""
    await grant_plan(USER_ID, plans["free"])
    await connect_store(USER_ID)
    response = await client.post(
        "/api/v1/memberships/change-plan", json={"plan_id": plans["starter"].id}, headers=auth_headers(USER_ID)
    )
    return response.json()["data"]


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "SHOPIFY_API_SECRET", WEBHOOK_SECRET)
    return WEBHOOK_SECRET


def _webhook_headers(body: bytes, topic="recurring_application_charges/update", secret=WEBHOOK_SECRET):
    return {
        "X-Shopify-Hmac-Sha256": compute_webhook_signature(body, secret),
        "X-Shopify-Topic": topic,
        "X-Shopify-Shop-Domain": "merchant-903.myshopify.com",
        "Content-Type": "application/json",
    }

# ==============================================================================
# 1. Start / Confirm
# ==============================================================================

async def test_start_billing(client: AsyncClient, auth_headers, plans, pending_upgrade):
    response = await client.get(
        "/api/v1/billing/start",
        params={"plan_id": plans["starter"].id, "session_id": pending_upgrade["session_id"]},
        headers=auth_headers(USER_ID),
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["membership_id"] == pending_upgrade["membership_id"]
    assert data["confirmation_url"].startswith("https://merchant-903.myshopify.com/")


async def test_start_billing_redirects_to_provider(client: AsyncClient, auth_headers, plans, pending_upgrade):
    response = await client.get(
        "/api/v1/billing/start",
        params={"plan_id": plans["starter"].id, "session_id": pending_upgrade["session_id"], "redirect": "true"},
        headers=auth_headers(USER_ID),
    )

    assert response.status_code == status.HTTP_303_SEE_OTHER
    assert response.headers["location"].startswith("https://merchant-903.myshopify.com/admin/charges/")


async def test_start_billing_gateway_failure_returns_502(client: AsyncClient, auth_headers, plans, pending_upgrade, billing_gateway):
    billing_gateway.fail_initiate = True

    response = await client.get(
        "/api/v1/billing/start", params={"plan_id": plans["starter"].id}, headers=auth_headers(USER_ID)
    )

    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    assert response.json()["success"] is False


async def test_confirm_billing_without_credentials(client: AsyncClient, auth_headers, plans, pending_upgrade):
    response = await client.get(
        "/api/v1/billing/confirm",
        params={"plan_id": plans["starter"].id, "charge_id": "12345", "session_id": pending_upgrade["session_id"]},
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["membership"]["status"] == "active"
    assert data["membership"]["plan"]["slug"] == "starter"
    assert data["enriched"] is True

    limits = (await client.get("/api/v1/bargaining/limits", headers=auth_headers(USER_ID))).json()["data"]
    assert limits["max_products"] == 100


async def test_confirm_declined_charge_returns_402(client: AsyncClient, auth_headers, plans, pending_upgrade, billing_gateway):
    billing_gateway.charge_status = "declined"

    response = await client.get(
        "/api/v1/billing/confirm",
        params={"plan_id": plans["starter"].id, "charge_id": "12345", "session_id": pending_upgrade["session_id"]},
    )

    assert response.status_code == status.HTTP_402_PAYMENT_REQUIRED
    events = (await client.get("/api/v1/memberships/billing-events", headers=auth_headers(USER_ID))).json()["data"]
    assert "membership_charge_declined" in [e["event_type"] for e in events]


async def test_confirm_unapproved_charge_keeps_current_plan(client: AsyncClient, auth_headers, plans, pending_upgrade, billing_gateway):
    billing_gateway.charge_status = "pending"

    response = await client.get(
        "/api/v1/billing/confirm",
        params={"plan_id": plans["starter"].id, "charge_id": "12345", "session_id": pending_upgrade["session_id"]},
    )

    assert response.status_code == status.HTTP_402_PAYMENT_REQUIRED
    current = (await client.get("/api/v1/memberships/current", headers=auth_headers(USER_ID))).json()["data"]
    assert current["plan"]["slug"] == "free"


async def test_confirm_for_unknown_session_returns_404(client: AsyncClient, plans, pending_upgrade):
    response = await client.get(
        "/api/v1/billing/confirm",
        params={"plan_id": plans["starter"].id, "session_id": "bill_0_000000000000"},
    )

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["success"] is False

# ==============================================================================
# 2. Webhook
# ==============================================================================

async def test_webhook_rejects_bad_signature(client: AsyncClient, webhook_secret):
    body = json.dumps({"recurring_application_charge": {"id": 1, "status": "active"}}).encode()

    response = await client.post(
        "/api/v1/billing/webhook", content=body, headers=_webhook_headers(body, secret="wrong")
    )

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["success"] is False


async def test_webhook_ignores_other_topics(client: AsyncClient, webhook_secret):
    body = b'{"id": 1}'

    response = await client.post(
        "/api/v1/billing/webhook", content=body, headers=_webhook_headers(body, topic="app/uninstalled")
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"success": True, "message": "ignored", "data": None}


async def test_webhook_rejects_payload_without_charge(client: AsyncClient, webhook_secret):
    body = b'{"recurring_application_charge": {"status": "active"}}'

    response = await client.post("/api/v1/billing/webhook", content=body, headers=_webhook_headers(body))

    assert response.status_code == status.HTTP_400_BAD_REQUEST


async def test_webhook_activates_pending_membership(client: AsyncClient, auth_headers, plans, pending_upgrade, webhook_secret):
    started = (await client.get(
        "/api/v1/billing/start",
        params={"plan_id": plans["starter"].id, "session_id": pending_upgrade["session_id"]},
        headers=auth_headers(USER_ID),
    )).json()["data"]
    body = json.dumps({"recurring_application_charge": {"id": int(started["charge_id"]), "status": "active"}}).encode()

    response = await client.post("/api/v1/billing/webhook", content=body, headers=_webhook_headers(body))

    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["applied"] is True
    assert data["membership_id"] == pending_upgrade["membership_id"]

    current = (await client.get("/api/v1/memberships/current", headers=auth_headers(USER_ID))).json()["data"]
    assert current["plan"]["slug"] == "starter"


async def test_webhook_for_unknown_charge_returns_404(client: AsyncClient, webhook_secret):
    body = b'{"recurring_application_charge": {"id": 424242, "status": "cancelled"}}'

    response = await client.post("/api/v1/billing/webhook", content=body, headers=_webhook_headers(body))

    assert response.status_code == status.HTTP_404_NOT_FOUND
