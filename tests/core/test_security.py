# tests/core/test_security.py

import pytest
from datetime import timedelta
from jose import JWTError

from haggle.core.security import (
    create_access_token,
    decode_token,
    compute_webhook_signature,
    verify_webhook_signature,
)

# ==============================================================================
# 1. JWT (Access Token) Tests
# ==============================================================================

async def test_jwt_creation_and_decoding():
    """
    Tests the full lifecycle of creating and decoding a valid JWT.
    """
    token = create_access_token(subject=42)
    assert isinstance(token, str)

    payload = decode_token(token)
    assert payload["sub"] == "42"
    assert isinstance(payload["exp"], int)


async def test_jwt_expired_token():
    """
    Tests that decoding an expired token correctly raises a JWTError.
    """
    expired_token = create_access_token(subject=7, expires_delta=timedelta(seconds=-10))

    with pytest.raises(JWTError):
        decode_token(expired_token)


async def test_jwt_invalid_signature():
    token = create_access_token(subject=7)

    with pytest.raises(JWTError):
        decode_token(token + "invalid")

# ==============================================================================
# 2. Webhook Signature Tests
# ==============================================================================

async def test_webhook_signature_round_trip():
    body = b'{"recurring_application_charge": {"id": 1001, "status": "active"}}'
    signature = compute_webhook_signature(body, "shpss_secret")

    assert verify_webhook_signature(body, signature, "shpss_secret") is True
    # Any change to the body, the secret or the signature fails verification.
    assert verify_webhook_signature(body + b" ", signature, "shpss_secret") is False
    assert verify_webhook_signature(body, signature, "other_secret") is False
    assert verify_webhook_signature(body, signature[:-2] + "AA", "shpss_secret") is False


async def test_webhook_signature_requires_secret_and_header():
    body = b"{}"
    assert verify_webhook_signature(body, compute_webhook_signature(body, ""), "") is False
    assert verify_webhook_signature(body, None, "shpss_secret") is False
    assert verify_webhook_signature(body, "", "shpss_secret") is False
