# haggle/core/security.py

import base64
import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Union
from jose import jwt, JWTError

from haggle.core.config import settings

# ------------------------------------------------------------------------------
# 1. JSON Web Token (JWT) Management
#    - Tokens are issued by the identity service; this core only verifies them.
#    - The 'sub' claim carries the merchant's integer user id.
# ------------------------------------------------------------------------------

def create_access_token(subject: Union[str, Any], expires_delta: timedelta = None) -> str:
    """
    Creates a new JWT access token.

    :param subject: The subject of the token (the user id). Encoded in the 'sub' claim.
    :param expires_delta: Optional timedelta for token expiration. If None, uses default from settings.
    :return: The encoded JWT string.
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode = {
        "exp": expire,
        "sub": str(subject)
    }

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    """
    Decodes and verifies a JWT access token.

    :param token: The JWT string to decode.
    :return: The decoded payload.
    :raises JWTError: For expired, malformed or wrongly signed tokens. The caller
                      (the authentication dependency) turns this into a 401.
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise


# ------------------------------------------------------------------------------
# 2. Webhook signatures
#    - The billing provider signs the raw request body with HMAC-SHA256 and
#      sends the base64 digest in a header.
# ------------------------------------------------------------------------------

def compute_webhook_signature(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_webhook_signature(body: bytes, signature: str, secret: str) -> bool:
    """Verifies a webhook signature in constant time. An unset secret never verifies."""
    if not secret or not signature:
        return False
    return hmac.compare_digest(compute_webhook_signature(body, secret), signature)
