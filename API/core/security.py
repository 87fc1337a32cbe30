"""
Security utilities.
Admin JWT tokens and webhook signature verification.
"""

import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone
from typing import Optional

import stripe
from jose import JWTError, jwt

from .config import settings


class WebhookSignatureError(Exception):
    """Webhook payload failed signature verification."""


# ==================== ADMIN TOKENS ====================

def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create JWT access token.

    For admins: data = {"sub": "admin@example.com", "is_admin": True}
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({
        "exp": expire,
        "type": "access"
    })
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def verify_access_token(token: str) -> Optional[dict]:
    """Decode and validate an access token."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if payload.get("type") != "access":
        return None
    return payload


def is_admin_token(payload: dict) -> bool:
    return payload.get("is_admin", False) is True


# ==================== WEBHOOKS ====================

def verify_btcpay_signature(body: bytes, header: Optional[str], secret: str) -> dict:
    """
    Check the "btcpay-sig: sha256=<hex>" header (HMAC-SHA256 of the raw body)
    and return the parsed payload.
    """
    if not header or not header.startswith("sha256="):
        raise WebhookSignatureError("Missing btcpay-sig header")

    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, header[len("sha256="):].strip().lower()):
        raise WebhookSignatureError("Invalid btcpay-sig signature")

    try:
        return json.loads(body)
    except ValueError as e:
        raise WebhookSignatureError(f"Invalid JSON payload: {e}") from e


def verify_stripe_signature(body: bytes, header: Optional[str], secret: str) -> dict:
    """Check the stripe-signature header and return the parsed event."""
    if not header:
        raise WebhookSignatureError("Missing stripe-signature header")
    try:
        stripe.Webhook.construct_event(body, header, secret)
        return json.loads(body)
    except stripe.SignatureVerificationError as e:
        raise WebhookSignatureError(f"Invalid stripe-signature: {e}") from e
    except ValueError as e:
        raise WebhookSignatureError(f"Invalid JSON payload: {e}") from e
