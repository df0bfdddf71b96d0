"""
WhatsApp Signature Verification

SECURITY BOUNDARY - Verify Meta HMAC signature and the subscription challenge.
No commerce imports. No retries.
"""

import hashlib
import hmac
import os
from typing import Optional

from fastapi import HTTPException, Request, status


DEFAULT_VERIFY_TOKEN = "cod_console_verify"
SIGNATURE_HEADER = "X-Hub-Signature-256"


def compute_signature(body: bytes, app_secret: str) -> str:
    """Header value Meta sends for body: "sha256=" + hex HMAC-SHA256."""
    digest = hmac.new(app_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


async def verify_signature(
    request: Request,
    body: bytes,
    app_secret: Optional[str] = None,
) -> None:
    """
    Verify Meta HMAC-SHA256 signature on a WhatsApp webhook.

    WhatsApp sends:
    - X-Hub-Signature-256 header with HMAC
    - Request body

    We compute HMAC(body, app_secret) and compare.

    Args:
        request: FastAPI Request object
        body: Raw request body bytes
        app_secret: App secret (defaults to WHATSAPP_APP_SECRET)

    Raises:
        HTTPException(401): Missing signature
        HTTPException(403): Invalid signature
        HTTPException(500): App secret not configured
    """
    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Hub-Signature-256 header"
        )

    app_secret = app_secret or os.getenv("WHATSAPP_APP_SECRET")
    if not app_secret:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="WHATSAPP_APP_SECRET not configured"
        )

    if not hmac.compare_digest(signature, compute_signature(body, app_secret)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid signature"
        )


def verify_webhook_challenge(
    hub_mode: Optional[str],
    hub_challenge: Optional[str],
    hub_verify_token: Optional[str],
    expected_token: Optional[str] = None,
) -> str:
    """
    Verify webhook subscription challenge from WhatsApp.

    WhatsApp calls GET /api/webhook with:
    - hub.mode=subscribe
    - hub.challenge=random_string
    - hub.verify_token=configured_token

    Returns:
        The challenge string to echo back

    Raises:
        HTTPException(400): hub.mode is not "subscribe"
        HTTPException(403): Invalid token
    """
    expected_token = expected_token or os.getenv("WHATSAPP_VERIFY_TOKEN", DEFAULT_VERIFY_TOKEN)

    if hub_mode != "subscribe":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid hub.mode"
        )

    if not hub_verify_token or not hmac.compare_digest(hub_verify_token, expected_token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden"
        )

    return hub_challenge or ""
