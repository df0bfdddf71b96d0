"""
Commerce webhook handler.

One endpoint receives every inbound event: WhatsApp messages and
delivery statuses, store order notifications, and cart/checkout ticks.
The payload shape decides the route.

Update Flow:
  webhook → (signature check) → classify → commit state → respond
          → background: message sends, push fan-out
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from commerce.classifier import WHATSAPP_OBJECT
from commerce.effects import dispatch_effects
from infra.bootstrap import InfraBootstrap
from transport.whatsapp.security import verify_signature, verify_webhook_challenge

from .dependencies import get_bootstrap

# Setup logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/api", tags=["webhook"])


@router.get("/webhook", response_class=PlainTextResponse)
async def webhook_challenge(
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
    bootstrap: InfraBootstrap = Depends(get_bootstrap),
):
    """
    WhatsApp subscription handshake.

    Echoes hub.challenge when the verify token matches.
    """
    challenge = verify_webhook_challenge(
        hub_mode,
        hub_challenge,
        hub_verify_token,
        expected_token=bootstrap.config.whatsapp_verify_token,
    )
    logger.info("WEBHOOK_VERIFIED")
    return PlainTextResponse(challenge)


@router.post("/webhook")
async def commerce_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    bootstrap: InfraBootstrap = Depends(get_bootstrap),
):
    """
    Receive one inbound event.

    Always acknowledges recognized-but-inert payloads with 200 so senders
    do not retry. State changes are committed before the response;
    outbound messages and pushes run after it as background tasks.

    Returns:
        "EVENT_RECEIVED" / "STATUS_RECEIVED" / "OK" as text, or a JSON ack
    """
    body = await request.body()
    try:
        payload = json.loads(body) if body else None
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.debug("Webhook body is not JSON, no action taken")
        return JSONResponse({"message": "No action taken"})

    app_secret = bootstrap.config.whatsapp_app_secret
    if app_secret and isinstance(payload, dict) and payload.get("object") == WHATSAPP_OBJECT:
        await verify_signature(request, body, app_secret)

    try:
        result = await bootstrap.handler.handle(payload, dict(request.query_params))
    except Exception as e:
        logger.error(f"Webhook Error: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": str(e)})

    logger.info(
        f"Webhook handled: {result.kind.value} ({result.action})",
        extra={"event_kind": result.kind.value, "action": result.action, "effects": len(result.effects)},
    )

    if result.effects:
        background_tasks.add_task(dispatch_effects, result.effects)

    if isinstance(result.response, str):
        return PlainTextResponse(result.response)
    return JSONResponse(result.response)
