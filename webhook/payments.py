"""
PayU payment webhook handler.

PayU posts the transaction result as a form (JSON is accepted too).
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from commerce.payments import PaymentVerificationError
from infra.bootstrap import InfraBootstrap

from .dependencies import get_bootstrap

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["payments"])


async def _read_fields(request: Request) -> dict:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        data = await request.json()
        return data if isinstance(data, dict) else {}
    form = await request.form()
    return dict(form)


@router.post("/payu-webhook")
async def payu_webhook(request: Request, bootstrap: InfraBootstrap = Depends(get_bootstrap)):
    """
    Verify and apply a PayU callback.

    Returns:
        "Verified" on success, 400 {"error": "Invalid Hash"} on mismatch
    """
    if not bootstrap.config.payu_salt:
        logger.error("PAYU_SALT not configured")
        return JSONResponse(status_code=500, content={"error": "PAYU_SALT not configured"})

    try:
        fields = await _read_fields(request)
        action = await bootstrap.payments.handle(fields)
    except PaymentVerificationError as e:
        logger.warning(f"PayU webhook rejected: {e}")
        return JSONResponse(status_code=400, content={"error": str(e)})
    except Exception as e:
        logger.error(f"PayU Webhook Error: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": str(e)})

    logger.info(f"PayU webhook processed: {action}", extra={"action": action})
    return PlainTextResponse("Verified")
