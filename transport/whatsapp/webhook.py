"""
WhatsApp manual send endpoint.

FastAPI router used by the operator console to send one template
message. Pure transport: validate, send through the messenger, map
gateway errors to HTTP.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from commerce.phone import normalize_phone
from webhook.dependencies import get_bootstrap

from .schemas import TemplateSendRequest
from .sender import WhatsAppSenderError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["WhatsApp Transport"])


@router.post("/whatsapp")
async def send_whatsapp_template(request: TemplateSendRequest, bootstrap=Depends(get_bootstrap)):
    """
    Send a template to one recipient.

    Returns:
        {"success": true, "data": <Cloud API response>}

    Errors:
        400: Missing to/templateName or unusable phone number
        500: WhatsApp credentials not configured
        <upstream status>: Cloud API rejected the send
    """
    if not request.to or not request.template_name:
        return JSONResponse(status_code=400, content={"error": "Missing required fields: to, templateName"})

    to = normalize_phone(request.to, bootstrap.config.default_country_code)
    if not to:
        return JSONResponse(status_code=400, content={"error": "Invalid phone number"})

    try:
        response = await bootstrap.messenger.send_template(
            to,
            request.template_name,
            components=request.components,
            language=request.language_code,
        )
    except WhatsAppSenderError as e:
        logger.error(
            f"Manual send of '{request.template_name}' failed: {e}",
            extra={"recipient": to, "template": request.template_name, "status_code": e.status_code},
        )
        return JSONResponse(
            status_code=e.status_code or 500,
            content={"error": str(e), "details": e.error_body},
        )

    return {"success": True, "data": response.model_dump()}
