"""
WhatsApp Input Normalization

PURE CONVERSION - NO STATE, NO I/O

Converts WhatsApp webhook payloads into canonical inbound events.
- TEXT: body = text body, trimmed
- BUTTON (template quick reply): body = button text, payload = button payload
- INTERACTIVE (button_reply / list_reply): body = title, payload = id
- Other types: body and payload empty, raw message kept
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from commerce.classifier import first_change_value
from commerce.phone import DEFAULT_COUNTRY_CODE, normalize_phone

from .schemas import (
    InboundMessage,
    MessageObject,
    MessageStatusChange,
    StatusUpdate,
    WhatsAppWebhookPayload,
)


class NormalizationError(Exception):
    """Input normalization failed."""
    pass


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _as_dict(payload: dict | WhatsAppWebhookPayload) -> dict[str, Any]:
    if isinstance(payload, WhatsAppWebhookPayload):
        return payload.model_dump()
    return payload


def _reply_fields(message: MessageObject) -> tuple[str, str]:
    """Return (body, payload) for the supported reply types."""
    if message.type == "text":
        return str((message.text or {}).get("body") or "").strip(), ""

    if message.type == "button":
        button = message.button or {}
        return str(button.get("text") or "").strip(), str(button.get("payload") or "").strip()

    if message.type == "interactive":
        interactive = message.interactive or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        return str(reply.get("title") or "").strip(), str(reply.get("id") or "").strip()

    return "", ""


def normalize_message(
    payload: dict | WhatsAppWebhookPayload,
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> InboundMessage:
    """
    Convert the first message of a WhatsApp webhook into an InboundMessage.

    Args:
        payload: Raw WhatsApp webhook payload
        country_code: Default country code for phone normalization

    Returns:
        InboundMessage ready for the order lifecycle

    Raises:
        NormalizationError: If the payload carries no valid message
    """
    messages = first_change_value(_as_dict(payload)).get("messages") or []
    if not messages:
        raise NormalizationError("Payload contains no messages")

    raw = messages[0]
    try:
        message = MessageObject.model_validate(raw)
    except ValidationError as e:
        raise NormalizationError(f"Invalid message object: {e}") from e

    body, button_payload = _reply_fields(message)

    return InboundMessage(
        message_id=message.id,
        sender=message.from_,
        phone_normalized=normalize_phone(message.from_, country_code),
        type=message.type,
        body=body,
        payload=button_payload,
        timestamp=_parse_timestamp(message.timestamp),
        raw=raw,
    )


def extract_status_updates(payload: dict | WhatsAppWebhookPayload) -> list[StatusUpdate]:
    """
    Convert every status entry of a WhatsApp webhook into StatusUpdates.

    Malformed entries (no id or status) are skipped.
    """
    updates = []
    for raw in first_change_value(_as_dict(payload)).get("statuses") or []:
        try:
            change = MessageStatusChange.model_validate(raw)
        except ValidationError:
            continue
        updates.append(
            StatusUpdate(
                whatsapp_id=change.id,
                status=change.status,
                recipient_id=change.recipient_id,
                timestamp=_parse_timestamp(change.timestamp),
                errors=change.errors or [],
            )
        )
    return updates
