"""
WhatsApp Transport Layer - Pydantic Schemas

PURE DATA MODELS - NO LOGIC
Only defines the contract between the WhatsApp Cloud API and the
commerce core.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


MESSAGES = "whatsapp_messages"


# ============================================================================
# NORMALIZED INBOUND EVENTS (THE CONTRACT)
# ============================================================================

class InboundMessage(BaseModel):
    """
    Canonical form of one customer message.

    Text, template-button and interactive-button replies all reduce to
    body (what the customer saw or typed) and payload (button id).
    """

    message_id: str = Field(..., description="WhatsApp message id (wamid)")
    sender: str = Field(..., description="Sender phone exactly as WhatsApp sent it")
    phone_normalized: Optional[str] = Field(None, description="Canonical lookup key")
    type: str = Field(..., description="WhatsApp message type")
    body: str = Field("", description="Text body or button title")
    payload: str = Field("", description="Button payload id, empty for text")
    timestamp: Optional[datetime] = Field(None, description="Message timestamp UTC")
    raw: dict[str, Any] = Field(default_factory=dict, description="Message object verbatim")

    class Config:
        """Pydantic config."""
        frozen = True


class StatusUpdate(BaseModel):
    """Delivery status callback for an outbound message."""

    whatsapp_id: str
    status: str
    recipient_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    errors: list[dict[str, Any]] = Field(default_factory=list)

    class Config:
        frozen = True


# ============================================================================
# WHATSAPP WEBHOOK PAYLOAD SCHEMAS (INPUT)
# ============================================================================

class MessageObject(BaseModel):
    """A single WhatsApp message."""
    from_: str = Field(..., alias="from")
    id: str
    timestamp: Optional[str] = None
    type: str

    text: Optional[dict[str, Any]] = None
    button: Optional[dict[str, Any]] = None
    interactive: Optional[dict[str, Any]] = None

    class Config:
        populate_by_name = True
        coerce_numbers_to_str = True
        extra = "allow"


class MessageStatusChange(BaseModel):
    """Message status update (delivery, read, etc)."""
    id: str
    status: str
    timestamp: Optional[str] = None
    recipient_id: Optional[str] = None
    errors: Optional[list[dict[str, Any]]] = None

    class Config:
        extra = "allow"


class WhatsAppWebhookPayload(BaseModel):
    """
    Full WhatsApp webhook payload.

    ref: https://developers.facebook.com/docs/whatsapp/cloud-api/webhooks/payload-example
    """

    object: str = Field(..., description="Always 'whatsapp_business_account'")
    entry: list[dict] = Field(..., description="Webhook entries")

    class Config:
        extra = "allow"  # WhatsApp may add fields


# ============================================================================
# OUTBOUND
# ============================================================================

class TemplateSendRequest(BaseModel):
    """Body of the manual template send endpoint."""

    to: Optional[str] = None
    template_name: Optional[str] = Field(None, alias="templateName")
    language_code: str = Field("en_US", alias="languageCode")
    components: Optional[list[dict[str, Any]]] = None

    class Config:
        populate_by_name = True
        coerce_numbers_to_str = True


class WhatsAppMessageResponse(BaseModel):
    """Response from WhatsApp Cloud API when sending a message."""

    messaging_product: str = Field(default="whatsapp")
    contacts: list[dict[str, Any]] = Field(default_factory=list)
    messages: list[dict[str, Any]] = Field(default_factory=list)

    class Config:
        extra = "allow"

    @property
    def message_id(self) -> Optional[str]:
        if not self.messages:
            return None
        return self.messages[0].get("id")


class MessageRecord(BaseModel):
    """One immutable entry of the whatsapp_messages log."""

    phone: str
    phone_normalized: Optional[str] = Field(None, alias="phoneNormalized")
    direction: Literal["inbound", "outbound"]
    type: str
    body: str = ""
    template_name: Optional[str] = Field(None, alias="templateName")
    payload: Optional[str] = None
    status: Optional[str] = None
    whatsapp_id: Optional[str] = Field(None, alias="whatsappId")
    raw: Optional[str] = None
    timestamp: datetime

    class Config:
        populate_by_name = True

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
