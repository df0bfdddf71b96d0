"""WhatsApp Transport Layer - Module Exports

The manual send router lives in transport.whatsapp.webhook and is
imported by the application directly.
"""

from .message_log import MessageLog
from .messenger import WhatsAppMessenger
from .normalize import (
    NormalizationError,
    extract_status_updates,
    normalize_message,
)
from .schemas import (
    MESSAGES,
    InboundMessage,
    MessageObject,
    MessageRecord,
    StatusUpdate,
    TemplateSendRequest,
    WhatsAppMessageResponse,
    WhatsAppWebhookPayload,
)
from .security import compute_signature, verify_signature, verify_webhook_challenge
from .sender import (
    CloudApiMessageGateway,
    MessageGateway,
    StubMessageGateway,
    WhatsAppSenderError,
)

__all__ = [
    # Schemas
    "MESSAGES",
    "InboundMessage",
    "StatusUpdate",
    "MessageObject",
    "MessageRecord",
    "TemplateSendRequest",
    "WhatsAppMessageResponse",
    "WhatsAppWebhookPayload",
    # Normalization
    "normalize_message",
    "extract_status_updates",
    "NormalizationError",
    # Security
    "compute_signature",
    "verify_signature",
    "verify_webhook_challenge",
    # Sender
    "MessageGateway",
    "CloudApiMessageGateway",
    "StubMessageGateway",
    "WhatsAppSenderError",
    # Log
    "MessageLog",
    "WhatsAppMessenger",
]
