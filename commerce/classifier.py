"""
Inbound webhook event classification.

PURE FUNCTION - NO I/O

One HTTP endpoint receives WhatsApp Cloud API events, cart/checkout
ticks and order-created events. The payload shape decides the route.
Priority order:
1. WhatsApp business account payload with a message  → WHATSAPP_MESSAGE
2. WhatsApp business account payload with a status   → WHATSAPP_STATUS
3. cart_id or latest_stage present                   → CART_EVENT
4. order_number present                              → ORDER_CREATED
5. anything else                                     → UNKNOWN (acknowledged, no action)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

WHATSAPP_OBJECT = "whatsapp_business_account"


class EventKind(str, Enum):
    """Routing classes for inbound webhook payloads."""

    WHATSAPP_MESSAGE = "whatsapp_message"
    WHATSAPP_STATUS = "whatsapp_status"
    CART_EVENT = "cart_event"
    ORDER_CREATED = "order_created"
    UNKNOWN = "unknown"


class CartEventType(str, Enum):
    """Checkout state recorded on each cart tick."""

    ACTIVE_CART = "ACTIVE_CART"
    ABANDONED = "ABANDONED"


@dataclass(frozen=True)
class ClassifiedEvent:
    """Result of classifying one webhook payload."""

    kind: EventKind
    cart_event_type: Optional[CartEventType] = None


def first_change_value(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return entry[0].changes[0].value of a WhatsApp payload, or {}."""
    entries = payload.get("entry") or []
    if not entries or not isinstance(entries[0], dict):
        return {}
    changes = entries[0].get("changes") or []
    if not changes or not isinstance(changes[0], dict):
        return {}
    value = changes[0].get("value")
    return value if isinstance(value, dict) else {}


def is_abandoned_flag(query_params: Optional[Mapping[str, Any]]) -> bool:
    """The cart provider marks abandonment with ?abandoned=1."""
    if not query_params:
        return False
    return str(query_params.get("abandoned", "")) == "1"


def classify_event(
    payload: Any,
    query_params: Optional[Mapping[str, Any]] = None,
) -> ClassifiedEvent:
    """
    Classify an inbound webhook payload by its structural signals.

    Args:
        payload: Parsed JSON body (anything; non-dicts are UNKNOWN)
        query_params: Request query parameters (used for the abandoned flag)

    Returns:
        ClassifiedEvent with the route and, for cart events, the cart state
    """
    if not isinstance(payload, dict):
        return ClassifiedEvent(EventKind.UNKNOWN)

    if payload.get("object") == WHATSAPP_OBJECT:
        value = first_change_value(payload)
        if value.get("messages"):
            return ClassifiedEvent(EventKind.WHATSAPP_MESSAGE)
        if value.get("statuses"):
            return ClassifiedEvent(EventKind.WHATSAPP_STATUS)
        return ClassifiedEvent(EventKind.UNKNOWN)

    if payload.get("object"):
        return ClassifiedEvent(EventKind.UNKNOWN)

    if payload.get("cart_id") or payload.get("latest_stage"):
        event_type = (
            CartEventType.ABANDONED if is_abandoned_flag(query_params) else CartEventType.ACTIVE_CART
        )
        return ClassifiedEvent(EventKind.CART_EVENT, cart_event_type=event_type)

    if payload.get("order_number"):
        return ClassifiedEvent(EventKind.ORDER_CREATED)

    return ClassifiedEvent(EventKind.UNKNOWN)
