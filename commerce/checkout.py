"""
Cart/checkout recorder.

Tracks pre-order cart activity pushed by the checkout provider:
- every tick merge-upserts one checkout document
- an abandoned tick with a positive cart value and a phone triggers
  one cart_recovery message per checkout
- an order for the same cart token, email or phone deletes the checkout
"""

import json
import logging
from typing import Any, Callable, Optional

from transport.whatsapp.messenger import WhatsAppMessenger

from . import templates
from .classifier import CartEventType
from .effects import Effect, Outcome
from .models import utc_now
from .phone import DEFAULT_COUNTRY_CODE, normalize_phone
from .repositories import CheckoutRepository
from .templates import Template

logger = logging.getLogger(__name__)

DEFAULT_RECOVERY_URL = "https://yourstore.com/cart"

Notify = Callable[[str, str, dict[str, Any]], Effect]


def checkout_document_id(payload: dict[str, Any], now_ms: Optional[int] = None) -> str:
    """Stable id from cart_id, else a synthetic timestamp-based id."""
    cart_id = payload.get("cart_id")
    if cart_id:
        return f"checkout_{cart_id}"
    if now_ms is None:
        now_ms = int(utc_now().timestamp() * 1000)
    return f"unknown_{now_ms}"


def _cart_value(payload: dict[str, Any]) -> float:
    try:
        return float(payload.get("total_price") or 0)
    except (TypeError, ValueError):
        return 0.0


class CartRecorder:
    """Owns the checkouts collection."""

    def __init__(
        self,
        checkouts: CheckoutRepository,
        messenger: WhatsAppMessenger,
        notify: Optional[Notify] = None,
        recovery_url: str = DEFAULT_RECOVERY_URL,
        country_code: str = DEFAULT_COUNTRY_CODE,
    ):
        self.checkouts = checkouts
        self.messenger = messenger
        self.notify = notify
        self.recovery_url = recovery_url
        self.country_code = country_code

    async def record(self, payload: dict[str, Any], event_type: CartEventType) -> Outcome:
        """
        Merge-upsert the checkout and schedule recovery / live-activity effects.
        """
        checkout_id = checkout_document_id(payload)
        phone_normalized = normalize_phone(payload.get("phone_number"), self.country_code)

        await self.checkouts.merge(
            checkout_id,
            {
                **payload,
                "eventType": event_type.value,
                "phoneNormalized": phone_normalized,
                "updatedAt": utc_now(),
                "rawJson": json.dumps(payload, default=str),
            },
        )
        logger.info(
            f"Checkout {checkout_id} recorded as {event_type.value}",
            extra={"checkout_id": checkout_id},
        )

        outcome = Outcome(action=event_type.value)

        if event_type == CartEventType.ABANDONED and phone_normalized and _cart_value(payload) > 0:
            if await self.checkouts.claim_recovery(checkout_id):
                params = templates.cart_recovery_params(payload, self.recovery_url)

                async def _send():
                    return await self.messenger.send_template(
                        phone_normalized, Template.CART_RECOVERY.value, parameters=params
                    )

                outcome.effects.append(
                    Effect(
                        name=f"whatsapp:{Template.CART_RECOVERY.value}",
                        run=_send,
                        context={"checkout_id": checkout_id, "template": Template.CART_RECOVERY.value},
                    )
                )
            else:
                logger.info(
                    f"Recovery already sent for checkout {checkout_id}. Skipping.",
                    extra={"checkout_id": checkout_id},
                )

        if self.notify is not None:
            first_name = payload.get("first_name")
            customer_name = f"{first_name} {payload.get('last_name') or ''}".strip() if first_name else "Visitor"
            outcome.effects.append(
                self.notify(
                    "New Live Activity",
                    f"{customer_name} is active: {payload.get('latest_stage') or 'Browsing'}",
                    {"checkoutId": str(payload.get("cart_id") or ""), "type": "live_activity"},
                )
            )

        return outcome

    async def cleanup_for_order(
        self,
        cart_token: Optional[str] = None,
        email: Optional[str] = None,
        phone_normalized: Optional[str] = None,
    ) -> int:
        """
        Delete checkouts superseded by a purchase.

        Returns:
            Number of checkout documents deleted
        """
        if not (phone_normalized or email):
            return 0

        docs = await self.checkouts.find_correlated(
            cart_token=cart_token,
            email=email,
            phone_normalized=phone_normalized,
        )
        deleted = await self.checkouts.delete(docs)
        if deleted:
            logger.info(f"Deleted {deleted} checkout(s) after purchase", extra={"deleted": deleted})
        return deleted
