"""
Inbound event handler.

Single entry point for the multiplexed webhook. Classifies the payload,
performs the committed work for its route, and returns the
acknowledgement plus the best-effort effects still to dispatch.
No HTTP concerns live here.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from transport.whatsapp.message_log import MessageLog
from transport.whatsapp.normalize import NormalizationError, extract_status_updates, normalize_message

from .checkout import CartRecorder
from .classifier import EventKind, classify_event
from .effects import Effect
from .lifecycle import OrderLifecycle
from .phone import DEFAULT_COUNTRY_CODE

logger = logging.getLogger(__name__)


@dataclass
class HandlerResult:
    """Acknowledgement for the sender plus deferred effects."""

    kind: EventKind
    response: Union[str, dict[str, Any]]
    action: str = ""
    effects: list[Effect] = field(default_factory=list)


class CommerceEventHandler:
    """Routes classified events to the lifecycle, cart recorder and message log."""

    def __init__(
        self,
        lifecycle: OrderLifecycle,
        cart_recorder: CartRecorder,
        message_log: MessageLog,
        country_code: str = DEFAULT_COUNTRY_CODE,
    ):
        self.lifecycle = lifecycle
        self.cart_recorder = cart_recorder
        self.message_log = message_log
        self.country_code = country_code

    async def handle(
        self,
        payload: Any,
        query_params: Optional[Mapping[str, Any]] = None,
    ) -> HandlerResult:
        event = classify_event(payload, query_params)

        if event.kind == EventKind.WHATSAPP_MESSAGE:
            return await self._handle_message(payload)

        if event.kind == EventKind.WHATSAPP_STATUS:
            updates = extract_status_updates(payload)
            for update in updates:
                await self.message_log.apply_status(update)
            return HandlerResult(event.kind, "STATUS_RECEIVED", action=f"{len(updates)}_statuses")

        if event.kind == EventKind.CART_EVENT:
            outcome = await self.cart_recorder.record(payload, event.cart_event_type)
            return HandlerResult(event.kind, "OK", action=outcome.action, effects=outcome.effects)

        if event.kind == EventKind.ORDER_CREATED:
            outcome = await self.lifecycle.handle_order_created(payload)
            return HandlerResult(
                event.kind,
                {"success": True},
                action=outcome.action,
                effects=outcome.effects,
            )

        logger.debug("Unrecognized webhook payload, no action taken")
        return HandlerResult(event.kind, {"message": "No action taken"}, action="none")

    async def _handle_message(self, payload: dict[str, Any]) -> HandlerResult:
        try:
            message = normalize_message(payload, self.country_code)
        except NormalizationError as e:
            logger.warning(f"Unusable WhatsApp message: {e}")
            return HandlerResult(EventKind.WHATSAPP_MESSAGE, "EVENT_RECEIVED", action="unparsed")

        # Durable before any state change
        await self.message_log.record_inbound(message)

        outcome = await self.lifecycle.handle_inbound(message)
        return HandlerResult(
            EventKind.WHATSAPP_MESSAGE,
            "EVENT_RECEIVED",
            action=outcome.action,
            effects=outcome.effects,
        )
