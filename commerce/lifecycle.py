"""
Order lifecycle state machine.

Drives a COD order through customer confirmation over WhatsApp:

    none ──confirm──▶ verified_pending_address ──address ok──▶ approved
      │                     │
      │                     └──edit──▶ address_change_requested
      └──────────── cancel (from any non-terminal state) ──▶ cancelled

approved and cancelled are terminal.

Rules:
- Idempotency-critical transitions (confirm, address ok) and the one-time
  COD confirmation run as transactional read-check-write
- Messages are never sent inside a transaction; they are returned as
  best-effort effects and dispatched after the commit
- A failed send never rolls back a committed transition
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from storage import DocumentNotFoundError
from transport.whatsapp.messenger import WhatsAppMessenger
from transport.whatsapp.schemas import InboundMessage

from . import templates
from .checkout import CartRecorder
from .effects import Effect, Outcome
from .intents import Intent, IntentResolver, PhraseListIntentResolver
from .models import TERMINAL_STATES, Order, OrderStatus, VerificationStatus, order_from_event
from .phone import DEFAULT_COUNTRY_CODE
from .repositories import OrderRepository
from .templates import Template

logger = logging.getLogger(__name__)

Notify = Callable[[str, str, dict[str, Any]], Effect]

V = VerificationStatus


@dataclass(frozen=True)
class Transition:
    """One edge of the state machine."""

    intent: Intent
    allowed_from: frozenset
    target: VerificationStatus
    template: Template
    params: Callable[[Order], list[str]]
    guarded: bool
    extra_changes: tuple = ()


TRANSITIONS: dict[Intent, Transition] = {
    Intent.CONFIRM_ORDER: Transition(
        intent=Intent.CONFIRM_ORDER,
        allowed_from=frozenset({V.NONE, V.ADDRESS_CHANGE_REQUESTED}),
        target=V.VERIFIED_PENDING_ADDRESS,
        template=Template.ORDER_CONFIRM_AUTO_SCHEDULE,
        params=templates.order_confirm_schedule_params,
        guarded=True,
    ),
    Intent.ADDRESS_CORRECT: Transition(
        intent=Intent.ADDRESS_CORRECT,
        allowed_from=frozenset({V.NONE, V.VERIFIED_PENDING_ADDRESS, V.ADDRESS_CHANGE_REQUESTED}),
        target=V.APPROVED,
        template=Template.COD_CONFIRMED,
        params=templates.cod_confirmed_params,
        guarded=True,
    ),
    Intent.ADDRESS_EDIT: Transition(
        intent=Intent.ADDRESS_EDIT,
        allowed_from=frozenset({V.NONE, V.VERIFIED_PENDING_ADDRESS, V.ADDRESS_CHANGE_REQUESTED}),
        target=V.ADDRESS_CHANGE_REQUESTED,
        template=Template.UPDATE_ADDRESS,
        params=templates.update_address_params,
        guarded=False,
    ),
    Intent.CANCEL: Transition(
        intent=Intent.CANCEL,
        allowed_from=frozenset({V.NONE, V.VERIFIED_PENDING_ADDRESS, V.ADDRESS_CHANGE_REQUESTED}),
        target=V.CANCELLED,
        template=Template.COD_CANCEL,
        params=templates.cod_cancel_params,
        guarded=False,
        extra_changes=(("status", OrderStatus.CANCELLED.value),),
    ),
}


def next_state(current: VerificationStatus, intent: Intent) -> Optional[VerificationStatus]:
    """
    Pure transition function.

    Returns:
        The target state, or None if the intent does not move the order
    """
    if current in TERMINAL_STATES:
        return None
    transition = TRANSITIONS.get(intent)
    if transition is None or current not in transition.allowed_from:
        return None
    return transition.target


class OrderLifecycle:
    """Consumes order and reply events and advances orders."""

    def __init__(
        self,
        orders: OrderRepository,
        messenger: WhatsAppMessenger,
        cart_recorder: CartRecorder,
        intent_resolver: Optional[IntentResolver] = None,
        notify: Optional[Notify] = None,
        country_code: str = DEFAULT_COUNTRY_CODE,
    ):
        self.orders = orders
        self.messenger = messenger
        self.cart_recorder = cart_recorder
        self.intent_resolver = intent_resolver or PhraseListIntentResolver()
        self.notify = notify
        self.country_code = country_code

    def _send_effect(self, to: str, template: Template, params: Sequence[str], order_id: str) -> Effect:
        async def _send():
            return await self.messenger.send_template(to, template.value, parameters=list(params))

        return Effect(
            name=f"whatsapp:{template.value}",
            run=_send,
            context={"order_id": order_id, "template": template.value},
        )

    # ------------------------------------------------------------------
    # Order created
    # ------------------------------------------------------------------

    async def handle_order_created(self, payload: dict[str, Any]) -> Outcome:
        """
        Upsert the order, clean up matching checkouts, and claim the
        one-time COD confirmation send.
        """
        order = order_from_event(payload, self.country_code)
        created = await self.orders.upsert_from_event(order)
        logger.info(
            f"Order {order.order_id} {'created' if created else 'merged'}",
            extra={"order_id": order.order_id, "order_status": order.status.value},
        )

        await self.cart_recorder.cleanup_for_order(
            cart_token=payload.get("checkout_token"),
            email=order.email,
            phone_normalized=order.phone_normalized,
        )

        outcome = Outcome(action="order_recorded", order_id=order.order_id)

        if order.status == OrderStatus.COD and order.phone_normalized:
            claimed = await self.orders.claim_cod_confirmation(order.order_id)
            if claimed is None:
                logger.info(
                    f"Duplicate order webhook for {order.order_number}, COD confirmation already sent",
                    extra={"order_id": order.order_id},
                )
            else:
                outcome.effects.append(
                    self._send_effect(
                        order.phone_normalized,
                        Template.COD_AUTO_CONFIRMATION,
                        templates.cod_auto_confirmation_params(order),
                        order.order_id,
                    )
                )

        if self.notify is not None:
            outcome.effects.append(
                self.notify(
                    "New Order Received! 💰",
                    f"Order #{order.order_number} from {order.customer_name} - ₹{payload.get('total_price')}",
                    {"orderId": order.order_id, "type": "new_order"},
                )
            )

        return outcome

    # ------------------------------------------------------------------
    # Customer replies
    # ------------------------------------------------------------------

    async def handle_inbound(self, message: InboundMessage) -> Outcome:
        """
        Advance the sender's latest COD order according to their reply.

        The message must already be logged. Replies that carry no known
        intent, or that come from a phone with no COD order, are no-ops.
        """
        intent = self.intent_resolver.resolve(message.payload, message.body)
        if intent == Intent.NONE:
            logger.debug(f"No intent in reply from {message.sender}", extra={"message_id": message.message_id})
            return Outcome(action="no_intent")

        if not message.phone_normalized:
            return Outcome(action="no_phone")

        latest = await self.orders.find_latest_cod_order(message.phone_normalized)
        if latest is None:
            logger.info(
                f"No COD order for {message.phone_normalized}, ignoring '{intent.value}'",
                extra={"intent": intent.value},
            )
            return Outcome(action="no_order")

        transition = TRANSITIONS[intent]
        if transition.guarded:
            return await self._apply_guarded(transition, latest.order_id, message.phone_normalized)
        return await self._apply_unguarded(transition, latest, message.phone_normalized)

    def _changes(self, transition: Transition) -> dict[str, Any]:
        return {"verificationStatus": transition.target.value, **dict(transition.extra_changes)}

    async def _apply_guarded(self, transition: Transition, order_id: str, reply_to: str) -> Outcome:
        order = await self.orders.update_if(
            order_id,
            lambda fresh: next_state(fresh.verification_status, transition.intent) is not None,
            self._changes(transition),
        )
        if order is None:
            logger.info(
                f"Order {order_id} already processed for '{transition.intent.value}'. Skipping.",
                extra={"order_id": order_id, "intent": transition.intent.value},
            )
            return Outcome(action="already_processed", order_id=order_id)

        logger.info(
            f"Order {order_id}: {order.verification_status.value} → {transition.target.value}",
            extra={"order_id": order_id, "intent": transition.intent.value},
        )
        return Outcome(
            action=transition.target.value,
            order_id=order_id,
            effects=[self._send_effect(reply_to, transition.template, transition.params(order), order_id)],
        )

    async def _apply_unguarded(self, transition: Transition, order: Order, reply_to: str) -> Outcome:
        if order.is_terminal or next_state(order.verification_status, transition.intent) is None:
            logger.info(
                f"Order {order.order_id} is {order.verification_status.value}, ignoring '{transition.intent.value}'",
                extra={"order_id": order.order_id, "intent": transition.intent.value},
            )
            return Outcome(action="already_processed", order_id=order.order_id)

        try:
            await self.orders.update(order.order_id, self._changes(transition))
        except DocumentNotFoundError:
            logger.warning(
                f"Order {order.order_id} vanished before '{transition.intent.value}' was applied",
                extra={"order_id": order.order_id, "intent": transition.intent.value},
            )
            return Outcome(action="no_order", order_id=order.order_id)

        logger.info(
            f"Order {order.order_id}: {order.verification_status.value} → {transition.target.value}",
            extra={"order_id": order.order_id, "intent": transition.intent.value},
        )
        return Outcome(
            action=transition.target.value,
            order_id=order.order_id,
            effects=[self._send_effect(reply_to, transition.template, transition.params(order), order.order_id)],
        )
