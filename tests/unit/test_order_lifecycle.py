"""
Order lifecycle state machine tests.

Covers the confirmation flow, idempotency of guarded transitions,
terminal-state monotonicity and the one-time COD confirmation.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from commerce.effects import dispatch_effects
from commerce.intents import Intent
from commerce.lifecycle import next_state
from commerce.models import ORDERS, TERMINAL_STATES, Order, VerificationStatus
from transport.whatsapp.normalize import normalize_message

V = VerificationStatus


def reply(phone, payload="", body="", message_id="wamid.in.1"):
    """Template quick-reply message from a customer."""
    message = {"from": phone, "id": message_id, "timestamp": "1707500000"}
    if payload or body:
        message.update({"type": "button", "button": {"payload": payload, "text": body}})
    return normalize_message({
        "object": "whatsapp_business_account",
        "entry": [{"changes": [{"value": {"messages": [message]}}]}],
    })


async def seed_order(store, order_id="555", **fields):
    data = {
        "orderId": order_id,
        "orderNumber": "1001",
        "customerName": "Asha Rao",
        "status": "COD",
        "verificationStatus": "none",
        "whatsappSent": True,
        "phone": "9876543210",
        "phoneNormalized": "919876543210",
        "address1": "12 MG Road",
        "city": "Pune",
        "state": "",
        "zip": "411001",
        "totalPrice": 999.0,
        "createdAt": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    data.update(fields)
    await store.set(ORDERS, order_id, data)


async def verification_status(store, order_id="555"):
    doc = await store.get(ORDERS, order_id)
    return doc.data["verificationStatus"]


class TestNextState:

    def test_confirm_from_none(self):
        assert next_state(V.NONE, Intent.CONFIRM_ORDER) == V.VERIFIED_PENDING_ADDRESS

    def test_confirm_after_address_change(self):
        assert next_state(V.ADDRESS_CHANGE_REQUESTED, Intent.CONFIRM_ORDER) == V.VERIFIED_PENDING_ADDRESS

    def test_confirm_not_repeated(self):
        assert next_state(V.VERIFIED_PENDING_ADDRESS, Intent.CONFIRM_ORDER) is None

    def test_address_correct(self):
        assert next_state(V.VERIFIED_PENDING_ADDRESS, Intent.ADDRESS_CORRECT) == V.APPROVED
        assert next_state(V.NONE, Intent.ADDRESS_CORRECT) == V.APPROVED

    def test_edit_and_cancel(self):
        assert next_state(V.VERIFIED_PENDING_ADDRESS, Intent.ADDRESS_EDIT) == V.ADDRESS_CHANGE_REQUESTED
        assert next_state(V.NONE, Intent.CANCEL) == V.CANCELLED

    @pytest.mark.parametrize("terminal", [V.APPROVED, V.CANCELLED])
    @pytest.mark.parametrize("intent", [Intent.CONFIRM_ORDER, Intent.ADDRESS_CORRECT, Intent.ADDRESS_EDIT, Intent.CANCEL])
    def test_terminal_states_accept_nothing(self, terminal, intent):
        assert next_state(terminal, intent) is None

    def test_no_intent(self):
        assert next_state(V.NONE, Intent.NONE) is None

    def test_terminal_set_matches_transition_table(self):
        closed = {
            state for state in V
            if all(next_state(state, intent) is None for intent in Intent)
        }
        assert closed == set(TERMINAL_STATES)

    def test_order_is_terminal(self):
        assert Order(order_id="1", verification_status=V.APPROVED).is_terminal
        assert not Order(order_id="1", verification_status=V.ADDRESS_CHANGE_REQUESTED).is_terminal


class TestInboundReplies:

    @pytest.mark.asyncio
    async def test_confirm_order_scenario(self, bootstrap, store, gateway):
        """CONFIRM_COD_YES from 9876543210 moves the order and asks for the address."""
        await seed_order(store)

        outcome = await bootstrap.lifecycle.handle_inbound(reply("9876543210", payload="CONFIRM_COD_YES"))
        await dispatch_effects(outcome.effects)

        assert outcome.action == "verified_pending_address"
        assert await verification_status(store) == "verified_pending_address"
        sent = gateway.sent_templates("order_confirm_auto_schedule")
        assert len(sent) == 1
        assert sent[0].to == "919876543210"
        assert sent[0].parameters == ["1001", "12 MG Road, Pune, ", "411001", "9876543210"]

    @pytest.mark.asyncio
    async def test_confirm_twice_sends_once(self, bootstrap, store, gateway):
        await seed_order(store)
        message = reply("919876543210", payload="CONFIRM_COD_YES")

        first = await bootstrap.lifecycle.handle_inbound(message)
        second = await bootstrap.lifecycle.handle_inbound(message)
        await dispatch_effects(first.effects + second.effects)

        assert second.action == "already_processed"
        assert second.effects == []
        assert len(gateway.sent_templates("order_confirm_auto_schedule")) == 1
        assert await verification_status(store) == "verified_pending_address"

    @pytest.mark.asyncio
    async def test_address_correct_approves(self, bootstrap, store, gateway):
        await seed_order(store, verificationStatus="verified_pending_address")

        outcome = await bootstrap.lifecycle.handle_inbound(reply("919876543210", body="Yes, Correct"))
        await dispatch_effects(outcome.effects)

        assert await verification_status(store) == "approved"
        sent = gateway.sent_templates("cod_confirmed")
        assert [s.parameters for s in sent] == [["1001"]]

    @pytest.mark.asyncio
    async def test_edit_address(self, bootstrap, store, gateway):
        await seed_order(store, verificationStatus="verified_pending_address")

        outcome = await bootstrap.lifecycle.handle_inbound(reply("919876543210", payload="ADDRESS_EDIT"))
        await dispatch_effects(outcome.effects)

        assert await verification_status(store) == "address_change_requested"
        assert gateway.sent_templates("update_address")[0].parameters == ["Asha Rao"]

    @pytest.mark.asyncio
    async def test_cancel_sets_order_status(self, bootstrap, store, gateway):
        await seed_order(store)

        outcome = await bootstrap.lifecycle.handle_inbound(reply("919876543210", payload="CONFIRM_COD_NO"))
        await dispatch_effects(outcome.effects)

        doc = await store.get(ORDERS, "555")
        assert doc.data["verificationStatus"] == "cancelled"
        assert doc.data["status"] == "CANCELLED"
        assert gateway.sent_templates("cod_cancel")[0].parameters == ["Asha Rao", "1001"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("terminal", ["approved", "cancelled"])
    @pytest.mark.parametrize("payload", ["CONFIRM_COD_YES", "ADDRESS_CORRECT", "ADDRESS_EDIT", "CONFIRM_COD_NO"])
    async def test_terminal_state_is_monotonic(self, bootstrap, store, gateway, terminal, payload):
        # A cancelled order keeps COD here so the reply still finds it
        await seed_order(store, verificationStatus=terminal)

        outcome = await bootstrap.lifecycle.handle_inbound(reply("919876543210", payload=payload))

        assert outcome.action == "already_processed"
        assert outcome.effects == []
        assert await verification_status(store) == terminal

    @pytest.mark.asyncio
    async def test_reply_without_intent_is_noop(self, bootstrap, store, gateway):
        await seed_order(store)

        outcome = await bootstrap.lifecycle.handle_inbound(reply("919876543210", body="hello?"))

        assert outcome.action == "no_intent"
        assert await verification_status(store) == "none"

    @pytest.mark.asyncio
    async def test_reply_from_unknown_phone(self, bootstrap, store, gateway):
        await seed_order(store)

        outcome = await bootstrap.lifecycle.handle_inbound(reply("919000000001", payload="CONFIRM_COD_YES"))

        assert outcome.action == "no_order"
        assert gateway.sent == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", ["ADDRESS_EDIT", "CONFIRM_COD_NO"])
    async def test_order_deleted_before_update(self, bootstrap, store, gateway, payload):
        await seed_order(store)
        latest = await bootstrap.orders.find_latest_cod_order("919876543210")
        await store.delete_many([f"{ORDERS}/555"])

        with patch.object(bootstrap.orders, "find_latest_cod_order", AsyncMock(return_value=latest)):
            outcome = await bootstrap.lifecycle.handle_inbound(reply("919876543210", payload=payload))

        assert outcome.action == "no_order"
        assert outcome.effects == []
        assert await store.get(ORDERS, "555") is None

    @pytest.mark.asyncio
    async def test_latest_cod_order_wins(self, bootstrap, store, gateway):
        older = datetime(2024, 1, 1, tzinfo=timezone.utc)
        await seed_order(store, "old", orderNumber="1", createdAt=older)
        await seed_order(store, "new", orderNumber="2", createdAt=older + timedelta(days=1))
        await seed_order(store, "paid", orderNumber="3", status="Paid", createdAt=older + timedelta(days=2))

        outcome = await bootstrap.lifecycle.handle_inbound(reply("919876543210", payload="CONFIRM_COD_YES"))

        assert outcome.order_id == "new"
        assert await verification_status(store, "old") == "none"

    @pytest.mark.asyncio
    async def test_failed_send_keeps_transition(self, bootstrap, store, gateway):
        gateway.fail = True
        await seed_order(store)

        outcome = await bootstrap.lifecycle.handle_inbound(reply("919876543210", payload="CONFIRM_COD_YES"))
        results = await dispatch_effects(outcome.effects)

        assert isinstance(results[0], Exception)
        assert await verification_status(store) == "verified_pending_address"


def order_payload(**overrides):
    payload = {
        "id": 555,
        "order_number": 42,
        "total_price": "999.00",
        "phone": "9123456789",
        "line_items": [{"title": "Shirt", "quantity": 1, "price": "999.00"}],
        "gateway": "Cash on Delivery",
    }
    payload.update(overrides)
    return payload


class TestOrderCreated:

    @pytest.mark.asyncio
    async def test_cod_order_scenario(self, bootstrap, store, gateway):
        outcome = await bootstrap.lifecycle.handle_order_created(order_payload())
        await dispatch_effects(outcome.effects)

        doc = await store.get(ORDERS, "555")
        assert doc.data["status"] == "COD"
        assert doc.data["phoneNormalized"] == "919123456789"
        assert doc.data["verificationStatus"] == "none"
        assert doc.data["whatsappSent"] is True

        sent = gateway.sent_templates("cod_auto_confirmation")
        assert len(sent) == 1
        assert sent[0].to == "919123456789"
        assert sent[0].parameters == ["Guest", "42", "Shirt", "999.00"]

    @pytest.mark.asyncio
    async def test_duplicate_delivery_sends_once(self, bootstrap, store, gateway):
        first = await bootstrap.lifecycle.handle_order_created(order_payload())
        second = await bootstrap.lifecycle.handle_order_created(order_payload())
        await dispatch_effects(first.effects + second.effects)

        assert len(gateway.sent_templates("cod_auto_confirmation")) == 1
        doc = await store.get(ORDERS, "555")
        assert doc.data["whatsappSent"] is True

    @pytest.mark.asyncio
    async def test_duplicate_keeps_lifecycle_state(self, bootstrap, store):
        await bootstrap.lifecycle.handle_order_created(order_payload())
        created_at = (await store.get(ORDERS, "555")).data["createdAt"]
        await store.update(ORDERS, "555", {"verificationStatus": "approved"})

        await bootstrap.lifecycle.handle_order_created(order_payload(total_price="1099.00"))

        doc = await store.get(ORDERS, "555")
        assert doc.data["verificationStatus"] == "approved"
        assert doc.data["createdAt"] == created_at
        assert doc.data["totalPrice"] == 1099.0

    @pytest.mark.asyncio
    async def test_prepaid_order_sends_nothing(self, bootstrap, store, gateway):
        outcome = await bootstrap.lifecycle.handle_order_created(
            order_payload(gateway="razorpay", payment_gateway_names=["razorpay"])
        )
        await dispatch_effects(outcome.effects)

        assert (await store.get(ORDERS, "555")).data["status"] == "Paid"
        assert gateway.sent == []

    @pytest.mark.asyncio
    async def test_cod_order_without_phone(self, bootstrap, store, gateway):
        outcome = await bootstrap.lifecycle.handle_order_created(order_payload(phone=None))
        await dispatch_effects(outcome.effects)

        assert gateway.sent == []
        assert (await store.get(ORDERS, "555")).data["whatsappSent"] is False

    @pytest.mark.asyncio
    async def test_new_order_notification(self, bootstrap, store, push_provider):
        await store.set("push_tokens", "d1", {"token": "ExponentPushToken[a]"})

        outcome = await bootstrap.lifecycle.handle_order_created(
            order_payload(customer={"first_name": "Ravi", "last_name": "K"})
        )
        await dispatch_effects(outcome.effects)

        [message] = push_provider.delivered
        assert message.title == "New Order Received! 💰"
        assert message.body == "Order #42 from Ravi K - ₹999.00"
        assert message.data == {"orderId": "555", "type": "new_order"}
