"""
Cart/checkout recorder tests.

Live ticks upsert one checkout document; an abandoned tick sends one
recovery message; a purchase deletes correlated checkouts.
"""

import json

import pytest

from commerce.checkout import checkout_document_id
from commerce.classifier import CartEventType
from commerce.effects import dispatch_effects
from commerce.models import CHECKOUTS


def cart_payload(**overrides):
    payload = {"cart_id": "abc123", "phone_number": "9000000000", "total_price": 500}
    payload.update(overrides)
    return payload


class TestCheckoutDocumentId:

    def test_cart_id_key(self):
        assert checkout_document_id({"cart_id": "abc123"}) == "checkout_abc123"

    def test_synthetic_key(self):
        assert checkout_document_id({"latest_stage": "CONTACT"}, now_ms=1700000000000) == "unknown_1700000000000"


class TestRecord:

    @pytest.mark.asyncio
    async def test_abandoned_cart_scenario(self, bootstrap, store, gateway):
        outcome = await bootstrap.cart_recorder.record(cart_payload(), CartEventType.ABANDONED)
        await dispatch_effects(outcome.effects)

        doc = await store.get(CHECKOUTS, "checkout_abc123")
        assert doc.data["eventType"] == "ABANDONED"
        assert doc.data["phoneNormalized"] == "919000000000"
        assert json.loads(doc.data["rawJson"])["cart_id"] == "abc123"

        sent = gateway.sent_templates("cart_recovery")
        assert len(sent) == 1
        assert sent[0].to == "919000000000"
        assert sent[0].parameters == ["Shopper", "500", "https://shop.test/cart"]

    @pytest.mark.asyncio
    async def test_recovery_sent_once_per_checkout(self, bootstrap, store, gateway):
        first = await bootstrap.cart_recorder.record(cart_payload(), CartEventType.ABANDONED)
        second = await bootstrap.cart_recorder.record(cart_payload(), CartEventType.ABANDONED)
        await dispatch_effects(first.effects + second.effects)

        assert len(gateway.sent_templates("cart_recovery")) == 1
        assert (await store.get(CHECKOUTS, "checkout_abc123")).data["recoverySent"] is True

    @pytest.mark.asyncio
    async def test_landing_page_and_name(self, bootstrap, gateway):
        payload = cart_payload(first_name="Meera", cart_attributes={"landing_page_url": "https://shop.test/c/abc"})
        outcome = await bootstrap.cart_recorder.record(payload, CartEventType.ABANDONED)
        await dispatch_effects(outcome.effects)

        assert gateway.sent_templates("cart_recovery")[0].parameters == ["Meera", "500", "https://shop.test/c/abc"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [{"total_price": 0}, {"total_price": None}, {"phone_number": None}, {"phone_number": ""}],
    )
    async def test_no_recovery_without_value_or_phone(self, bootstrap, store, gateway, overrides):
        outcome = await bootstrap.cart_recorder.record(cart_payload(**overrides), CartEventType.ABANDONED)
        await dispatch_effects(outcome.effects)

        assert gateway.sent_templates("cart_recovery") == []
        assert await store.get(CHECKOUTS, "checkout_abc123") is not None

    @pytest.mark.asyncio
    async def test_active_cart_merges(self, bootstrap, store, gateway):
        await bootstrap.cart_recorder.record(cart_payload(latest_stage="CONTACT"), CartEventType.ACTIVE_CART)
        await bootstrap.cart_recorder.record({"cart_id": "abc123", "latest_stage": "PAYMENT"}, CartEventType.ACTIVE_CART)

        doc = await store.get(CHECKOUTS, "checkout_abc123")
        assert doc.data["latest_stage"] == "PAYMENT"
        assert doc.data["total_price"] == 500
        assert doc.data["eventType"] == "ACTIVE_CART"
        assert gateway.sent == []

    @pytest.mark.asyncio
    async def test_live_activity_notification(self, bootstrap, store, push_provider):
        await store.set("push_tokens", "d1", {"token": "ExponentPushToken[a]"})

        outcome = await bootstrap.cart_recorder.record(
            cart_payload(first_name="Meera", last_name="S", latest_stage="SHIPPING"),
            CartEventType.ACTIVE_CART,
        )
        await dispatch_effects(outcome.effects)

        [message] = push_provider.delivered
        assert message.title == "New Live Activity"
        assert message.body == "Meera S is active: SHIPPING"
        assert message.data == {"checkoutId": "abc123", "type": "live_activity"}


class TestCleanupForOrder:

    @pytest.mark.asyncio
    async def test_checkout_deleted_by_phone(self, bootstrap, store):
        await store.set(CHECKOUTS, "checkout_x", {"phoneNormalized": "919999999999"})
        await store.set(CHECKOUTS, "checkout_other", {"phoneNormalized": "918888888888"})

        await bootstrap.lifecycle.handle_order_created({
            "id": 777,
            "order_number": 77,
            "total_price": "10.00",
            "phone": "+91 99999 99999",
            "gateway": "cod",
        })

        assert await store.get(CHECKOUTS, "checkout_x") is None
        assert await store.get(CHECKOUTS, "checkout_other") is not None

    @pytest.mark.asyncio
    async def test_checkout_deleted_by_cart_token_and_email(self, bootstrap, store):
        await store.set(CHECKOUTS, "checkout_token", {"shopifyCartToken": "tok-1"})
        await store.set(CHECKOUTS, "checkout_email", {"email": "a@example.com"})
        await store.set(CHECKOUTS, "checkout_both", {"email": "a@example.com", "shopifyCartToken": "tok-1"})

        deleted = await bootstrap.cart_recorder.cleanup_for_order(cart_token="tok-1", email="a@example.com")

        assert deleted == 3
        assert await store.stream(CHECKOUTS) == []

    @pytest.mark.asyncio
    async def test_cart_token_alone_is_not_enough(self, bootstrap, store):
        await store.set(CHECKOUTS, "checkout_token", {"shopifyCartToken": "tok-1"})

        assert await bootstrap.cart_recorder.cleanup_for_order(cart_token="tok-1") == 0
        assert await store.get(CHECKOUTS, "checkout_token") is not None
