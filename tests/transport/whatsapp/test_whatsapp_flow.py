"""
WhatsApp Transport Flow Tests

Outbound flow: messenger → Cloud API gateway → message log,
and the status callbacks that patch the logged record.
"""

import json

import httpx
import pytest

from transport.whatsapp.message_log import MessageLog
from transport.whatsapp.messenger import WhatsAppMessenger
from transport.whatsapp.normalize import normalize_message
from transport.whatsapp.schemas import MESSAGES, StatusUpdate
from transport.whatsapp.sender import (
    CloudApiMessageGateway,
    StubMessageGateway,
    WhatsAppSenderError,
    body_components,
)


def cloud_gateway(handler):
    return CloudApiMessageGateway(
        access_token="token123",
        phone_number_id="1098765",
        transport=httpx.MockTransport(handler),
    )


class TestCloudApiGateway:

    @pytest.mark.asyncio
    async def test_template_request(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "messaging_product": "whatsapp",
                "contacts": [{"input": "919876543210", "wa_id": "919876543210"}],
                "messages": [{"id": "wamid.out.1"}],
            })

        response = await cloud_gateway(handler).send_template(
            "919876543210", "cod_confirmed", parameters=[1001]
        )

        assert seen["url"] == "https://graph.facebook.com/v17.0/1098765/messages"
        assert seen["auth"] == "Bearer token123"
        assert seen["body"] == {
            "messaging_product": "whatsapp",
            "to": "919876543210",
            "type": "template",
            "template": {
                "name": "cod_confirmed",
                "language": {"code": "en_US"},
                "components": [{"type": "body", "parameters": [{"type": "text", "text": "1001"}]}],
            },
        }
        assert response.message_id == "wamid.out.1"

    @pytest.mark.asyncio
    async def test_explicit_components_and_language(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"messages": [{"id": "wamid.x"}]})

        components = [{"type": "header", "parameters": []}]
        await cloud_gateway(handler).send_template("91", "hello", components=components, language="hi")

        assert seen["body"]["template"]["components"] == components
        assert seen["body"]["template"]["language"] == {"code": "hi"}

    @pytest.mark.asyncio
    async def test_no_parameters_no_components(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"messages": [{"id": "wamid.x"}]})

        await cloud_gateway(handler).send_template("91", "hello_world")

        assert "components" not in seen["body"]["template"]

    @pytest.mark.asyncio
    async def test_api_error_carries_status(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "Template name does not exist", "code": 132001}})

        with pytest.raises(WhatsAppSenderError) as exc_info:
            await cloud_gateway(handler).send_template("91", "missing_template")

        assert exc_info.value.status_code == 400
        assert "Template name does not exist" in str(exc_info.value)
        assert exc_info.value.error_body["error"]["code"] == 132001

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("unreachable")

        with pytest.raises(WhatsAppSenderError):
            await cloud_gateway(handler).send_template("91", "hello")

    def test_body_components(self):
        assert body_components(["a", 2]) == [
            {"type": "body", "parameters": [{"type": "text", "text": "a"}, {"type": "text", "text": "2"}]}
        ]


class TestMessengerAndLog:

    @pytest.mark.asyncio
    async def test_send_writes_one_outbound_record(self, store):
        gateway = StubMessageGateway()
        messenger = WhatsAppMessenger(gateway, MessageLog(store))

        response = await messenger.send_template("919876543210", "cod_confirmed", parameters=["1001"])

        [record] = await store.stream(MESSAGES)
        assert record.data["direction"] == "outbound"
        assert record.data["whatsappId"] == response.message_id
        assert record.data["templateName"] == "cod_confirmed"
        assert record.data["body"] == "Template: cod_confirmed"
        assert record.data["status"] == "sent"
        assert record.data["phoneNormalized"] == "919876543210"

    @pytest.mark.asyncio
    async def test_failed_send_writes_nothing(self, store):
        messenger = WhatsAppMessenger(StubMessageGateway(fail=True), MessageLog(store))

        with pytest.raises(WhatsAppSenderError):
            await messenger.send_template("919876543210", "cod_confirmed")

        assert await store.stream(MESSAGES) == []

    @pytest.mark.asyncio
    async def test_inbound_record(self, store):
        message = normalize_message({
            "object": "whatsapp_business_account",
            "entry": [{"changes": [{"value": {"messages": [{
                "from": "9876543210",
                "id": "wamid.in.1",
                "timestamp": "1707500000",
                "type": "button",
                "button": {"payload": "CONFIRM_COD_YES", "text": "Confirm Order"},
            }]}}]}],
        })

        await MessageLog(store).record_inbound(message)

        [record] = await store.stream(MESSAGES)
        assert record.data["direction"] == "inbound"
        assert record.data["phone"] == "9876543210"
        assert record.data["phoneNormalized"] == "919876543210"
        assert record.data["payload"] == "CONFIRM_COD_YES"
        assert record.data["whatsappId"] == "wamid.in.1"
        assert json.loads(record.data["raw"])["id"] == "wamid.in.1"

    @pytest.mark.asyncio
    async def test_status_patches_outbound_record(self, store):
        log = MessageLog(store)
        record_id = await log.record_outbound("919876543210", "cod_confirmed", "wamid.out.1")

        updated = await log.apply_status(
            StatusUpdate(whatsapp_id="wamid.out.1", status="failed", errors=[{"code": 131026}])
        )

        assert updated is True
        doc = await store.get(MESSAGES, record_id)
        assert doc.data["status"] == "failed"
        assert doc.data["errors"] == [{"code": 131026}]
        assert "statusUpdatedAt" in doc.data

    @pytest.mark.asyncio
    async def test_status_for_unknown_message_is_ignored(self, store):
        updated = await MessageLog(store).apply_status(StatusUpdate(whatsapp_id="wamid.nope", status="read"))

        assert updated is False
        assert await store.stream(MESSAGES) == []
