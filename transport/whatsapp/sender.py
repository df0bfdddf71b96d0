"""
WhatsApp Template Sender

Sends pre-approved template messages through the WhatsApp Cloud API.
No retries. No logging to the message log (see messenger.py).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import httpx

from .schemas import WhatsAppMessageResponse

logger = logging.getLogger(__name__)

GRAPH_API_BASE_URL = "https://graph.facebook.com"


class WhatsAppSenderError(Exception):
    """Failed to send a message to WhatsApp."""

    def __init__(self, message: str, status_code: Optional[int] = None, error_body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_body = error_body


def body_components(parameters: Sequence[Any]) -> list[dict[str, Any]]:
    """Wrap positional values as a template body component."""
    return [
        {
            "type": "body",
            "parameters": [{"type": "text", "text": str(value)} for value in parameters],
        }
    ]


class MessageGateway(ABC):
    """
    Abstract messaging boundary.
    Commerce code must depend ONLY on this interface.
    """

    @abstractmethod
    async def send_template(
        self,
        to: str,
        template_name: str,
        parameters: Optional[Sequence[Any]] = None,
        components: Optional[list[dict[str, Any]]] = None,
        language: Optional[str] = None,
    ) -> WhatsAppMessageResponse:
        """
        Send a template message.

        Args:
            to: Recipient phone (normalized digits)
            template_name: Approved template name
            parameters: Positional body parameters (ignored when components is given)
            components: Raw template components
            language: Template language code

        Returns:
            WhatsAppMessageResponse from the provider

        Raises:
            WhatsAppSenderError: If the send fails
        """
        raise NotImplementedError


class CloudApiMessageGateway(MessageGateway):
    """Template sender over the WhatsApp Cloud API (graph.facebook.com)."""

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_version: str = "v17.0",
        default_language: str = "en_US",
        base_url: str = GRAPH_API_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.api_version = api_version
        self.default_language = default_language
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/{self.api_version}/{self.phone_number_id}/messages"

    async def send_template(
        self,
        to: str,
        template_name: str,
        parameters: Optional[Sequence[Any]] = None,
        components: Optional[list[dict[str, Any]]] = None,
        language: Optional[str] = None,
    ) -> WhatsAppMessageResponse:
        template: dict[str, Any] = {
            "name": template_name,
            "language": {"code": language or self.default_language},
        }
        if components is None and parameters:
            components = body_components(parameters)
        if components:
            template["components"] = components

        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "template",
            "template": template,
        }

        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json"
        }

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(self.endpoint, json=payload, headers=headers)
        except httpx.RequestError as e:
            logger.error(
                f"HTTP request failed: {e}",
                exc_info=True,
                extra={"recipient": to, "template": template_name},
            )
            raise WhatsAppSenderError(f"HTTP request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {"raw": response.text}

        if response.status_code >= 400:
            logger.error(
                f"WhatsApp API error ({template_name}): {response.status_code} - {data}",
                extra={
                    "status_code": response.status_code,
                    "error_body": data,
                    "template": template_name,
                }
            )
            error = data.get("error") if isinstance(data, dict) else None
            detail = error.get("message") if isinstance(error, dict) else None
            raise WhatsAppSenderError(
                detail or f"WhatsApp API returned {response.status_code}",
                status_code=response.status_code,
                error_body=data,
            )

        result = WhatsAppMessageResponse.model_validate(data)
        logger.info(
            f"WhatsApp template '{template_name}' sent to {to}",
            extra={"recipient": to, "template": template_name, "response_id": result.message_id},
        )
        return result


@dataclass
class SentTemplate:
    """One call recorded by StubMessageGateway."""

    to: str
    template_name: str
    parameters: list[str] = field(default_factory=list)
    components: Optional[list[dict[str, Any]]] = None
    language: Optional[str] = None
    whatsapp_id: str = ""


class StubMessageGateway(MessageGateway):
    """
    Deterministic fake gateway for testing and offline development.

    Records every send; never touches the network.
    Set fail=True to make every send raise WhatsAppSenderError.
    """

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[SentTemplate] = []

    def sent_templates(self, template_name: Optional[str] = None) -> list[SentTemplate]:
        if template_name is None:
            return list(self.sent)
        return [s for s in self.sent if s.template_name == template_name]

    async def send_template(
        self,
        to: str,
        template_name: str,
        parameters: Optional[Sequence[Any]] = None,
        components: Optional[list[dict[str, Any]]] = None,
        language: Optional[str] = None,
    ) -> WhatsAppMessageResponse:
        if self.fail:
            raise WhatsAppSenderError("Stub gateway configured to fail", status_code=503)

        whatsapp_id = f"wamid.stub.{len(self.sent) + 1}"
        self.sent.append(
            SentTemplate(
                to=to,
                template_name=template_name,
                parameters=[str(p) for p in parameters or []],
                components=components,
                language=language,
                whatsapp_id=whatsapp_id,
            )
        )
        logger.info(f"Stub template '{template_name}' recorded for {to}")
        return WhatsAppMessageResponse(
            contacts=[{"input": to, "wa_id": to}],
            messages=[{"id": whatsapp_id}],
        )
