"""
Expo push provider.

Device tokens registered by the mobile console are Expo push tokens,
delivered through Expo's push API (at most 100 messages per request).
"""

import logging
from typing import Optional

import httpx

from .base import PushDeliveryError, PushMessage, PushProvider, PushTicket

logger = logging.getLogger(__name__)

EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"


class ExpoPushProvider(PushProvider):
    """Sends notifications through the Expo push service."""

    max_batch_size = 100

    def __init__(
        self,
        url: str = EXPO_PUSH_URL,
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.access_token = access_token
        self.timeout = timeout
        self._transport = transport

    async def send_batch(self, messages: list[PushMessage]) -> list[PushTicket]:
        if not messages:
            return []

        payload = [
            {
                "to": m.token,
                "title": m.title,
                "body": m.body,
                "data": m.data,
                "sound": m.sound,
                "channelId": m.channel_id,
            }
            for m in messages
        ]
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload, headers=headers)
        except httpx.RequestError as e:
            raise PushDeliveryError(f"Expo request failed: {e}") from e

        if response.status_code >= 400:
            raise PushDeliveryError(f"Expo returned {response.status_code}: {response.text}")

        try:
            results = response.json().get("data") or []
        except ValueError as e:
            raise PushDeliveryError("Expo returned a non-JSON response") from e

        tickets = []
        for message, result in zip(messages, results):
            if result.get("status") == "ok":
                tickets.append(PushTicket(token=message.token, status="ok"))
            else:
                tickets.append(
                    PushTicket(token=message.token, status="error", error=result.get("message"))
                )
        # Expo answers one ticket per message; anything unanswered is an error
        for message in messages[len(results):]:
            tickets.append(PushTicket(token=message.token, status="error", error="no ticket"))
        return tickets
