"""
Admin notification fan-out.

Broadcasts one notification to every registered console device.
Fire-and-forget: nothing here ever raises into the caller, because
the originating event has already been committed.
"""

import asyncio
import logging
from typing import Any, Optional

from commerce.effects import Effect
from storage import DocumentStore

from .base import PushMessage, PushProvider, PushTicket

logger = logging.getLogger(__name__)

PUSH_TOKENS = "push_tokens"


def batched(items: list, size: int) -> list[list]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class NotificationFanout:
    """Reads push_tokens and sends through a PushProvider in batches."""

    def __init__(
        self,
        store: DocumentStore,
        provider: PushProvider,
        batch_size: Optional[int] = None,
    ):
        self.store = store
        self.provider = provider
        self.batch_size = max(1, min(batch_size or provider.max_batch_size, provider.max_batch_size))

    async def registered_tokens(self) -> list[str]:
        """Distinct non-empty device tokens, in registration order."""
        docs = await self.store.stream(PUSH_TOKENS)
        seen: dict[str, None] = {}
        for doc in docs:
            token = doc.data.get("token")
            if isinstance(token, str) and token:
                seen.setdefault(token, None)
        return list(seen)

    async def broadcast(self, title: str, body: str, data: Optional[dict[str, Any]] = None) -> int:
        """
        Send to every registered device.

        Returns:
            Number of devices that accepted the notification
        """
        try:
            tokens = await self.registered_tokens()
            if not tokens:
                logger.debug("No push tokens registered, skipping notification")
                return 0

            messages = [PushMessage(token=t, title=title, body=body, data=dict(data or {})) for t in tokens]
            results = await asyncio.gather(
                *(self.provider.send_batch(batch) for batch in batched(messages, self.batch_size)),
                return_exceptions=True,
            )

            delivered = 0
            for result in results:
                if isinstance(result, BaseException):
                    logger.error(f"Push batch failed: {result}", exc_info=result)
                    continue
                delivered += self._count_delivered(result)

            logger.info(
                f"Notification '{title}' sent to {delivered}/{len(tokens)} devices",
                extra={"delivered": delivered, "devices": len(tokens)},
            )
            return delivered
        except Exception as e:
            logger.error(f"Error sending notifications: {e}", exc_info=True)
            return 0

    def _count_delivered(self, tickets: list[PushTicket]) -> int:
        delivered = 0
        for ticket in tickets:
            if ticket.status == "ok":
                delivered += 1
            else:
                logger.warning(
                    f"Push to {ticket.token} failed: {ticket.error}",
                    extra={"push_error": ticket.error},
                )
        return delivered

    def effect(self, title: str, body: str, data: Optional[dict[str, Any]] = None) -> Effect:
        """Deferred broadcast, dispatched with the other side effects."""

        async def _broadcast():
            return await self.broadcast(title, body, data)

        return Effect(name="push:broadcast", run=_broadcast, context={"title": title})
