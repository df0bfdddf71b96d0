"""
Stub push provider for testing and offline development.

Deterministic, never touches the network.
"""

from typing import Optional

from .base import PushDeliveryError, PushMessage, PushProvider, PushTicket


class StubPushProvider(PushProvider):
    """
    Records every batch it is given.

    failing_tokens: tokens that get an error ticket
    fail_batches: make every batch raise PushDeliveryError
    """

    def __init__(
        self,
        max_batch_size: int = 100,
        failing_tokens: Optional[set[str]] = None,
        fail_batches: bool = False,
    ):
        self.max_batch_size = max_batch_size
        self.failing_tokens = failing_tokens or set()
        self.fail_batches = fail_batches
        self.batches: list[list[PushMessage]] = []

    @property
    def delivered(self) -> list[PushMessage]:
        return [m for batch in self.batches for m in batch if m.token not in self.failing_tokens]

    async def send_batch(self, messages: list[PushMessage]) -> list[PushTicket]:
        if self.fail_batches:
            raise PushDeliveryError("Stub provider configured to fail")

        self.batches.append(list(messages))
        return [
            PushTicket(
                token=m.token,
                status="error" if m.token in self.failing_tokens else "ok",
                error="DeviceNotRegistered" if m.token in self.failing_tokens else None,
            )
            for m in messages
        ]
