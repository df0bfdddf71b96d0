"""
Push notification abstract interface.

Role: deliver a batch of device notifications.

Rules:
- Best-effort only (no state mutation, no retries)
- A failing device never fails the batch
- Whole-batch failures raise PushDeliveryError
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal, Optional


PushStatus = Literal["ok", "error"]


class PushDeliveryError(Exception):
    """A push batch could not be delivered at all."""
    pass


@dataclass
class PushMessage:
    """One notification for one device."""

    token: str
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)
    sound: str = "live"
    channel_id: str = "custom-sound-v2"


@dataclass
class PushTicket:
    """Per-device delivery result."""

    token: str
    status: PushStatus
    error: Optional[str] = None


class PushProvider(ABC):
    """
    Abstract push boundary.
    Fan-out code must depend ONLY on this interface.
    """

    max_batch_size: int = 100

    @abstractmethod
    async def send_batch(self, messages: list[PushMessage]) -> list[PushTicket]:
        """
        Send up to max_batch_size messages in one provider call.

        Returns:
            One PushTicket per message

        Raises:
            PushDeliveryError: If the provider call itself fails
        """
        raise NotImplementedError
