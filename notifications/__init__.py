"""
Console push notifications.
"""

from .base import PushDeliveryError, PushMessage, PushProvider, PushTicket
from .expo import EXPO_PUSH_URL, ExpoPushProvider
from .fanout import PUSH_TOKENS, NotificationFanout
from .stub import StubPushProvider

__all__ = [
    "PushDeliveryError",
    "PushMessage",
    "PushProvider",
    "PushTicket",
    "EXPO_PUSH_URL",
    "ExpoPushProvider",
    "PUSH_TOKENS",
    "NotificationFanout",
    "StubPushProvider",
]
