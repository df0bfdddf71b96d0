"""
Customer reply intent resolution.

Maps an inbound WhatsApp reply (button payload and/or body text) to a
closed set of intents that drive the order lifecycle.

The phrase-list resolver is one strategy behind IntentResolver; other
locales or an NLU backend can be swapped in without touching the
state machine.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterable, Mapping, Optional


class Intent(str, Enum):
    """What the customer asked for."""

    CONFIRM_ORDER = "confirm_order"
    ADDRESS_CORRECT = "address_correct"
    ADDRESS_EDIT = "address_edit"
    CANCEL = "cancel"
    NONE = "none"


# Button payload ids and button titles used by the approved templates
DEFAULT_VOCABULARY: dict[Intent, tuple[str, ...]] = {
    Intent.CONFIRM_ORDER: ("CONFIRM_COD_YES", "Confirm Order"),
    Intent.ADDRESS_CORRECT: ("ADDRESS_CORRECT", "Confirm Address", "Yes, Correct", "Correct"),
    Intent.ADDRESS_EDIT: ("ADDRESS_EDIT", "Make Changes", "Edit Address"),
    Intent.CANCEL: ("CONFIRM_COD_NO", "Cancel"),
}


class IntentResolver(ABC):
    """
    Abstract intent boundary.
    The lifecycle state machine depends ONLY on this interface.
    """

    @abstractmethod
    def resolve(self, payload: Optional[str], body: Optional[str]) -> Intent:
        """
        Resolve a reply to an intent.

        Args:
            payload: Button payload id (may be None or empty)
            body: Message text or button title (may be None or empty)

        Returns:
            Intent, Intent.NONE when nothing matches
        """
        raise NotImplementedError


def _key(token: Optional[str]) -> str:
    return " ".join((token or "").split()).casefold()


class PhraseListIntentResolver(IntentResolver):
    """
    Exact-phrase matcher.

    The whole trimmed payload or body must equal one vocabulary phrase
    (case-insensitive). Payload is checked before body.
    """

    def __init__(self, vocabulary: Optional[Mapping[Intent, Iterable[str]]] = None):
        self._lookup: dict[str, Intent] = {}
        for intent, phrases in (vocabulary or DEFAULT_VOCABULARY).items():
            for phrase in phrases:
                self._lookup.setdefault(_key(phrase), intent)

    def resolve(self, payload: Optional[str], body: Optional[str]) -> Intent:
        for candidate in (payload, body):
            key = _key(candidate)
            if key and key in self._lookup:
                return self._lookup[key]
        return Intent.NONE
