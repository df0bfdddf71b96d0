"""
Phone number normalization.

PURE FUNCTION - NO VALIDATION

Every write site (orders, checkouts, message log) and every lookup
filter goes through normalize_phone so that records correlate by phone.
The result is an internal lookup key, not a validated E.164 number.
"""

import re
from typing import Any, Optional

DEFAULT_COUNTRY_CODE = "91"

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: Any, country_code: str = DEFAULT_COUNTRY_CODE) -> Optional[str]:
    """
    Convert an arbitrary phone value into the canonical digit-string key.

    - Strips every non-digit character
    - Exactly 10 digits → prefixed with the default country code
    - Anything else → returned as-is

    Args:
        phone: Raw phone (str, int, or None)
        country_code: Prefix for bare 10-digit national numbers

    Returns:
        Canonical digit string, or None for empty/missing input

    Examples:
        >>> normalize_phone("+91 98765 43210")
        '919876543210'
        >>> normalize_phone("9876543210")
        '919876543210'
    """
    if phone is None:
        return None

    digits = _NON_DIGITS.sub("", str(phone))
    if not digits:
        return None

    if len(digits) == 10:
        return f"{country_code}{digits}"

    return digits
