"""Phone number normalization."""

import logging
import re
from typing import Optional

import phonenumbers

logger = logging.getLogger(__name__)


def normalize_phone(phone: Optional[str], default_region: str = "US") -> Optional[str]:
    """
    Normalize a phone number to E.164 (+15551234567).
    Returns None for empty input and for numbers that cannot be parsed.
    """
    if not phone or not phone.strip():
        return None

    cleaned = re.sub(r"[\s\-\(\)\.]", "", phone)
    try:
        parsed = phonenumbers.parse(cleaned, default_region)
    except phonenumbers.NumberParseException:
        logger.debug("Failed to parse phone number: %s", phone)
        return None

    if not phonenumbers.is_possible_number(parsed):
        logger.debug("Impossible phone number: %s", phone)
        return None

    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
