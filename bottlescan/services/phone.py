# bottlescan/services/phone.py
from __future__ import annotations

import re

from bottlescan.core.config import settings
from bottlescan.services.errors import InvalidPhone

_SEPARATORS = re.compile(r"[\s\-\.\(\)]")


def normalize_phone(raw: str | None, *, country_code: str | None = None) -> str:
    """
    Canonical "+<digits>" form.

    "+44 20 7946 0958" -> "+442079460958"
    "0044..."          -> "+44..."
    "09876543210"      -> "+919876543210" (trunk zero dropped, default country)
    """
    cleaned = _SEPARATORS.sub("", (raw or "").strip())
    cc = country_code or settings.DEFAULT_COUNTRY_CODE

    if cleaned.startswith("+"):
        digits = cleaned[1:]
    elif cleaned.startswith("00"):
        digits = cleaned[2:]
    else:
        if cleaned.startswith("0"):
            cleaned = cleaned[1:]
        digits = f"{cc}{cleaned}"

    if not digits.isdigit() or not 8 <= len(digits) <= 15:
        raise InvalidPhone()

    return f"+{digits}"


def provider_phone(e164: str) -> str:
    # SMS gateway wants bare digits with the country code
    return e164.lstrip("+")
