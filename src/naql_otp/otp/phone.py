"""Phone-number normalization used to key the OTP store."""

from __future__ import annotations

import re

from naql_otp.errors import RequestValidationError

# Optional "+", a non-zero leading digit, then 1 to 14 more digits (E.164-like)
PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$", re.ASCII)
_WHITESPACE = re.compile(r"\s+")


class InvalidPhoneError(RequestValidationError):
    default_message = "Invalid phone number"


def normalize_phone(raw: str) -> str:
    """Return the canonical store key for *raw*.

    All whitespace is removed, so ``" +1 234 567 8901 "`` and
    ``"+12345678901"`` map to the same key.

    Raises
    ------
    InvalidPhoneError
        If the cleaned value is not an E.164-like number.
    """
    cleaned = _WHITESPACE.sub("", raw).strip()
    if not PHONE_PATTERN.match(cleaned):
        raise InvalidPhoneError()
    return cleaned


def mask_phone(phone: str, visible_digits: int = 3) -> str:
    """Hide all but the last few digits of *phone* for log output."""
    if len(phone) <= visible_digits:
        return phone
    return "*" * (len(phone) - visible_digits) + phone[-visible_digits:]
