"""Phone number validation and pairing-code formatting."""

from __future__ import annotations

import re

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat

_NON_DIGITS = re.compile(r"[^0-9]")
_CODE_GROUP = 4


class PhoneNumberError(ValueError):
    """Raised when a caller-supplied number is not a dialable international number."""


def strip_non_digits(raw: str) -> str:
    return _NON_DIGITS.sub("", raw)


def normalize_number(raw: str) -> str:
    """Return the E.164 form of ``raw`` without the leading ``+``.

    ``raw`` is read as a full international number: every non-digit
    character is dropped and a ``+`` is prefixed before parsing.
    """
    digits = strip_non_digits(raw)
    if not digits:
        raise PhoneNumberError("number contains no digits")
    try:
        parsed = phonenumbers.parse(f"+{digits}", None)
    except NumberParseException as exc:
        raise PhoneNumberError(str(exc)) from exc
    if not phonenumbers.is_valid_number(parsed):
        raise PhoneNumberError(f"not a valid number: +{digits}")
    return phonenumbers.format_number(parsed, PhoneNumberFormat.E164).lstrip("+")


def format_pairing_code(code: str) -> str:
    """Regroup a pairing code into dash-separated blocks of four characters.

    >>> format_pairing_code("ABCD1234")
    'ABCD-1234'
    >>> format_pairing_code("AB-CD12-34")
    'ABCD-1234'
    """
    compact = code.replace("-", "")
    if len(compact) <= _CODE_GROUP:
        return compact
    blocks = [compact[i:i + _CODE_GROUP] for i in range(0, len(compact), _CODE_GROUP)]
    return "-".join(blocks)


def mask_number(number: str) -> str:
    """Hide all but the last four digits for logs and audit entries."""
    digits = strip_non_digits(number)
    if len(digits) <= 4:
        return "*" * len(digits)
    return "*" * (len(digits) - 4) + digits[-4:]
