"""UK phone number helpers.

Normalization is best-effort: it never raises and always returns a digit
string, which is used as the rate-limit and lookup key for OTPs and as the
gateway destination for SMS.
"""

import re

_NON_DIGITS = re.compile(r"\D")
_UK_MOBILE = re.compile(r"^447\d{9}$")


def digits_only(phone: str) -> str:
    """Strip every non-digit character."""
    return _NON_DIGITS.sub("", phone or "")


def normalize_uk(msisdn: str) -> str:
    """Canonicalize a UK number to MSISDN digits without a leading '+'.

    '07901 846297', '+44 7901 846297' and '447901846297' all become
    '447901846297'. Numbers that start with neither '44' nor '0' are
    returned as bare digits.
    """
    digits = digits_only(msisdn)
    if digits.startswith("44"):
        return digits
    if digits.startswith("0"):
        return "44" + digits[1:]
    return digits


def is_valid_uk_mobile(phone: str) -> bool:
    """True for numbers that normalize to a UK mobile (447 + 9 digits)."""
    return bool(_UK_MOBILE.match(normalize_uk(phone)))


def mask_phone_number(phone: str) -> str:
    """Mask the middle of a phone number for display and audit logs.

    Works on the digits as the caller wrote them, so a national number
    stays national: '07901846297' -> '079***297' and
    '447901846297' -> '447***297'. Seven or more digits keep the first and
    last three; shorter numbers keep the first two and the last one; three
    digits or fewer are returned unmasked.
    """
    digits = digits_only(phone)
    if len(digits) >= 7:
        return f"{digits[:3]}***{digits[-3:]}"
    if len(digits) > 3:
        return f"{digits[:2]}***{digits[-1]}"
    return digits
