"""
Mobile-money phone number normalization.

Canonical form: COUNTRY_CODE + provider prefix + subscriber digits, e.g.
"+252" + "61" + "7123456" for an EVCPlus wallet. Card payments (and the
legacy WAAFI wallet) get the country code only.
"""
from __future__ import annotations

import re
from typing import Optional

from domain.common.exceptions import InvalidPhoneNumberException
from domain.payment.entity import WalletType

COUNTRY_CODE = "+252"

# Single source of truth for wallet routing prefixes
PROVIDER_PREFIXES: dict[WalletType, str] = {
    WalletType.EVCPLUS: "61",
    WalletType.ZAAD: "63",
    WalletType.SAHAL: "90",
}

MIN_SUBSCRIBER_DIGITS = 6
MAX_SUBSCRIBER_DIGITS = 12

_STRIP_RE = re.compile(r"[^\d+]")
_COUNTRY_DIGITS = COUNTRY_CODE.lstrip("+")


def provider_prefix(wallet_type: Optional[WalletType]) -> str:
    if wallet_type is None:
        return ""
    return PROVIDER_PREFIXES.get(WalletType(wallet_type), "")


def _clean(raw: Optional[str]) -> str:
    cleaned = _STRIP_RE.sub("", raw or "")
    if not cleaned.strip("+"):
        raise InvalidPhoneNumberException(raw, "Phone number is required")
    if "+" in cleaned[1:]:
        raise InvalidPhoneNumberException(raw)
    return cleaned.lstrip("+").lstrip("0")


def _subscriber(raw: Optional[str], strip_prefixes: tuple[str, ...]) -> str:
    digits = _clean(raw)
    if digits.startswith(_COUNTRY_DIGITS):
        digits = digits[len(_COUNTRY_DIGITS):]
        for prefix in strip_prefixes:
            if prefix and digits.startswith(prefix):
                digits = digits[len(prefix):]
                break
    if not MIN_SUBSCRIBER_DIGITS <= len(digits) <= MAX_SUBSCRIBER_DIGITS:
        raise InvalidPhoneNumberException(raw)
    return digits


def _assemble(wallet_type: Optional[WalletType], subscriber: str) -> str:
    return f"{COUNTRY_CODE}{provider_prefix(wallet_type)}{subscriber}"


def subscriber_digits(phone: Optional[str], wallet_type: Optional[WalletType] = None) -> str:
    """Digits after the country code and the wallet's own prefix."""
    prefix = provider_prefix(wallet_type)
    return _subscriber(phone, (prefix,) if prefix else ())


def normalize_phone(raw: Optional[str], wallet_type: Optional[WalletType] = None) -> str:
    """
    Canonicalize a user-entered number for the given wallet (None for card).

    If the number already carries the country code, any known provider prefix
    following it is dropped before the selected wallet's prefix is applied,
    which keeps the function idempotent. Local numbers only lose leading zeros.
    """
    if provider_prefix(wallet_type):
        strip = tuple(PROVIDER_PREFIXES.values())
    else:
        strip = ()
    return _assemble(wallet_type, _subscriber(raw, strip))


def switch_wallet(
    phone: Optional[str],
    previous: Optional[WalletType],
    new: Optional[WalletType],
) -> str:
    """Move a number to another wallet, keeping the subscriber digits intact."""
    return _assemble(new, subscriber_digits(phone, previous))
